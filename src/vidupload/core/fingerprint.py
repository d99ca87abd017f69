"""Identity fingerprint for (user, file) pairs."""

from .models import LocalFile


def fingerprint(user_id: str, file: LocalFile) -> str:
    """Return a stable identifier for ``file`` uploaded by ``user_id``.

    Built from name, size and modification time only, never from content,
    so two different files sharing those three values for the same user
    produce the same id.
    """
    return f"{user_id}-{file.name}-{file.size}-{file.last_modified}"
