"""Access credentials consumed by the upload session."""

import os
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, Field


class Credentials(BaseModel):
    """Bearer token and the user it belongs to."""

    access_token: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)


class CredentialProvider(ABC):
    """Source of the current user's session, supplied by the auth layer."""

    @abstractmethod
    def get_credentials(self) -> Optional[Credentials]:
        """Return the current credentials, or None when signed out/expired."""


class StaticCredentialProvider(CredentialProvider):
    """Fixed credentials, or none at all."""

    def __init__(self, access_token: Optional[str] = None, user_id: Optional[str] = None):
        self.access_token = access_token
        self.user_id = user_id

    def get_credentials(self) -> Optional[Credentials]:
        if not self.access_token or not self.user_id:
            return None
        return Credentials(access_token=self.access_token, user_id=self.user_id)


class EnvCredentialProvider(CredentialProvider):
    """Credentials from VIDUPLOAD_ACCESS_TOKEN / VIDUPLOAD_USER_ID, read on every call."""

    TOKEN_VAR = "VIDUPLOAD_ACCESS_TOKEN"
    USER_VAR = "VIDUPLOAD_USER_ID"

    def get_credentials(self) -> Optional[Credentials]:
        access_token = os.getenv(self.TOKEN_VAR)
        user_id = os.getenv(self.USER_VAR)
        if not access_token or not user_id:
            return None
        return Credentials(access_token=access_token, user_id=user_id)
