from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, SecretStr, field_validator


class InstallationToken(BaseModel):
    token: SecretStr # Installation access token (ghs_...)
    expires_at: Optional[datetime] = None

    @field_validator("token")
    @classmethod
    def check_not_empty(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value().strip():
            raise ValueError("token is empty")
        return value


class PublicKeyResponse(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    key_id: str
    key: str # base64, 32 raw bytes

    @field_validator("key_id", "key")
    @classmethod
    def check_not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("field is empty")
        return value


class RepoPublicKey(BaseModel):
    key_id: str
    key: bytes # raw Curve25519 public key


class InstallationAccount(BaseModel):
    login: str
    type: Optional[str] = None


class Installation(BaseModel):
    id: int
    account: Optional[InstallationAccount] = None
    repository_selection: Optional[str] = None
    target_type: Optional[str] = None
