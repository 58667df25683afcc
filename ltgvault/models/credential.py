"""
ltgvault/models/credential.py

Display-safe view of an API key and the access-token validation result.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict


class CredentialInfo(BaseModel):
    """An API key as the owner may see it. Never carries the secret or its hash."""
    model_config = ConfigDict(frozen=True)

    id: int
    account_id: str
    prefix: str
    last_four: str
    created_at: datetime
    last_used_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None

    @property
    def masked_key(self) -> str:
        return f"{self.prefix}{'*' * 44}{self.last_four}"

    def to_public(self) -> dict:
        return {
            "prefix": self.prefix,
            "lastFour": self.last_four,
            "maskedKey": self.masked_key,
            "createdAt": self.created_at.isoformat(),
            "lastUsedAt": self.last_used_at.isoformat() if self.last_used_at else None,
        }


class TokenFailure(str, Enum):
    MALFORMED = "MALFORMED"
    EXPIRED = "EXPIRED"
    BAD_SIGNATURE = "BAD_SIGNATURE"


TOKEN_FAILURE_MESSAGES = {
    TokenFailure.MALFORMED: "Invalid token format",
    TokenFailure.EXPIRED: "Token has expired",
    TokenFailure.BAD_SIGNATURE: "Invalid token signature",
}


class AccessTokenResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool
    account_id: Optional[str] = None
    email: Optional[str] = None
    reason: Optional[TokenFailure] = None

    @property
    def message(self) -> Optional[str]:
        return TOKEN_FAILURE_MESSAGES.get(self.reason) if self.reason else None
