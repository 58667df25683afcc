"""
ltgvault/features/credentials/store.py

Credential store: API keys bound to accounts.

Invariants:
- Plaintext keys are never persisted; rows hold the SHA-256 digest only.
- At most one active (revoked_at IS NULL) key per account. Rotation revokes
  and inserts in one transaction, and a partial unique index backs it up
  against concurrent issues.
- A revoked key and an unknown key are indistinguishable to callers.
"""

import logging
from datetime import datetime
from typing import List, Optional
from sqlalchemy import select, insert, update
from sqlalchemy.engine import Row
from sqlalchemy.exc import IntegrityError

from ltgvault.core.config import settings
from ltgvault.core.database import get_db_session, api_keys, as_utc, utcnow
from ltgvault.core.errors import StoreError
from ltgvault.features.accounts.service import fetch_account
from ltgvault.features.credentials.codec import hash_api_key, issue_api_key, key_prefix, last_four
from ltgvault.models.account import Account
from ltgvault.models.credential import CredentialInfo


logger = logging.getLogger("ltgvault")

ISSUE_MAX_ATTEMPTS = 3


def _row_to_info(row: Row) -> CredentialInfo:
    return CredentialInfo(
        id=row.id,
        account_id=row.account_id,
        prefix=row.key_prefix,
        last_four=row.last_four,
        created_at=as_utc(row.created_at),
        last_used_at=as_utc(row.last_used_at),
        revoked_at=as_utc(row.revoked_at),
    )


def resolve(secret: Optional[str], now: Optional[datetime] = None) -> Optional[Account]:
    """
    Resolve a plaintext key to its owning account.

    Returns None for a missing, malformed, unknown or revoked key.
    Updating last_used_at is best-effort and never blocks the request.
    """
    if not secret:
        return None
    candidate = secret.strip()
    if not candidate.startswith(settings.API_KEY_PREFIX):
        return None

    digest = hash_api_key(candidate)
    with get_db_session() as session:
        row = session.execute(
            select(api_keys.c.id, api_keys.c.account_id)
            .where(api_keys.c.key_hash == digest)
            .where(api_keys.c.revoked_at.is_(None))
        ).first()
        if not row:
            return None
        account = fetch_account(session, row.account_id)

    if account is None:
        return None

    try:
        with get_db_session() as session:
            session.execute(
                update(api_keys).where(api_keys.c.id == row.id).values(last_used_at=now or utcnow())
            )
    except Exception as exc:
        logger.warning(
            "[credentials] last_used_at update failed",
            extra={"account_id": account.id, "error_code": type(exc).__name__},
        )

    return account


def issue(account_id: str, now: Optional[datetime] = None) -> str:
    """
    Issue a new key for the account, revoking every active one.

    Returns the plaintext key. This is the only time it is available.

    Raises:
        StoreError: if the rotation keeps colliding with concurrent issues
    """
    for attempt in range(1, ISSUE_MAX_ATTEMPTS + 1):
        secret = issue_api_key()
        issued_at = now or utcnow()
        try:
            with get_db_session() as session:
                session.execute(
                    update(api_keys)
                    .where(api_keys.c.account_id == account_id)
                    .where(api_keys.c.revoked_at.is_(None))
                    .values(revoked_at=issued_at)
                )
                session.execute(
                    insert(api_keys).values(
                        account_id=account_id,
                        key_hash=hash_api_key(secret),
                        key_prefix=key_prefix(secret),
                        last_four=last_four(secret),
                        created_at=issued_at,
                    )
                )
        except IntegrityError:
            logger.warning(
                "[credentials] concurrent issue, retrying",
                extra={"account_id": account_id, "error_code": "ISSUE_CONFLICT", "status": attempt},
            )
            continue
        logger.info("[credentials] key issued", extra={"account_id": account_id})
        return secret

    raise StoreError("Could not issue API key, please retry")


def list_active(account_id: str) -> List[CredentialInfo]:
    with get_db_session() as session:
        rows = session.execute(
            select(api_keys)
            .where(api_keys.c.account_id == account_id)
            .where(api_keys.c.revoked_at.is_(None))
            .order_by(api_keys.c.created_at.desc())
        ).all()
        return [_row_to_info(row) for row in rows]


def active_credential(account_id: str) -> Optional[CredentialInfo]:
    """Display data for the account's current key, or None if it has none."""
    active = list_active(account_id)
    return active[0] if active else None
