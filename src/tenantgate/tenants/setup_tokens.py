"""One-time tenant bootstrap tokens.

The plaintext token is returned once at registration and never stored; the
catalog keeps its SHA-256 hash. Single use is the caller's job: delete the
row (see :meth:`SetupTokenIssuer.consume`) in the same transaction as the
action the token authorized.
"""

import base64
import enum
import hashlib
from datetime import datetime, timedelta, timezone
from typing import Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantgate.common.exceptions import NotFound, TokenExpired
from tenantgate.crypto.box import random_bytes
from tenantgate.tenants.models import SetupTokenModel

TOKEN_BYTES = 64
DEFAULT_TTL = 3600


class SetupTokenStatus(str, enum.Enum):
    VALID = "valid"
    EXPIRED = "expired"
    NOT_FOUND = "not_found"


def hash_token(token: str) -> str:
    """SHA-256 of the token, base64-encoded for storage."""
    return base64.b64encode(hashlib.sha256(token.encode("utf-8")).digest()).decode("ascii")


def generate_token() -> str:
    """64 random bytes, base64-encoded (88 characters)."""
    return base64.b64encode(random_bytes(TOKEN_BYTES)).decode("ascii")


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SetupTokenIssuer:
    """Issue and validate setup tokens."""

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL,
        clock: Callable[[], datetime] | None = None,
    ):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def now(self) -> datetime:
        return self._clock()

    async def issue(
        self, session: AsyncSession, tenant_id: str, now: datetime | None = None
    ) -> str:
        """Create a token for the tenant and return its plaintext."""
        token = generate_token()
        now = now or self._clock()
        session.add(
            SetupTokenModel(
                tenant_id=tenant_id,
                token_hash=hash_token(token),
                created_at=now,
                expires_at=now + self.ttl,
            )
        )
        await session.flush()
        return token

    async def _find(
        self, session: AsyncSession, tenant_id: str, candidate: str
    ) -> SetupTokenModel | None:
        result = await session.execute(
            select(SetupTokenModel).where(
                SetupTokenModel.tenant_id == tenant_id,
                SetupTokenModel.token_hash == hash_token(candidate),
            )
        )
        return result.scalar_one_or_none()

    async def validate(
        self, session: AsyncSession, tenant_id: str, candidate: str
    ) -> SetupTokenStatus:
        record = await self._find(session, tenant_id, candidate)
        if record is None:
            return SetupTokenStatus.NOT_FOUND
        if self._clock() > _aware(record.expires_at):
            return SetupTokenStatus.EXPIRED
        return SetupTokenStatus.VALID

    async def consume(
        self, session: AsyncSession, tenant_id: str, candidate: str
    ) -> None:
        """Validate and delete the token within the caller's transaction.

        Raises:
            NotFound: unknown token
            TokenExpired: token past its expiry
        """
        record = await self._find(session, tenant_id, candidate)
        if record is None:
            raise NotFound("Setup token not found")
        if self._clock() > _aware(record.expires_at):
            raise TokenExpired()
        await session.delete(record)
        await session.flush()
