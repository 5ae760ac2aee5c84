"""SQLAlchemy models for the tenant catalog."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tenantgate.common.models import Base, TimestampMixin, generate_uuid, utc_now


class TenantModel(Base, TimestampMixin):
    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    identifier: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    db_provider: Mapped[str] = mapped_column(String(20), nullable=False, default="postgres")

    # Tenant AES key sealed under the master key, "nonce:ciphertext:tag"
    tenant_encryption_key: Mapped[str | None] = mapped_column(String(200), nullable=True)
    # Sealed under the tenant key
    connection_string: Mapped[str | None] = mapped_column(String(5000), nullable=True)

    oidc_metadata_address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    oidc_authority: Mapped[str | None] = mapped_column(String(500), nullable=True)
    oidc_authorization_endpoint: Mapped[str | None] = mapped_column(String(500), nullable=True)
    oidc_token_endpoint: Mapped[str | None] = mapped_column(String(500), nullable=True)
    oidc_jwks_uri: Mapped[str | None] = mapped_column(String(500), nullable=True)
    oidc_end_session_endpoint: Mapped[str | None] = mapped_column(String(500), nullable=True)
    oidc_client_id: Mapped[str | None] = mapped_column(String(500), nullable=True)
    # Sealed under the tenant key
    oidc_client_secret: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    role_claim_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Obfuscation key halves, 16 hex digits each
    obfuscation_key_k0: Mapped[str] = mapped_column(String(16), nullable=False)
    obfuscation_key_k1: Mapped[str] = mapped_column(String(16), nullable=False)

    setup_tokens: Mapped[list["SetupTokenModel"]] = relationship(
        back_populates="tenant",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def has_oidc_config(self) -> bool:
        return bool(
            self.oidc_authority
            and self.oidc_authorization_endpoint
            and self.oidc_client_id
        )


class SetupTokenModel(Base):
    __tablename__ = "setup_tokens"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    tenant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token_hash: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    tenant: Mapped["TenantModel"] = relationship(back_populates="setup_tokens")
