"""Refresh Token model"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from auth_service.core.clock import ensure_utc
from auth_service.models.database import Base


class RefreshToken(Base):
    """
    Refresh Token model for token rotation

    A row is only ever mutated to set ``revoked_at`` / ``revoked_by_ip`` /
    ``replaced_by_id``, once. Rows are never deleted by the service.
    """

    __tablename__ = "refresh_tokens"

    # Primary key
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    # Opaque bearer secret handed to the client
    token: Mapped[str] = mapped_column(
        String(128),
        unique=True,
        nullable=False,
        index=True,
    )

    # Owner
    subject_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Validity window
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    # Revocation
    revoked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Provenance
    created_by_ip: Mapped[str] = mapped_column(
        String(45),  # IPv6 max length
        nullable=False,
    )
    revoked_by_ip: Mapped[str | None] = mapped_column(
        String(45),
        nullable=True,
    )

    # Token rotation chain
    replaced_by_id: Mapped[str | None] = mapped_column(
        String(36),
        nullable=True,
        comment="Id of the refresh token that superseded this one",
    )

    def __repr__(self) -> str:
        return (
            f"<RefreshToken(id={self.id}, subject_id={self.subject_id}, "
            f"revoked={self.is_revoked})>"
        )

    @property
    def is_revoked(self) -> bool:
        """Check if token is revoked (rotated away or explicitly revoked)"""
        return self.revoked_at is not None

    @property
    def is_rotated(self) -> bool:
        """Check if token was revoked by a rotation"""
        return self.replaced_by_id is not None

    def is_expired(self, now: datetime) -> bool:
        """Check if token is expired; expiry is inclusive of ``expires_at``"""
        return ensure_utc(now) >= ensure_utc(self.expires_at)

    def is_active(self, now: datetime) -> bool:
        """Check if token is usable (not revoked and not expired)"""
        return not self.is_revoked and not self.is_expired(now)
