"""Token document model: one row per normalized identity."""

from typing import Any

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from fleetpush.models.base import Base, TimestampMixin


class TokenDocument(Base, TimestampMixin):
    __tablename__ = "token_documents"

    identity: Mapped[str] = mapped_column(String(320), primary_key=True)
    # {"fcmTokens": [{"deviceId", "fcmToken", "createdAt", "updatedAt"}, ...]}
    document: Mapped[dict[str, Any]] = mapped_column(nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<TokenDocument identity={self.identity}>"
