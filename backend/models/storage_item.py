"""Schema-less key/value item addressed by (namespace, collection, collection_key, field_key)."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

ADDRESS_COLUMNS = ("namespace", "collection", "collection_key", "field_key")


class StorageItem(Base):
    __tablename__ = "storage_items"
    __table_args__ = (
        UniqueConstraint(*ADDRESS_COLUMNS, name="uq_storage_items_address"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    namespace: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    collection: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    collection_key: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    field_key: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)  # canonical JSON
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
