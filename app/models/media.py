from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Numeric, String, Text, UniqueConstraint

from app.db.base import Base


class MediaContent(Base):
    __tablename__ = "media_content"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    media_type = Column(String, nullable=False, default="IMAGE")  # IMAGE / VIDEO / AUDIO
    access_tier = Column(String, nullable=False, default="FREE")
    price = Column(Numeric(10, 2), nullable=True)
    is_purchaseable = Column(Boolean, nullable=False, default=False)
    is_published = Column(Boolean, nullable=False, default=True)
    content_url = Column(String, nullable=True)   # выдаётся только при has_access
    thumbnail_url = Column(String, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )


class MediaPurchase(Base):
    __tablename__ = "media_purchases"
    # A user owns a given media item at most once.
    __table_args__ = (UniqueConstraint("user_id", "media_id", name="uq_media_purchase_user_media"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, nullable=False, index=True)
    media_id = Column(String, nullable=False, index=True)
    payment_id = Column(String, nullable=True, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    provider = Column(String, nullable=False)
    provider_tx_id = Column(String, nullable=False)
    status = Column(String, nullable=False, default="COMPLETED")
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
