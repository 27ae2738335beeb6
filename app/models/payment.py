"""
Payment model: запись о каждой попытке оплаты (ledger).
Создаётся PENDING фабрикой интентов, меняется только reconciler'ом вебхуков, никогда не удаляется.
provider_tx_id уникален: по нему вебхук находит платёж.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, Numeric, String, Text

from app.db.base import Base, JSONType


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)            # USD
    currency = Column(String(8), nullable=False, default="USD")
    provider = Column(String, nullable=False)                  # CARD / CRYPTO
    provider_tx_id = Column(String, unique=True, nullable=False)
    status = Column(String, nullable=False, default="PENDING", index=True)
    type = Column(String, nullable=False)                      # SUBSCRIPTION / MEDIA_PURCHASE / PPV_UNLOCK / TIP
    # "metadata" is reserved on declarative classes, hence the attribute name
    details = Column("metadata", JSONType, nullable=False, default=dict)
    description = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    completed_at = Column(DateTime(timezone=True), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)
