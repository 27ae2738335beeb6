"""
PPV-related message fields. The set of users who unlocked a message lives in message_unlocks
(one row per member) so adding a member is a single atomic insert, not read-modify-write.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Numeric, String

from app.db.base import Base


class Message(Base):
    __tablename__ = "messages"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    conversation_id = Column(String, nullable=True, index=True)
    sender_id = Column(String, nullable=False)
    is_ppv = Column(Boolean, nullable=False, default=False)
    ppv_price = Column(Numeric(10, 2), nullable=True)
    total_tips = Column(Numeric(12, 2), nullable=False, default=0)  # only grows
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )


class MessageUnlock(Base):
    """Member of a message's unlocked-by set. Append-only."""

    __tablename__ = "message_unlocks"

    message_id = Column(String, primary_key=True)
    user_id = Column(String, primary_key=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )


class MessagePayment(Base):
    __tablename__ = "message_payments"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    message_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    payment_id = Column(String, unique=True, nullable=False)
    type = Column(String, nullable=False)  # PPV_UNLOCK / TIP
    amount = Column(Numeric(10, 2), nullable=False)
    provider = Column(String, nullable=False)
    status = Column(String, nullable=False, default="COMPLETED")
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
