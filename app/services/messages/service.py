"""
MessageUnlockSet: множество пользователей, разблокировавших PPV-сообщение.
Добавление: один INSERT ... ON CONFLICT DO NOTHING, без read-modify-write.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.message import MessageUnlock

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class MessageUnlockSet:
    def __init__(self, db: Session):
        self.db = db

    def add(self, message_id: str, user_id: str) -> bool:
        """Add user to the set. Returns True if the user was not a member before."""
        values = {
            "message_id": message_id,
            "user_id": user_id,
            "created_at": datetime.now(timezone.utc),
        }
        insert = _UPSERT_DIALECTS.get(self.db.get_bind().dialect.name)
        if insert is not None:
            stmt = insert(MessageUnlock).values(**values).on_conflict_do_nothing(
                index_elements=["message_id", "user_id"]
            )
            added = self.db.execute(stmt).rowcount == 1
        else:
            added = self._add_in_savepoint(values)
        if added:
            logger.info("message_unlocked", extra={"message_id": message_id, "user_id": user_id})
        return added

    def _add_in_savepoint(self, values: dict) -> bool:
        try:
            with self.db.begin_nested():
                self.db.add(MessageUnlock(**values))
        except IntegrityError:
            return False
        return True

    def contains(self, message_id: str, user_id: str) -> bool:
        return (
            self.db.query(MessageUnlock)
            .filter(MessageUnlock.message_id == message_id, MessageUnlock.user_id == user_id)
            .first()
            is not None
        )

    def members(self, message_id: str) -> set[str]:
        rows = (
            self.db.query(MessageUnlock.user_id)
            .filter(MessageUnlock.message_id == message_id)
            .all()
        )
        return {row[0] for row in rows}
