"""
handle wallet users and their login audit trail
tables: users, login_history

users are created on the first successful verification of an address and are
never deleted here. every verification attempt that reaches the address
comparison for a known user leaves one login_history row.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from wallet_auth.core.eth_auth import normalize_address
from wallet_auth.models.users import LoginHistory, User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginHistoryRecord:
    user_id: str
    success: bool
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    failure_reason: Optional[str] = None


class LoginHistoryRecorder:
    """Writes login_history rows in the caller's session"""

    def __init__(self, db: Session):
        self.db = db

    def append(self, record: LoginHistoryRecord) -> LoginHistory:
        row = LoginHistory(
            user_id=record.user_id,
            ip_address=record.ip_address,
            user_agent=record.user_agent,
            success=record.success,
            failure_reason=record.failure_reason,
        )
        self.db.add(row)
        self.db.flush()
        return row


class UserStore:
    def __init__(self, db: Session, history: Optional[LoginHistoryRecorder] = None):
        self.db = db
        self.history = history or LoginHistoryRecorder(db)

    def rollback(self) -> None:
        try:
            self.db.rollback()
        except SQLAlchemyError as e:
            logger.warning("rollback failed: %s", e)

    def find_by_identity(self, address: str) -> Optional[User]:
        return (
            self.db.query(User)
            .filter(User.address == normalize_address(address))
            .first()
        )

    def find_by_id(self, user_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def upsert(self, address: str) -> User:
        """
        Return the user for address, creating it if needed.

        Concurrent first logins of one address end with a single row: the
        insert is a no-op on conflict and everyone reads the row back.
        """
        address = normalize_address(address)
        values = {"id": str(uuid.uuid4()), "address": address}
        dialect = self.db.get_bind().dialect.name

        if dialect in ("postgresql", "sqlite"):
            insert = pg_insert if dialect == "postgresql" else sqlite_insert
            stmt = insert(User).values(**values).on_conflict_do_nothing(
                index_elements=[User.address]
            )
            result = self.db.execute(stmt)
            self.db.commit()
            if result.rowcount:
                logger.info("created user for %s", address)
        else:
            try:
                self.db.add(User(**values))
                self.db.commit()
                logger.info("created user for %s", address)
            except IntegrityError:
                # lost the race, the other row wins
                self.db.rollback()

        user = self.find_by_identity(address)
        if user is None:
            raise RuntimeError(f"user row for {address} missing after upsert")
        return user

    def record_login(
        self,
        user_id: str,
        success: bool,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        failure_reason: Optional[str] = None,
    ) -> None:
        """
        Append the history row, and on success bump login_count/last_login_at.
        Both changes are committed together.
        """
        self.history.append(
            LoginHistoryRecord(
                user_id=user_id,
                success=success,
                ip_address=ip_address,
                user_agent=user_agent,
                failure_reason=failure_reason,
            )
        )
        if success:
            self.db.query(User).filter(User.id == user_id).update(
                {
                    User.login_count: User.login_count + 1,
                    User.last_login_at: datetime.now(timezone.utc),
                },
                synchronize_session=False,
            )
        self.db.commit()
