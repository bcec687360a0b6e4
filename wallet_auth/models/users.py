import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.sql import false, func

from wallet_auth.db.base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """Model for users table
    Example:
    {
        "id": "550e8400-e29b-41d4-a716-446655440000",
        "address": "0x8ba1f109551bd432803012645ac136ddd64dba72",
        "is_active": false,
        "login_count": 3,
        "last_login_at": "2024-01-01T12:00:00",
        "created_at": "2024-01-01T12:00:00",
        "updated_at": "2024-01-01T12:00:00"
    }
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    address = Column(String(64), nullable=False, unique=True)  # lower-cased
    username = Column(Text, nullable=True)
    avatar = Column(Text, nullable=True)
    email = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=False, server_default=false())
    meta_data = Column("metadata", JSON, nullable=True)
    login_count = Column(Integer, nullable=False, default=0, server_default="0")
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class LoginHistory(Base):
    """Append-only audit trail of verification attempts"""

    __tablename__ = "login_history"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    success = Column(Boolean, nullable=False, default=True)
    failure_reason = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
