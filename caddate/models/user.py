from sqlalchemy import Column, String, Boolean, DateTime, JSON
from sqlalchemy.sql import func

from caddate.core.db import Base


class User(Base):
    """Identity record owned by the account service; only read here."""

    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, unique=True, nullable=False, index=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    profile_picture = Column(String, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    deleted_at = Column(DateTime, nullable=True)

    # privacy bag like {"showLocation": false}
    privacy = Column(JSON, nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    @property
    def is_available(self) -> bool:
        return bool(self.is_active) and self.deleted_at is None
