import uuid
from sqlalchemy import Column, String, Boolean
from sqlalchemy.dialects.postgresql import UUID
from .base import Base, now_utc
from ..types import UTCDateTime


class User(Base):
    __tablename__ = 'users'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, nullable=False, unique=True, index=True)
    display_name = Column(String, nullable=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    # 'ka' | 'en'; drives the notification template locale
    preferred_locale = Column(String(8), nullable=False, default='ka')
    created_at = Column(UTCDateTime, default=now_utc)
    updated_at = Column(UTCDateTime, default=now_utc, onupdate=now_utc)

    @property
    def first_name(self):
        if not self.display_name:
            return None
        return self.display_name.split()[0]
