from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    Index,
)
from sqlalchemy.orm import relationship
from sessionguard.model.base import Base, utcnow


class Session(Base):
    """One row per successful login; history per device is kept."""

    __tablename__ = "user_sessions"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    session_token = Column(String, unique=True, nullable=False)
    device_info = Column(String, nullable=False, default="Unknown device")
    ip_address = Column(String, nullable=False, default="Unknown IP")
    location = Column(String, nullable=False, default="Unknown Location")
    login_time = Column(DateTime, default=utcnow, nullable=False)
    last_activity = Column(DateTime, default=utcnow, nullable=False)
    user = relationship("User")

    __table_args__ = (
        Index("ix_user_sessions_user_device", "user_id", "device_info", "location"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "device_info": self.device_info,
            "ip_address": self.ip_address,
            "location": self.location,
            "login_time": self.login_time.isoformat(),
            "last_activity": self.last_activity.isoformat(),
        }
