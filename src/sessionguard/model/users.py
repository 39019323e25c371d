from sqlalchemy import Column, Integer, String, DateTime, Boolean, BigInteger
from sessionguard.model.base import Base, utcnow


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False)
    password_hash = Column(String, nullable=False)
    premium = Column(Boolean, default=False, nullable=False)
    email_notifications = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    # Linked Google account
    google_id = Column(String, nullable=True)
    google_access_token = Column(String, nullable=True)
    google_refresh_token = Column(String, nullable=True)
    google_token_expiry = Column(BigInteger, nullable=True)  # epoch millis

    def to_public_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "premium": bool(self.premium),
            "email_notifications": bool(self.email_notifications),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
