from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sessionguard.model.base import Base, utcnow

PURPOSE_PASSWORD = "password"
PURPOSE_EMAIL = "email"


class VerificationCode(Base):
    __tablename__ = "verification_codes"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    code = Column(String(6), nullable=False)
    purpose = Column(String, nullable=False, default=PURPOSE_PASSWORD)
    new_email = Column(String, nullable=True)  # email-change codes only
    expiry = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow)
