from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sessionguard.model.base import Base, utcnow

STATUS_UNCLAIMED = "UNCLAIMED"
STATUS_CLAIMED = "CLAIMED"


class UpgradeKey(Base):
    __tablename__ = "upgrade_keys"
    code = Column(String(20), primary_key=True)
    status = Column(String, nullable=False, default=STATUS_UNCLAIMED)
    # Purchaser until claimed, claimant afterwards
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    claimed_at = Column(DateTime, nullable=True)
