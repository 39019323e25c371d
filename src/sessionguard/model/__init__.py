from sessionguard.model.base import Base
from sessionguard.model.users import User
from sessionguard.model.sessions import Session
from sessionguard.model.verification_codes import VerificationCode
from sessionguard.model.upgrade_keys import UpgradeKey

__all__ = ["Base", "User", "Session", "VerificationCode", "UpgradeKey"]
