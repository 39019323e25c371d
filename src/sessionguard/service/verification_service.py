import secrets
import logging
from datetime import timedelta
from typing import Optional
from sqlalchemy import select, delete
from sqlalchemy.orm import sessionmaker, Session as DbSession
from sessionguard.model.base import utcnow
from sessionguard.model.verification_codes import (
    VerificationCode,
    PURPOSE_PASSWORD,
    PURPOSE_EMAIL,
)
from sessionguard.utils.config import Config
from sessionguard.utils.errors import ValidationError

logger = logging.getLogger(__name__)

PURPOSES = (PURPOSE_PASSWORD, PURPOSE_EMAIL)


class VerificationService:
    """Six-digit, fifteen-minute codes proving control of an email address"""

    def __init__(self, session_factory: sessionmaker, ttl_minutes: Optional[int] = None):
        self.session_factory = session_factory
        self.ttl = timedelta(
            minutes=ttl_minutes if ttl_minutes is not None else Config.VERIFICATION_CODE_TTL_MINUTES
        )

    @staticmethod
    def generate_code() -> str:
        return str(secrets.randbelow(900000) + 100000)

    def request(self, user_id: int, purpose: str, new_email: Optional[str] = None) -> str:
        """Persist a fresh code; earlier outstanding codes stay valid"""
        if purpose not in PURPOSES:
            raise ValueError(f"Unknown verification purpose: {purpose}")

        code = self.generate_code()
        now = utcnow()
        with self.session_factory.begin() as db:
            db.add(
                VerificationCode(
                    user_id=user_id,
                    code=code,
                    purpose=purpose,
                    new_email=new_email,
                    expiry=now + self.ttl,
                    created_at=now,
                )
            )
        logger.info(f"Issued {purpose} verification code for user {user_id}")
        return code

    def consume(
        self,
        db: DbSession,
        user_id: int,
        code: str,
        purpose: str,
        new_email: Optional[str] = None,
    ) -> VerificationCode:
        """
        Validate code inside the caller's transaction and delete every code
        the user holds, so the authorized change and the deletion commit
        together and the code cannot be replayed.
        """
        stmt = select(VerificationCode).where(
            VerificationCode.user_id == user_id,
            VerificationCode.code == str(code),
            VerificationCode.purpose == purpose,
            VerificationCode.expiry > utcnow(),
        )
        if new_email is not None:
            stmt = stmt.where(VerificationCode.new_email == new_email)

        match = db.execute(stmt.limit(1)).scalar_one_or_none()
        if match is None:
            logger.warning(f"Rejected {purpose} verification code for user {user_id}")
            raise ValidationError("Invalid or expired verification code.")

        db.execute(delete(VerificationCode).where(VerificationCode.user_id == user_id))
        return match
