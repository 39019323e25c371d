import bcrypt
import logging
from datetime import timedelta
from typing import Optional, Tuple
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from sessionguard.model.users import User
from sessionguard.model.verification_codes import PURPOSE_PASSWORD, PURPOSE_EMAIL
from sessionguard.service.mail_service import MailService
from sessionguard.service.token_service import TokenService
from sessionguard.service.verification_service import VerificationService
from sessionguard.utils.config import Config
from sessionguard.utils.errors import (
    AuthError,
    ConflictError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

INCORRECT_CREDENTIALS = "Email or password is incorrect"


class AuthService:
    """Credential store and the account flows built on it"""

    def __init__(
        self,
        session_factory: sessionmaker,
        token_service: TokenService,
        verification: VerificationService,
        mail: MailService,
        login_ttl: Optional[timedelta] = None,
        reset_ttl: Optional[timedelta] = None,
    ):
        self.session_factory = session_factory
        self.token_service = token_service
        self.verification = verification
        self.mail = mail
        self.login_ttl = login_ttl or timedelta(hours=Config.LOGIN_TOKEN_TTL_HOURS)
        self.reset_ttl = reset_ttl or timedelta(hours=Config.RESET_TOKEN_TTL_HOURS)

    def hash_password(self, password: str) -> str:
        """Hash password using bcrypt"""
        salt = bcrypt.gensalt()
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    def verify_password(self, password: str, hashed: str) -> bool:
        """Verify password against hash"""
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))

    def issue_login_token(self, user: User) -> str:
        return self.token_service.issue(user.id, user.email, self.login_ttl)

    def create_user(self, name: str, email: str, password: str) -> User:
        """Create a new user; a taken email raises ConflictError"""
        name, email, password = name.strip(), email.strip(), password.strip()
        if not name or not email or not password:
            raise ValidationError("Please fill in name, email, and password")

        password_hash = self.hash_password(password)
        try:
            with self.session_factory.begin() as db:
                if db.execute(select(User.id).where(User.email == email)).first():
                    raise ConflictError("A user with that email already exists.")
                user = User(
                    name=name,
                    email=email,
                    password_hash=password_hash,
                    email_notifications=True,
                )
                db.add(user)
                db.flush()
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email
            raise ConflictError("A user with that email already exists.")

        logger.info(f"User created: {user.id}")
        return user

    def authenticate_user(self, email: str, password: str) -> User:
        """Return the user for a matching email/password pair"""
        user = self.get_user_by_email(email.strip())
        if user is None or not self.verify_password(password.strip(), user.password_hash):
            raise ValidationError(INCORRECT_CREDENTIALS)
        return user

    def get_user(self, user_id: int) -> User:
        with self.session_factory() as db:
            user = db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found.")
        return user

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self.session_factory() as db:
            return db.execute(select(User).where(User.email == email)).scalar_one_or_none()

    # Password reset

    def send_verification_code(self, email: str) -> str:
        """Issue and mail a password-reset code"""
        user = self.get_user_by_email(email)
        if user is None:
            raise NotFoundError("User not found.")

        code = self.verification.request(user.id, PURPOSE_PASSWORD)
        subject, html = self.mail.verification_code(user.name, code, PURPOSE_PASSWORD)
        self.mail.send_or_raise(user.email, subject, html)
        return code

    def update_password(self, email: str, code: str, new_password: str) -> Tuple[User, str]:
        """Consume a reset code and set the new password; returns a fresh token"""
        if not new_password or not new_password.strip():
            raise ValidationError("Missing fields.")

        password_hash = self.hash_password(new_password.strip())
        with self.session_factory.begin() as db:
            user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
            if user is None:
                raise NotFoundError("User not found.")
            self.verification.consume(db, user.id, code, PURPOSE_PASSWORD)
            user.password_hash = password_hash

        logger.info(f"Password updated for user {user.id}")
        token = self.token_service.issue(user.id, user.email, self.reset_ttl)
        return user, token

    # Email change

    def request_email_change(self, user_id: int, password: str, new_email: str) -> str:
        """Re-check the password, then mail a code to the new address"""
        user = self.get_user(user_id)
        if not self.verify_password(password, user.password_hash):
            raise AuthError("Incorrect password.")
        new_email = new_email.strip()
        if self.get_user_by_email(new_email) is not None:
            raise ConflictError("Email already in use.")

        code = self.verification.request(user.id, PURPOSE_EMAIL, new_email=new_email)
        subject, html = self.mail.verification_code(user.name, code, PURPOSE_EMAIL)
        self.mail.send_or_raise(new_email, subject, html)
        return code

    def verify_email_change(self, user_id: int, new_email: str, code: str) -> User:
        new_email = new_email.strip()
        try:
            with self.session_factory.begin() as db:
                user = db.get(User, user_id)
                if user is None:
                    raise NotFoundError("User not found.")
                self.verification.consume(db, user.id, code, PURPOSE_EMAIL, new_email=new_email)
                user.email = new_email
        except IntegrityError:
            raise ConflictError("Email already in use.")

        logger.info(f"Email updated for user {user_id}")
        return user

    # Settings

    def set_email_notifications(self, user_id: int, enabled: bool) -> User:
        with self.session_factory.begin() as db:
            user = db.get(User, user_id)
            if user is None:
                raise NotFoundError("User not found.")
            user.email_notifications = bool(enabled)

        logger.info(f"User {user_id} email notifications set to {enabled}")
        return user
