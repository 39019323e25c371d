from dataclasses import dataclass
from typing import Optional
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sessionguard.model.database import create_db_engine, create_session_factory, init_database
from sessionguard.service.auth_service import AuthService
from sessionguard.service.geolocation_service import GeolocationService
from sessionguard.service.google_service import GoogleService
from sessionguard.service.live_channel import LiveChannelRegistry
from sessionguard.service.mail_service import MailService
from sessionguard.service.session_registry import SessionRegistry
from sessionguard.service.token_service import TokenService
from sessionguard.service.upgrade_service import UpgradeService
from sessionguard.service.verification_service import VerificationService


@dataclass
class Services:
    """Process-lifetime components shared by HTTP and WebSocket handlers"""

    engine: Engine
    session_factory: sessionmaker
    tokens: TokenService
    channels: LiveChannelRegistry
    sessions: SessionRegistry
    verification: VerificationService
    mail: MailService
    auth: AuthService
    geolocation: GeolocationService
    google: GoogleService
    upgrades: UpgradeService


def build_services(
    database_url: Optional[str] = None,
    jwt_secret: Optional[str] = None,
    mail: Optional[MailService] = None,
    geolocation: Optional[GeolocationService] = None,
    google: Optional[GoogleService] = None,
    stripe_api_key: Optional[str] = None,
    stripe_webhook_secret: Optional[str] = None,
) -> Services:
    """Wire every service once, at process start"""
    engine = create_db_engine(database_url)
    init_database(engine)
    session_factory = create_session_factory(engine)

    tokens = TokenService(secret_key=jwt_secret)
    channels = LiveChannelRegistry()
    mail = mail or MailService()
    verification = VerificationService(session_factory)

    return Services(
        engine=engine,
        session_factory=session_factory,
        tokens=tokens,
        channels=channels,
        sessions=SessionRegistry(session_factory, tokens, channels),
        verification=verification,
        mail=mail,
        auth=AuthService(session_factory, tokens, verification, mail),
        geolocation=geolocation or GeolocationService(),
        google=google or GoogleService(session_factory),
        upgrades=UpgradeService(
            session_factory,
            mail,
            api_key=stripe_api_key,
            webhook_secret=stripe_webhook_secret,
        ),
    )
