import logging
from typing import Dict, Any, List, Optional
from sqlalchemy import select, update, func
from sqlalchemy.orm import sessionmaker
from sessionguard.model.base import utcnow
from sessionguard.model.sessions import Session
from sessionguard.service.live_channel import LiveChannelRegistry
from sessionguard.service.token_service import TokenService
from sessionguard.utils.errors import AuthError, NotFoundError

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Persisted login sessions per user/device, with live revocation"""

    def __init__(
        self,
        session_factory: sessionmaker,
        token_service: TokenService,
        channels: LiveChannelRegistry,
    ):
        self.session_factory = session_factory
        self.token_service = token_service
        self.channels = channels

    def record_session(
        self,
        user_id: int,
        token: str,
        device_info: str,
        ip_address: str,
        location: str,
    ) -> Optional[int]:
        """Store a login; failures are logged and return None"""
        try:
            with self.session_factory.begin() as db:
                now = utcnow()
                row = Session(
                    user_id=user_id,
                    session_token=token,
                    device_info=device_info,
                    ip_address=ip_address,
                    location=location,
                    login_time=now,
                    last_activity=now,
                )
                db.add(row)
                db.flush()
                session_id = row.id
            logger.info(f"Session {session_id} recorded for user {user_id}")
            return session_id

        except Exception as e:
            logger.error(f"Error recording session for user {user_id}: {e}")
            return None

    def list_sessions(self, user_id: int) -> List[Session]:
        """Most recent login per (device, location), newest first"""
        ranked = (
            select(
                Session.id.label("id"),
                func.row_number()
                .over(
                    partition_by=(Session.device_info, Session.location),
                    order_by=(Session.login_time.desc(), Session.id.desc()),
                )
                .label("rank"),
            )
            .where(Session.user_id == user_id)
            .subquery()
        )
        stmt = (
            select(Session)
            .join(ranked, Session.id == ranked.c.id)
            .where(ranked.c.rank == 1)
            .order_by(Session.login_time.desc(), Session.id.desc())
        )
        with self.session_factory() as db:
            return list(db.execute(stmt).scalars().all())

    async def revoke_session(self, session_id: int, user_id: int) -> None:
        """
        Delete the user's session and push a logout to its live channel.

        The row is scoped to user_id, so one user can never revoke another's
        session. The delete commits before the push is attempted.
        """
        with self.session_factory.begin() as db:
            row = db.execute(
                select(Session).where(Session.id == session_id, Session.user_id == user_id)
            ).scalar_one_or_none()
            if row is None:
                raise NotFoundError("Session not found.")
            token = row.session_token
            db.delete(row)

        logger.info(f"Session {session_id} revoked successfully.")
        await self.channels.push_logout(token)

    def validate(self, token: str) -> Dict[str, Any]:
        """
        Signature, expiry and session-row check; refreshes last_activity.

        This, not token validity alone, decides whether a caller is logged in.
        """
        claims = self.token_service.verify(token)
        with self.session_factory.begin() as db:
            result = db.execute(
                update(Session)
                .where(Session.session_token == token)
                .values(last_activity=utcnow())
            )
            if result.rowcount == 0:
                logger.warning(f"Rejected revoked session for user {claims['id']}")
                raise AuthError("Session revoked")
        return claims

    def session_exists(self, token: str) -> bool:
        with self.session_factory() as db:
            found = db.execute(
                select(Session.id).where(Session.session_token == token)
            ).first()
            return found is not None
