import time
import jwt
import httpx
import logging
from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from urllib.parse import urlencode, quote
from sqlalchemy.orm import sessionmaker
from sessionguard.model.users import User
from sessionguard.utils.config import Config
from sessionguard.utils.errors import DependencyError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
CALENDAR_API = "https://www.googleapis.com/calendar/v3"


def extract_google_id(id_token: Optional[str]) -> Optional[str]:
    """Read `sub` from an id_token; the signature is not re-verified"""
    if not id_token:
        logger.warning("No id_token received from Google")
        return None
    try:
        return jwt.decode(id_token, options={"verify_signature": False}).get("sub")
    except jwt.InvalidTokenError as e:
        logger.error(f"Error decoding id_token: {e}")
        return None


class GoogleService:
    """Google account linking and synced-task calendar"""

    def __init__(
        self,
        session_factory: sessionmaker,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session_factory = session_factory
        self.client_id = client_id or Config.GOOGLE_CLIENT_ID
        self.client_secret = client_secret or Config.GOOGLE_CLIENT_SECRET
        self.redirect_uri = redirect_uri or Config.GOOGLE_REDIRECT_URI
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, timeout=10.0)

    def authorization_url(self, state: str = "") -> str:
        params = {
            "client_id": self.client_id or "",
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(Config.GOOGLE_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
        return f"{AUTH_URL}?{urlencode(params)}"

    async def _token_request(self, data: Dict[str, str]) -> Dict[str, Any]:
        data = {"client_id": self.client_id, "client_secret": self.client_secret, **data}
        try:
            async with self._client() as client:
                response = await client.post(TOKEN_URL, data=data)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPError as e:
            logger.error(f"Google token request failed: {e}")
            raise DependencyError("Authentication error")

    async def complete_link(self, code: str, user_id: int) -> User:
        """Exchange the OAuth code and store the tokens on the user"""
        tokens = await self._token_request(
            {
                "code": code,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
            }
        )
        google_id = extract_google_id(tokens.get("id_token"))

        with self.session_factory.begin() as db:
            user = db.get(User, user_id)
            if user is None:
                raise NotFoundError("User not found.")
            user.google_access_token = tokens.get("access_token")
            user.google_refresh_token = tokens.get("refresh_token")
            user.google_token_expiry = self._expiry_millis(tokens)
            user.google_id = google_id

        logger.info(f"Google account linked for user {user_id}")
        return user

    @staticmethod
    def _expiry_millis(tokens: Dict[str, Any]) -> Optional[int]:
        if "expires_in" not in tokens:
            return None
        return int((time.time() + int(tokens["expires_in"])) * 1000)

    def unlink(self, user_id: int) -> None:
        with self.session_factory.begin() as db:
            user = db.get(User, user_id)
            if user is None:
                raise NotFoundError("User not found.")
            user.google_access_token = None
            user.google_refresh_token = None
            user.google_token_expiry = None
        logger.info(f"Google account unlinked for user {user_id}")

    def is_linked(self, user_id: int) -> bool:
        with self.session_factory() as db:
            user = db.get(User, user_id)
            return bool(user and user.google_id)

    async def _access_token(self, user_id: int) -> str:
        """Current access token, refreshed first if it has expired"""
        with self.session_factory() as db:
            user = db.get(User, user_id)
        if user is None or not user.google_access_token:
            raise ValidationError("Google account not linked.")

        expired = user.google_token_expiry and user.google_token_expiry <= time.time() * 1000
        if not expired or not user.google_refresh_token:
            return user.google_access_token

        tokens = await self._token_request(
            {"refresh_token": user.google_refresh_token, "grant_type": "refresh_token"}
        )
        with self.session_factory.begin() as db:
            stored = db.get(User, user_id)
            stored.google_access_token = tokens["access_token"]
            stored.google_token_expiry = self._expiry_millis(tokens)
        logger.info(f"Refreshed Google access token for user {user_id}")
        return tokens["access_token"]

    async def _calendar_call(self, method: str, path: str, access_token: str, **kwargs) -> httpx.Response:
        try:
            async with self._client() as client:
                response = await client.request(
                    method,
                    f"{CALENDAR_API}{path}",
                    headers={"Authorization": f"Bearer {access_token}"},
                    **kwargs,
                )
                response.raise_for_status()
                return response
        except httpx.HTTPError as e:
            logger.error(f"Google Calendar {method} {path} failed: {e}")
            raise DependencyError("Google Calendar request failed.")

    async def _find_calendar(self, access_token: str) -> Optional[str]:
        response = await self._calendar_call("GET", "/users/me/calendarList", access_token)
        for calendar in response.json().get("items", []):
            if calendar.get("summary") == Config.SYNCED_CALENDAR_NAME:
                return calendar["id"]
        return None

    async def ensure_calendar(self, user_id: int) -> str:
        """Find or create the synced-tasks calendar; returns its id"""
        access_token = await self._access_token(user_id)
        calendar_id = await self._find_calendar(access_token)
        if calendar_id:
            return calendar_id

        response = await self._calendar_call(
            "POST",
            "/calendars",
            access_token,
            json={"summary": Config.SYNCED_CALENDAR_NAME, "timeZone": Config.CALENDAR_TIME_ZONE},
        )
        logger.info(f"Created synced calendar for user {user_id}")
        return response.json()["id"]

    async def add_task_event(
        self, user_id: int, title: str, due: datetime, description: str = ""
    ) -> str:
        """Insert a one-hour event at the task's due time"""
        calendar_id = await self.ensure_calendar(user_id)
        access_token = await self._access_token(user_id)
        body = {
            "summary": title,
            "description": description or "",
            "start": {"dateTime": due.isoformat(), "timeZone": Config.CALENDAR_TIME_ZONE},
            "end": {
                "dateTime": (due + timedelta(hours=1)).isoformat(),
                "timeZone": Config.CALENDAR_TIME_ZONE,
            },
        }
        response = await self._calendar_call(
            "POST", f"/calendars/{quote(calendar_id, safe='')}/events", access_token, json=body
        )
        return response.json()["id"]

    async def delete_task_event(self, user_id: int, event_id: str) -> None:
        access_token = await self._access_token(user_id)
        calendar_id = await self._find_calendar(access_token)
        if not calendar_id:
            raise ValidationError("Synced calendar not found.")

        await self._calendar_call(
            "DELETE",
            f"/calendars/{quote(calendar_id, safe='')}/events/{quote(event_id, safe='')}",
            access_token,
        )
