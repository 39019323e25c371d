from datetime import datetime, timedelta, timezone
from fastapi import FastAPI, Depends, Request, BackgroundTasks, WebSocket, status
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Optional
import logging
from sessionguard import __version__
from sessionguard.model.users import User
from sessionguard.service.container import Services, build_services
from sessionguard.utils.config import Config
from sessionguard.utils.errors import AuthError, ServiceError
from sessionguard.websocket_server import LiveChannelServer

logger = logging.getLogger(__name__)

GOOGLE_LINK_STATE_TTL = timedelta(minutes=10)

# Security scheme
security = HTTPBearer(auto_error=False)


# Pydantic models
class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class UserRegister(CamelModel):
    name: str
    email: EmailStr
    password: str


class UserLogin(CamelModel):
    email: EmailStr
    password: str


class TokenVerify(CamelModel):
    token: Optional[str] = None


class SessionRevoke(CamelModel):
    session_id: int = Field(alias="sessionId")


class VerificationCodeRequest(CamelModel):
    email: EmailStr


class PasswordUpdate(CamelModel):
    email: EmailStr
    verification_code: str = Field(alias="verificationCode")
    new_password: str = Field(alias="newPassword")


class EmailChangeRequest(CamelModel):
    password: str
    new_email: EmailStr = Field(alias="newEmail")


class EmailChangeVerify(CamelModel):
    new_email: EmailStr = Field(alias="newEmail")
    code: str


class NotificationUpdate(CamelModel):
    email_notifications: bool = Field(alias="emailNotifications")


class TaskEvent(CamelModel):
    task_title: str = Field(alias="taskTitle", min_length=1)
    task_due_date: datetime = Field(alias="taskDueDate")
    task_description: str = Field(default="", alias="taskDescription")


class TaskEventDelete(CamelModel):
    event_id: str = Field(alias="eventId", min_length=1)


class UpgradeClaim(CamelModel):
    code: str = Field(min_length=1)


def get_services(request: Request) -> Services:
    return request.app.state.services


async def _body_token(request: Request) -> Optional[str]:
    """`token` field of a JSON body, for clients that do not send a bearer header"""
    try:
        body = await request.json()
    except ValueError:
        return None
    token = body.get("token") if isinstance(body, dict) else None
    return token if isinstance(token, str) else None


# Dependency to get current user
async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    services: Services = Depends(get_services),
) -> dict:
    """Token must verify AND still have a session row"""
    token = credentials.credentials if credentials else await _body_token(request)
    if not token:
        raise AuthError("Missing token.")
    claims = services.sessions.validate(token)
    claims["token"] = token
    return claims


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "Unknown IP"


async def _start_session(request: Request, services: Services, user: User, token: str):
    """Record the login before responding; never fails the caller"""
    device_info = request.headers.get("user-agent") or "Unknown device"
    ip_address = _client_ip(request)
    location = await services.geolocation.locate(ip_address)
    services.sessions.record_session(user.id, token, device_info, ip_address, location)
    return device_info, ip_address, location


def _public_user(user: User) -> dict:
    return {
        "name": user.name,
        "email": user.email,
        "email_notifications": bool(user.email_notifications),
        "premium": bool(user.premium),
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": exc.message},
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        logger.warning(f"{request.method} {request.url.path} -> 400: {exc.errors()}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "message": "Missing fields."},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "message": "Internal server error."},
        )


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build the API around one set of process-wide services"""
    app = FastAPI(title="SessionGuard Account API", version=__version__)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=Config.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.state.services = services or build_services()
    register_exception_handlers(app)

    live_server = LiveChannelServer(app.state.services.channels, app.state.services.sessions)

    @app.websocket("/ws")
    async def live_channel(websocket: WebSocket):
        await live_server.handle_connection(websocket)

    # Auth endpoints
    @app.post("/register-user")
    def register_user(
        user_data: UserRegister,
        background_tasks: BackgroundTasks,
        services: Services = Depends(get_services),
    ):
        """Register a new user; a tracked session starts at first login"""
        user = services.auth.create_user(user_data.name, user_data.email, user_data.password)
        token = services.auth.issue_login_token(user)

        subject, html = services.mail.welcome(user.name)
        background_tasks.add_task(services.mail.send, user.email, subject, html)
        return {"user": _public_user(user), "token": token}

    @app.post("/login-user")
    async def login_user(
        login_data: UserLogin,
        request: Request,
        background_tasks: BackgroundTasks,
        services: Services = Depends(get_services),
    ):
        """Login user, record the session and return a token"""
        user = await run_in_threadpool(
            services.auth.authenticate_user, login_data.email, login_data.password
        )
        token = services.auth.issue_login_token(user)
        device_info, ip_address, location = await _start_session(request, services, user, token)

        if user.email_notifications:
            subject, html = services.mail.login_alert(user.name, device_info, location, ip_address)
            background_tasks.add_task(services.mail.send, user.email, subject, html)
        return {"user": _public_user(user), "token": token}

    @app.post("/verify-token")
    async def verify_token(body: TokenVerify, services: Services = Depends(get_services)):
        if not body.token:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"valid": False, "error": "No token provided"},
            )
        try:
            claims = services.sessions.validate(body.token)
        except AuthError as e:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"valid": False, "error": e.message},
            )
        return {"valid": True, "user": claims}

    @app.get("/auth/me")
    async def get_current_user_info(
        current_user: dict = Depends(get_current_user),
        services: Services = Depends(get_services),
    ):
        """Get current user information"""
        return _public_user(services.auth.get_user(current_user["id"]))

    # Sessions

    @app.post("/get-user-sessions")
    async def get_user_sessions(
        current_user: dict = Depends(get_current_user),
        services: Services = Depends(get_services),
    ):
        sessions = services.sessions.list_sessions(current_user["id"])
        return {
            "success": True,
            "sessions": [
                {**s.to_dict(), "current": s.session_token == current_user["token"]}
                for s in sessions
            ],
        }

    @app.post("/revoke-session")
    async def revoke_session(
        body: SessionRevoke,
        current_user: dict = Depends(get_current_user),
        services: Services = Depends(get_services),
    ):
        await services.sessions.revoke_session(body.session_id, current_user["id"])
        return {"success": True, "message": "Session revoked successfully."}

    # Verification codes

    @app.post("/send-verification-code")
    def send_verification_code(
        body: VerificationCodeRequest, services: Services = Depends(get_services)
    ):
        services.auth.send_verification_code(body.email)
        return {"success": True, "message": "Verification code sent."}

    @app.post("/update-password")
    async def update_password(
        body: PasswordUpdate,
        request: Request,
        background_tasks: BackgroundTasks,
        services: Services = Depends(get_services),
    ):
        user, token = await run_in_threadpool(
            services.auth.update_password,
            body.email,
            body.verification_code,
            body.new_password,
        )
        await _start_session(request, services, user, token)

        subject, html = services.mail.password_changed(user.name, user.email)
        background_tasks.add_task(services.mail.send, user.email, subject, html)
        return {"success": True, "message": "Password updated successfully.", "token": token}

    @app.post("/request-email-change")
    def request_email_change(
        body: EmailChangeRequest,
        current_user: dict = Depends(get_current_user),
        services: Services = Depends(get_services),
    ):
        services.auth.request_email_change(current_user["id"], body.password, body.new_email)
        return {"success": True, "message": "Verification code sent to new email."}

    @app.post("/verify-email-change")
    async def verify_email_change(
        body: EmailChangeVerify,
        current_user: dict = Depends(get_current_user),
        services: Services = Depends(get_services),
    ):
        services.auth.verify_email_change(current_user["id"], body.new_email, body.code)
        return {"success": True, "message": "Email updated successfully."}

    @app.post("/update-notifications")
    async def update_notifications(
        body: NotificationUpdate,
        background_tasks: BackgroundTasks,
        current_user: dict = Depends(get_current_user),
        services: Services = Depends(get_services),
    ):
        user = services.auth.set_email_notifications(current_user["id"], body.email_notifications)
        subject, html = services.mail.notifications_updated(user.name, user.email_notifications)
        background_tasks.add_task(services.mail.send, user.email, subject, html)
        return {"success": True, "message": "Notification preferences updated."}

    # Google account linking

    @app.get("/auth/google")
    async def google_auth(state: str = "", services: Services = Depends(get_services)):
        """Start linking; state carries the caller's session token"""
        claims = services.sessions.validate(state)
        link_state = services.tokens.issue(claims["id"], claims["email"], GOOGLE_LINK_STATE_TTL)
        return RedirectResponse(services.google.authorization_url(link_state))

    @app.get("/auth/google/callback")
    async def google_callback(
        background_tasks: BackgroundTasks,
        code: Optional[str] = None,
        state: Optional[str] = None,
        services: Services = Depends(get_services),
    ):
        if not code:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"success": False, "message": "No code provided."},
            )
        try:
            claims = services.tokens.verify(state)
        except AuthError:
            logger.error("Invalid state parameter. Cannot link Google account.")
            return RedirectResponse(f"{Config.ACCOUNT_URL}?googleLinked=false")

        user = await services.google.complete_link(code, claims["id"])
        if user.email_notifications:
            subject, html = services.mail.google_linked(user.name)
            background_tasks.add_task(services.mail.send, user.email, subject, html)
        return RedirectResponse(f"{Config.ACCOUNT_URL}?googleLinked=true")

    @app.post("/unlink-google")
    async def unlink_google(
        current_user: dict = Depends(get_current_user),
        services: Services = Depends(get_services),
    ):
        services.google.unlink(current_user["id"])
        return {"success": True, "message": "Google account unlinked successfully."}

    @app.post("/check-google-link")
    async def check_google_link(
        current_user: dict = Depends(get_current_user),
        services: Services = Depends(get_services),
    ):
        return {"linked": services.google.is_linked(current_user["id"])}

    # Google Calendar sync

    @app.post("/create-calendar")
    async def create_calendar(
        current_user: dict = Depends(get_current_user),
        services: Services = Depends(get_services),
    ):
        calendar_id = await services.google.ensure_calendar(current_user["id"])
        return {"success": True, "calendarId": calendar_id}

    @app.post("/add-task-event")
    async def add_task_event(
        body: TaskEvent,
        current_user: dict = Depends(get_current_user),
        services: Services = Depends(get_services),
    ):
        event_id = await services.google.add_task_event(
            current_user["id"], body.task_title, body.task_due_date, body.task_description
        )
        return {"success": True, "eventId": event_id}

    @app.post("/delete-task-event")
    async def delete_task_event(
        body: TaskEventDelete,
        current_user: dict = Depends(get_current_user),
        services: Services = Depends(get_services),
    ):
        await services.google.delete_task_event(current_user["id"], body.event_id)
        return {"success": True, "message": "Event deleted successfully."}

    # Premium upgrade

    @app.post("/create-checkout-session")
    def create_checkout_session(
        current_user: dict = Depends(get_current_user),
        services: Services = Depends(get_services),
    ):
        return {"id": services.upgrades.create_checkout_session(current_user["id"])}

    @app.post("/webhook")
    async def stripe_webhook(request: Request, services: Services = Depends(get_services)):
        """Handle Stripe webhook events"""
        payload = await request.body()
        await run_in_threadpool(
            services.upgrades.handle_webhook, payload, request.headers.get("stripe-signature")
        )
        return {"received": True}

    @app.post("/claim-upgrade-code")
    async def claim_upgrade_code(
        body: UpgradeClaim,
        current_user: dict = Depends(get_current_user),
        services: Services = Depends(get_services),
    ):
        services.upgrades.claim(current_user["id"], body.code)
        return {"success": True, "message": "Upgrade code claimed successfully."}

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    return app
