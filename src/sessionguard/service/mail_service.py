import resend
import logging
from typing import Optional
from sessionguard.utils.config import Config
from sessionguard.utils.errors import DependencyError

logger = logging.getLogger(__name__)


def _card(title: str, lines: list, footer: str, account_url: str) -> str:
    body = "".join(f'<div style="font-size:18px">{line}</div>' for line in lines)
    return f"""
    <div style="font-family:Roboto,Helvetica,Arial,sans-serif;max-width:516px;margin:0 auto;border:thin solid #dadce0;border-radius:8px;padding:40px 20px;text-align:center">
        <div style="font-size:24px;padding-bottom:16px"><strong>{title}</strong></div>
        {body}
        <div style="font-size:14px;color:rgba(0,0,0,0.87);padding-top:20px;text-align:left">{footer}</div>
        <div style="padding-top:32px"><a href="{account_url}" style="color:#ffffff;background-color:#4184f3;border-radius:5px;padding:10px 24px;text-decoration:none">Check activity</a></div>
    </div>
    """


class MailService:
    """
    Outbound transactional mail via Resend.

    Sending is fire-and-forget: failures are logged and reported as False,
    never retried. Without an API key, messages are only logged.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        sender: Optional[str] = None,
        account_url: Optional[str] = None,
    ):
        self.api_key = api_key if api_key is not None else Config.RESEND_API_KEY
        self.sender = sender or Config.MAIL_FROM
        self.account_url = account_url or Config.ACCOUNT_URL

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @staticmethod
    def _redact(email: str) -> str:
        if "@" not in email:
            return "redacted"
        local, domain = email.split("@", 1)
        return f"{local[:2]}***@{domain}"

    def send_or_raise(self, to_email: str, subject: str, html: str) -> None:
        """Send a message, raising DependencyError on failure"""
        if not self.is_configured:
            logger.info(f"Mail not configured; would send '{subject}' to {self._redact(to_email)}")
            return

        try:
            resend.api_key = self.api_key
            resend.Emails.send(
                {"from": self.sender, "to": to_email, "subject": subject, "html": html}
            )
            logger.info(f"Sent '{subject}' to {self._redact(to_email)}")
        except Exception as e:
            logger.error(f"Error sending mail to {self._redact(to_email)}: {e}")
            raise DependencyError("Error sending email.")

    def send(self, to_email: str, subject: str, html: str) -> bool:
        try:
            self.send_or_raise(to_email, subject, html)
            return True
        except DependencyError:
            return False

    # Templates

    def welcome(self, name: str):
        subject = f"Welcome to A1dos Creations, {name}!"
        html = _card(
            "Welcome!",
            [f"Hi <strong>{name}</strong>, your account is ready."],
            "You can manage sessions, notifications and linked accounts from your dashboard.",
            self.account_url,
        )
        return subject, html

    def login_alert(self, name: str, device: str, location: str, ip_address: str):
        subject = f"New login for user: {name}"
        html = _card(
            "New login to your account",
            [
                f"Device: <strong>{device}</strong>",
                f"Location: <strong>{location}</strong>",
                f"IP address: <strong>{ip_address}</strong>",
            ],
            "If this was not you, revoke the session and change your password immediately.",
            self.account_url,
        )
        return subject, html

    def verification_code(self, name: str, code: str, purpose: str):
        what = "Password Change" if purpose == "password" else "Email Change"
        subject = f"{name} {what} Verification Code"
        html = _card(
            f"{what} Verification Request",
            [f"For user: <strong>{name}</strong>", f"Your verification code is: <strong>{code}</strong>"],
            "If this was not you, ignore this email. We will never ask for your password or verification code.",
            self.account_url,
        )
        return subject, html

    def password_changed(self, name: str, email: str):
        subject = f"{name} Password Changed"
        html = _card(
            "Account Password Changed",
            [f"For account: <strong>{name} ({email})</strong>", "Your account password has been changed."],
            "If this was not you, reset your password immediately. Please review your account activity.",
            self.account_url,
        )
        return subject, html

    def google_linked(self, name: str):
        subject = "A Google Account Was Linked To Your A1dos Account."
        html = _card(
            "Google Account Linked",
            [f"A Google account was linked to <strong>{name}</strong>."],
            "If this was not you, unlink it from your dashboard and change your password.",
            self.account_url,
        )
        return subject, html

    def notifications_updated(self, name: str, enabled: bool):
        state = "Restored" if enabled else "Disabled"
        subject = f"Notifications {state}"
        html = _card(
            f"Email Notifications {state}",
            [f"Login notifications for <strong>{name}</strong> are now {'on' if enabled else 'off'}."],
            "You can change this at any time from your account dashboard.",
            self.account_url,
        )
        return subject, html

    def premium_key(self, name: str, code: str):
        subject = f"Welcome to Premium {name}!"
        html = _card(
            "Thank you for upgrading!",
            [f"Your upgrade key is: <strong>{code}</strong>", "Claim it from your account page."],
            "Keep this key private. It can be claimed exactly once.",
            self.account_url,
        )
        return subject, html
