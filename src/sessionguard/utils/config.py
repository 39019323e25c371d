import os
from dotenv import load_dotenv

load_dotenv()

DEFAULT_JWT_SECRET = "change-me"


class Config:
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///sessionguard.db")

    # Single process-wide signing secret; rotating it logs everyone out
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY") or DEFAULT_JWT_SECRET
    JWT_ALGORITHM = "HS256"

    LOGIN_TOKEN_TTL_HOURS = int(os.getenv("LOGIN_TOKEN_TTL_HOURS", "48"))
    RESET_TOKEN_TTL_HOURS = int(os.getenv("RESET_TOKEN_TTL_HOURS", "1"))
    VERIFICATION_CODE_TTL_MINUTES = int(
        os.getenv("VERIFICATION_CODE_TTL_MINUTES", "15")
    )

    RESEND_API_KEY = os.getenv("RESEND_API_KEY")
    MAIL_FROM = os.getenv("MAIL_FROM", "admin@a1dos-creations.com")
    ACCOUNT_URL = os.getenv(
        "ACCOUNT_URL", "https://a1dos-creations.com/account/account"
    )

    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    PREMIUM_PRODUCT_NAME = "Premium (STL+ Product Key)"
    PREMIUM_PRICE_CENTS = int(os.getenv("PREMIUM_PRICE_CENTS", "200"))
    CHECKOUT_SUCCESS_URL = os.getenv(
        "CHECKOUT_SUCCESS_URL", "https://a1dos-creations.com/account/chk/success"
    )
    CHECKOUT_CANCEL_URL = os.getenv(
        "CHECKOUT_CANCEL_URL", "https://a1dos-creations.com/account/chk/cancel"
    )

    GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
    GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
    GOOGLE_REDIRECT_URI = os.getenv(
        "GOOGLE_REDIRECT_URI", "https://a1dos-login.onrender.com/auth/google/callback"
    )
    GOOGLE_SCOPES = [
        "openid",
        "https://www.googleapis.com/auth/classroom.courses.readonly",
        "https://www.googleapis.com/auth/calendar",
    ]
    SYNCED_CALENDAR_NAME = "STL Synced Tasks"
    CALENDAR_TIME_ZONE = os.getenv("CALENDAR_TIME_ZONE", "America/Los_Angeles")

    # ip-api style endpoint; {ip} is substituted
    GEOLOCATION_URL = os.getenv("GEOLOCATION_URL", "http://ip-api.com/json/{ip}")
    GEOLOCATION_TIMEOUT = float(os.getenv("GEOLOCATION_TIMEOUT", "3.0"))

    # Comma-separated, e.g.:
    # "https://a1dos-creations.com,chrome-extension://bilnakhjjjkhhhdlcajijkodkhmanfbg"
    ALLOWED_ORIGINS = [
        s.strip()
        for s in os.getenv(
            "ALLOWED_ORIGINS",
            "https://a1dos-creations.com,https://api.a1dos-creations.com,http://127.0.0.1:3000",
        ).split(",")
        if s.strip()
    ]

    HOST = os.getenv("HOST", "0.0.0.0")
    PORT = int(os.getenv("PORT", "3002"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
