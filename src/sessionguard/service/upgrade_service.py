import secrets
import stripe
import logging
from typing import Optional
from sqlalchemy import select, update
from sqlalchemy.orm import sessionmaker
from sessionguard.model.base import utcnow
from sessionguard.model.upgrade_keys import UpgradeKey, STATUS_UNCLAIMED, STATUS_CLAIMED
from sessionguard.model.users import User
from sessionguard.service.mail_service import MailService
from sessionguard.utils.config import Config
from sessionguard.utils.errors import (
    ConflictError,
    DependencyError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789!@#$%^&*"


def generate_secure_code(length: int = 20) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


class UpgradeService:
    """Stripe checkout, payment webhooks and one-time upgrade keys"""

    def __init__(
        self,
        session_factory: sessionmaker,
        mail: MailService,
        api_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.mail = mail
        self.api_key = api_key or Config.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or Config.STRIPE_WEBHOOK_SECRET

    def create_checkout_session(self, user_id: int) -> str:
        """Create a one-time payment Checkout session; returns its id"""
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                payment_method_types=["card"],
                line_items=[
                    {
                        "price_data": {
                            "currency": "usd",
                            "product_data": {"name": Config.PREMIUM_PRODUCT_NAME},
                            "unit_amount": Config.PREMIUM_PRICE_CENTS,
                        },
                        "quantity": 1,
                    }
                ],
                mode="payment",
                success_url=Config.CHECKOUT_SUCCESS_URL,
                cancel_url=Config.CHECKOUT_CANCEL_URL,
                metadata={"user_id": str(user_id)},
            )
        except stripe.StripeError as e:
            logger.error(f"Error creating Stripe Checkout session: {e}")
            raise DependencyError("Error creating checkout session.")

        logger.info(f"Stripe Checkout session created: {session['id']}")
        return session["id"]

    def handle_webhook(self, payload: bytes, signature: Optional[str]) -> Optional[str]:
        """
        Verify a Stripe event and act on completed checkouts.

        The signature is checked before anything else and the user comes only
        from the event's own metadata. Returns the issued upgrade key, or None
        for events that need no action.
        """
        if not self.webhook_secret:
            raise ValidationError("Webhook secret not configured")

        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError:
            raise ValidationError("Invalid payload")
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Webhook signature rejected: {e}")
            raise ValidationError("Invalid signature")

        if event["type"] != "checkout.session.completed":
            logger.info(f"Ignoring webhook event {event['type']}")
            return None

        checkout = event["data"]["object"]
        metadata = checkout["metadata"] if "metadata" in checkout else None
        user_id = metadata["user_id"] if metadata and "user_id" in metadata else None
        if not user_id:
            raise ValidationError("Missing user_id in event metadata")

        try:
            user_id = int(user_id)
        except (TypeError, ValueError):
            raise ValidationError("Invalid user_id in event metadata")

        logger.info(f"Payment succeeded for user {user_id}. Session ID: {checkout['id']}")
        return self.issue_upgrade_key(user_id)

    def issue_upgrade_key(self, user_id: int) -> str:
        """
        Mark the purchaser premium and mail a fresh key, all or nothing.

        A mail failure rolls back the transaction and raises DependencyError,
        so the payment provider retries the webhook.
        """
        code = generate_secure_code()
        with self.session_factory.begin() as db:
            user = db.get(User, user_id)
            if user is None:
                raise NotFoundError("User not found.")
            user.premium = True
            db.add(UpgradeKey(code=code, status=STATUS_UNCLAIMED, user_id=user_id))
            db.flush()

            subject, html = self.mail.premium_key(user.name, code)
            self.mail.send_or_raise(user.email, subject, html)

        logger.info(f"User {user_id} updated to premium and upgrade key emailed.")
        return code

    def claim(self, user_id: int, code: str) -> None:
        """
        Exchange an unclaimed key for premium.

        The key row is locked FOR UPDATE and the status flip re-checks
        UNCLAIMED, so of any number of concurrent claims exactly one commits.
        """
        with self.session_factory.begin() as db:
            key = db.execute(
                select(UpgradeKey)
                .where(UpgradeKey.code == code, UpgradeKey.status == STATUS_UNCLAIMED)
                .with_for_update()
            ).scalar_one_or_none()
            if key is None:
                raise ConflictError("Invalid or already claimed code.", status_code=400)

            result = db.execute(
                update(UpgradeKey)
                .where(UpgradeKey.code == code, UpgradeKey.status == STATUS_UNCLAIMED)
                .values(status=STATUS_CLAIMED, user_id=user_id, claimed_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConflictError("Invalid or already claimed code.", status_code=400)

            updated = db.execute(
                update(User)
                .where(User.id == user_id)
                .values(premium=True)
                .execution_options(synchronize_session=False)
            )
            if updated.rowcount != 1:
                raise NotFoundError("User not found.")

        logger.info(f"Upgrade code claimed by user {user_id}")
