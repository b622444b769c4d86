"""
Payment gateway webhook handling.

Deliveries are untrusted, at-least-once and may arrive concurrently or out
of order. Promotion writes absolute flag values, so any number of
deliveries for the same payer converge on the same entitlement record.
A delivery only succeeds once the user has been sent a one-time login link.
"""
import hmac
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.entitlement_rules import ACTIONABLE_PAYMENT_EVENTS, NOTIFY_NEW_SUBSCRIPTION
from app.core.errors import Unauthenticated, ValidationFailed, NotFound, InternalFailure
from app.models.processed_webhook_event import ProcessedWebhookEvent
from app.models.profile import Profile
from app.models.user import User
from app.services.access_email import send_access_email
from app.services.account_provisioning import find_user_by_email, get_or_create_profile
from app.services.supabase_admin import generate_magic_link

logger = logging.getLogger(__name__)


@dataclass
class PaymentOutcome:
    status_code: int
    body: dict
    user: Optional[User] = None

    @property
    def promoted(self) -> bool:
        return self.user is not None


def mask_email(email: str) -> str:
    local, _, domain = email.partition("@")
    return f"{local[:2]}***@{domain}" if domain else "***"


def verify_webhook_token(provided: Optional[str]) -> bool:
    """Constant-time comparison; fails closed when no secret is configured."""
    expected = settings.payment_webhook_token
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.strip().encode(), expected.encode())


def _already_processed(db: Session, event_id: Optional[str]) -> bool:
    if not event_id:
        return False
    return db.query(ProcessedWebhookEvent.id).filter(
        ProcessedWebhookEvent.event_id == event_id
    ).first() is not None


def _record_processed(db: Session, event_id: Optional[str], event_type: str,
                      payment_id: Optional[str], email: str) -> None:
    if not event_id:
        return
    db.add(ProcessedWebhookEvent(
        event_id=event_id,
        event_type=event_type,
        payment_id=payment_id,
        customer_email=email,
    ))
    try:
        db.commit()
    except IntegrityError:
        # A concurrent duplicate delivery finished first
        db.rollback()
        logger.info("[Payment webhook] Event %s recorded by a concurrent delivery", event_id)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("[Payment webhook] Could not record processed event %s", event_id)


def promote_to_paid(db: Session, user: User, now: Optional[datetime] = None) -> Profile:
    """Set absolute paid-entitlement values; safe to repeat."""
    now = now or datetime.utcnow()
    profile = get_or_create_profile(db, user)
    try:
        db.query(Profile).filter(Profile.user_id == user.id).update(
            {
                Profile.subscription_active: True,
                Profile.access_authorized: True,
                Profile.contract_accepted: True,
                Profile.pricing_accepted: True,
                Profile.updated_at: now,
            },
            synchronize_session=False,
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("[Payment webhook] Failed to update profile for user %s", user.id)
        raise InternalFailure("Failed to update profile")
    db.refresh(profile)
    return profile


async def handle_payment_event(db: Session, token: Optional[str], raw_body: bytes) -> PaymentOutcome:
    if not verify_webhook_token(token):
        logger.error("[Payment webhook] Invalid or missing webhook token")
        raise Unauthenticated()

    try:
        payload = json.loads(raw_body or b"null")
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationFailed("Invalid JSON")
    if not isinstance(payload, dict):
        raise ValidationFailed("Invalid payload")

    event_type = payload.get("event")
    payment = payload.get("payment") if isinstance(payload.get("payment"), dict) else {}
    logger.info(
        "[Payment webhook] Received event=%s has_payment=%s",
        event_type, bool(payment),
    )

    if not isinstance(event_type, str) or event_type not in ACTIONABLE_PAYMENT_EVENTS:
        logger.info("[Payment webhook] Event %s ignored", event_type)
        return PaymentOutcome(200, {"message": "Event ignored"})

    customer_email = payment.get("customerEmail")
    if not isinstance(customer_email, str) or not customer_email.strip():
        logger.error("[Payment webhook] No customer email in payload")
        raise ValidationFailed("No customer email")
    customer_email = customer_email.strip()

    event_id = payload.get("id")
    event_id = str(event_id) if event_id else None
    payment_id = payment.get("id")
    if _already_processed(db, event_id):
        logger.info("[Payment webhook] Event %s already processed, skipping", event_id)
        return PaymentOutcome(200, {"message": "Event already processed"})

    user = find_user_by_email(db, customer_email)
    if not user:
        # Data-quality problem: gateway redelivery succeeds once the account exists
        logger.warning(
            "[Payment webhook] No account for payer %s (event=%s, payment=%s)",
            mask_email(customer_email), event_id, payment_id,
        )
        raise NotFound("User not found")

    promote_to_paid(db, user)
    logger.info("[Payment webhook] User %s promoted to paid entitlement", user.id)

    # From here on failures leave the user paid but without a way in: they must surface
    magic_link = await generate_magic_link(user.email)
    await send_access_email(user.email, magic_link, user.full_name)
    logger.info("[Payment webhook] Login link sent to user %s", user.id)

    _record_processed(db, event_id, event_type, payment_id, user.email)

    return PaymentOutcome(
        200,
        {"success": True, "message": "Subscription activated and login link sent"},
        user=user,
    )


def subscription_notification(user: User) -> dict:
    """Arguments for notify_admins announcing a confirmed payment."""
    name = user.full_name or "Usuário"
    return {
        "type_": NOTIFY_NEW_SUBSCRIPTION,
        "title": "Subscription confirmed",
        "message": f"Payment confirmed, subscription activated for: {user.email} ({name})",
        "reference_id": user.supabase_id,
    }
