"""
Payment Intent Bridge

Asks Stripe for a card PaymentIntent sized from an order total and hands back
its client secret. Nothing is marked paid here; the client confirms the
payment and then calls the order's pay endpoint.
"""

from decimal import ROUND_HALF_UP, Decimal

import stripe
import structlog

import config
from auth import AuthUser
from errors import PaymentGatewayError

logger = structlog.get_logger(__name__)


def to_minor_units(total_price: float) -> int:
    """19.99 -> 1999; halves round up."""
    scaled = Decimal(str(total_price)) * 100
    return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def create_payment_intent(user: AuthUser, total_price: float) -> str:
    """Create a PaymentIntent for total_price and return its client secret.

    A single synchronous attempt; any gateway failure becomes PaymentGatewayError.
    """
    if not config.STRIPE_SECRET_KEY:
        logger.error("Payment gateway not configured", user_id=user.id)
        raise PaymentGatewayError("Payment gateway not configured")

    amount = to_minor_units(total_price)
    stripe.api_key = config.STRIPE_SECRET_KEY
    try:
        intent = stripe.PaymentIntent.create(
            amount=amount,
            currency=config.PAYMENT_CURRENCY,
            payment_method_types=["card"],
        )
    except Exception as exc:
        logger.error("Stripe error", user_id=user.id, amount=amount, error=str(exc)[:200])
        raise PaymentGatewayError() from exc

    logger.info("Payment intent created", user_id=user.id, amount=amount, currency=config.PAYMENT_CURRENCY)
    return intent.client_secret
