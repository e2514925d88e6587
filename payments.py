"""
Koin packages and the payment webhook.

Stripe delivers `checkout.session.completed` with the buyer in
`metadata.userId` and the paid amount in cents. The amount is matched back
to a package and the wallet credited. Each event id is recorded, so a
redelivered event never pays twice.
"""
from dataclasses import dataclass
from typing import Any, Dict, Mapping

import stripe
from pymongo.database import Database

import wallet as wallet_service
from database import utcnow
from errors import ConfigurationError, InvalidArgumentError, NotFoundError
from logger import get_logger
from schemas import StripeEvent

logger = get_logger(__name__)


@dataclass(frozen=True)
class PricingPackage:
    product_id: str
    price: float


PRICING_TABLE: Mapping[int, PricingPackage] = {
    10: PricingPackage("prod_TJrIuugdxUfIh6", 0.5),
    50: PricingPackage("prod_TJrJlPk1OkhK9E", 1),
    500: PricingPackage("prod_TJrJqc1MXPSb8t", 2),
    1000: PricingPackage("prod_TJrKDD5VieU8H9", 3),
    5000: PricingPackage("prod_TJrLeyDGzXlfRb", 10),
}


def koins_for_amount(amount_cents: int, table: Mapping[int, PricingPackage] = PRICING_TABLE) -> int:
    for koins, package in table.items():
        if round(package.price * 100) == amount_cents:
            return koins
    raise InvalidArgumentError("No package matches this amount", {"amount": amount_cents})


def create_checkout_session(owner_id: str, koins: int, api_key: str, app_url: str,
                            table: Mapping[int, PricingPackage] = PRICING_TABLE) -> str:
    """Start a hosted checkout for one koin package; returns the page to send the buyer to."""
    package = table.get(koins)
    if package is None:
        raise NotFoundError("PricingPackage", koins)
    if not api_key:
        raise ConfigurationError("STRIPE_SECRET_KEY is not configured")

    session = stripe.checkout.Session.create(
        api_key=api_key,
        payment_method_types=["card"],
        line_items=[{
            "price_data": {
                "currency": "eur",
                "product": package.product_id,
                "unit_amount": round(package.price * 100),
            },
            "quantity": 1,
        }],
        mode="payment",
        success_url=f"{app_url}/wallet",
        cancel_url=f"{app_url}/wallet",
        metadata={"userId": owner_id, "productId": package.product_id},
    )
    logger.info("Checkout session %s opened for %s (%d koins)", session.id, owner_id, koins)
    return session.url


def _record_event(db: Database, record: StripeEvent) -> bool:
    """True the first time an event id is seen."""
    result = db.stripeevent.update_one(
        {"event_id": record.event_id},
        {"$setOnInsert": {**record.model_dump(exclude={"id"}), "created_at": utcnow()}},
        upsert=True,
    )
    return result.upserted_id is not None


def handle_event(db: Database, event: Dict[str, Any]) -> Dict[str, Any]:
    """Process one verified webhook event (already parsed from JSON)."""
    event_type = event.get("type")
    session = (event.get("data") or {}).get("object") or {}

    if event_type == "checkout.session.completed":
        user_id = (session.get("metadata") or {}).get("userId")
        amount = session.get("amount_total")
        if not user_id:
            raise InvalidArgumentError("userId missing from metadata")
        if amount is None:
            raise InvalidArgumentError("Amount missing")

        koins = koins_for_amount(int(amount))
        if not _record_event(db, StripeEvent(event_id=event["id"], type=event_type, owner_id=user_id, koins=koins)):
            logger.info("Webhook event %s already processed", event["id"])
            return {"received": True, "duplicate": True}

        try:
            wallet = wallet_service.add_coins(db, user_id, koins)
        except Exception:
            # let the provider's retry go through
            db.stripeevent.delete_one({"event_id": event["id"]})
            raise
        logger.info("Payment succeeded: %d koins added for %s", koins, user_id)
        return {"received": True, "koins": koins, "balance": wallet.coin}

    if event_type == "checkout.session.async_payment_succeeded":
        logger.info("Async payment succeeded: %s", session.get("id"))
    elif event_type == "checkout.session.async_payment_failed":
        logger.error("Async payment failed: %s", session.get("id"))
    else:
        logger.info("Unhandled webhook event: %s", event_type)
    return {"received": True}
