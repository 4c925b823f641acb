import logging
import stripe
from flask import current_app

from toonify.errors import ConfigMissing, PaymentFailed
from toonify.models.image_job import ImageJob

logger = logging.getLogger(__name__)

PRICE_CONFIG_KEYS = {
    ImageJob.REGULAR: "STRIPE_REGULAR_PRICE_ID",
    ImageJob.PREMIUM: "STRIPE_PREMIUM_PRICE_ID",
}


def resolve_price_id(quality_tier):
    """Map a quality tier to its configured Stripe price id."""
    if not all(current_app.config.get(k) for k in PRICE_CONFIG_KEYS.values()):
        raise ConfigMissing("Stripe price IDs are missing from configuration")
    return current_app.config[PRICE_CONFIG_KEYS[quality_tier]]


def _api_key():
    key = current_app.config["STRIPE_SECRET_KEY"]
    if not key:
        raise ConfigMissing("Stripe configuration is missing")
    return key


def return_urls(origin, job_id):
    """Success/cancel URLs; both carry the job id back to us."""
    base = (origin or current_app.config["APP_URL"]).rstrip("/")
    success = (
        f"{base}/payment-return?success=true"
        f"&session_id={{CHECKOUT_SESSION_ID}}&image_id={job_id}"
    )
    cancel = f"{base}/payment-return?canceled=true&image_id={job_id}"
    return success, cancel


def create_checkout_session(job_id, quality_tier, caller, origin=None):
    """Create a one-off Stripe Checkout session for one image.

    Returns:
        the Stripe session (``id`` and ``url`` are what callers need)
    """
    api_key = _api_key()
    price_id = resolve_price_id(quality_tier)
    success_url, cancel_url = return_urls(origin, job_id)

    logger.info(
        "Creating checkout session for image %s (%s, price %s)",
        job_id,
        quality_tier,
        price_id,
    )
    params = {
        "mode": "payment",
        "line_items": [{"price": price_id, "quantity": 1}],
        "success_url": success_url,
        "cancel_url": cancel_url,
        "metadata": {
            "userId": caller.user_id,
            "imageId": job_id,
            "qualityLevel": quality_tier,
        },
    }
    if caller.email:
        params["customer_email"] = caller.email

    try:
        return stripe.checkout.Session.create(api_key=api_key, **params)
    except stripe.StripeError as e:
        logger.error("Stripe error creating checkout session: %s", e)
        raise PaymentFailed(
            f"Stripe checkout session creation failed: {e.user_message or e}"
        ) from e
