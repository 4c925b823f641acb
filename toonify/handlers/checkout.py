"""Checkout: turn a quality selection into a Stripe Checkout redirect."""
import logging
from flask import current_app

from toonify.errors import BadRequest, NotFound
from toonify.models.image_job import ImageJob
from toonify.services import auth_service, job_store, payment_service

logger = logging.getLogger(__name__)


def create_checkout(
    auth_header,
    payload,
    origin=None,
    *,
    store=job_store,
    payments=payment_service,
    auth=auth_service,
):
    """Create a payment session for ``payload["jobId"]``.

    The job keeps its status; it is only queued once the payment return
    arrives. The selected tier overwrites any earlier selection.

    Returns:
        {"url": <checkout redirect url>}
    """
    caller = auth.authenticate(auth_header)

    payload = payload or {}
    job_id = payload.get("jobId")
    quality_tier = payload.get("qualityTier")
    if not job_id or not quality_tier:
        raise BadRequest("Missing required parameters")
    if quality_tier not in ImageJob.QUALITY_TIERS:
        raise BadRequest(f"Unknown quality tier: {quality_tier}")

    job = store.get(job_id)
    if (
        current_app.config["CHECKOUT_ENFORCE_OWNERSHIP"]
        and job.owner_id != caller.user_id
    ):
        logger.warning(
            "User %s attempted checkout for image %s owned by %s",
            caller.user_id,
            job_id,
            job.owner_id,
        )
        raise NotFound()
    store.check_checkout_allowed(job)

    session = payments.create_checkout_session(
        job_id, quality_tier, caller, origin=origin
    )
    store.record_checkout(job_id, session.id, quality_tier)

    logger.info("Checkout session %s created for image %s", session.id, job_id)
    return {"url": session.url}
