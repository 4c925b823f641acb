"""Payment-return callback: ``?success=true&session_id=...&image_id=...``.

The transition is guarded in the store, so browser replays of the return URL
are harmless even after the job has moved on.
"""
import logging
from flask import current_app

from toonify import extensions as ext
from toonify.errors import NotFound
from toonify.services import job_store

logger = logging.getLogger(__name__)

QUEUED = "queued"
ALREADY_PROCESSED = "already_processed"
CANCELED = "canceled"
IGNORED = "ignored"


def handle_payment_return(args, *, store=job_store, queue=None):
    """Apply a payment return. Returns one of the outcome constants above."""
    image_id = args.get("image_id")

    if args.get("canceled") == "true":
        logger.info("Checkout canceled for image %s", image_id)
        return CANCELED

    session_id = args.get("session_id")
    if args.get("success") != "true" or not session_id or not image_id:
        return IGNORED

    try:
        job = store.get(image_id)
    except NotFound:
        logger.warning("Payment return for unknown image %s", image_id)
        return IGNORED

    if job.payment_session_id and job.payment_session_id != session_id:
        logger.warning(
            "Payment return for image %s with session %s, expected %s",
            image_id,
            session_id,
            job.payment_session_id,
        )
        return IGNORED

    if not store.mark_paid(image_id, session_id):
        logger.info("Duplicate payment return for image %s, already past queue", image_id)
        return ALREADY_PROCESSED

    if current_app.config["ENQUEUE_ON_PAYMENT"]:
        from toonify.workers.processing import process_image_job

        (queue or ext.task_queue).enqueue(process_image_job, image_id)

    return QUEUED
