"""Persistence for image jobs.

All status changes go through this module so the transition graph on
``ImageJob`` and the "toonified URL iff complete" rule hold for every caller.
"""
import logging
from datetime import datetime, timezone

from toonify.errors import BadRequest, InvalidTransition, NotFound
from toonify.extensions import db
from toonify.models.image_job import ImageJob
from toonify.services import storage_service

logger = logging.getLogger(__name__)

# Fields callers may merge in alongside a status change
PATCHABLE_FIELDS = {
    "toonified_image_url",
    "toonified_storage_key",
    "payment_session_id",
    "payment_status",
    "quality_tier",
    "error_message",
}


def _now():
    return datetime.now(timezone.utc)


def create(owner_id, original_image_url, original_storage_key=""):
    job = ImageJob(
        owner_id=owner_id,
        original_image_url=original_image_url,
        original_storage_key=original_storage_key,
        quality_tier=ImageJob.REGULAR,
        status=ImageJob.NOT_TOONIFIED,
    )
    db.session.add(job)
    db.session.commit()
    logger.info("Created image job %s for owner %s", job.id, owner_id)
    return job


def get(job_id):
    job = db.session.get(ImageJob, job_id) if job_id else None
    if job is None:
        raise NotFound()
    return job


def _get_for_update(job_id):
    stmt = (
        db.select(ImageJob)
        .where(ImageJob.id == job_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    job = db.session.execute(stmt).scalar_one_or_none()
    if job is None:
        raise NotFound()
    return job


def update_status(job_id, new_status, **patch):
    """Move a job along the transition graph, merging ``patch`` fields.

    Raises:
        NotFound, InvalidTransition, ValueError for unknown patch fields.
    """
    unknown = set(patch) - PATCHABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot patch fields: {sorted(unknown)}")

    job = _get_for_update(job_id)
    if not job.can_transition(new_status):
        db.session.rollback()
        raise InvalidTransition(
            f"Cannot move image from {job.status} to {new_status}"
        )

    if new_status == ImageJob.COMPLETE:
        if not patch.get("toonified_image_url"):
            db.session.rollback()
            raise ValueError("toonified_image_url is required to complete a job")
    else:
        patch["toonified_image_url"] = None
        patch["toonified_storage_key"] = None

    previous = job.status
    for field, value in patch.items():
        setattr(job, field, value)
    job.status = new_status
    job.updated_at = _now()
    db.session.commit()

    logger.info("Image job %s: %s -> %s", job_id, previous, new_status)
    return job


def _conditional_update(job_id, from_statuses, values):
    """UPDATE ... WHERE status IN from_statuses. Returns True if a row moved."""
    values = dict(values, updated_at=_now())
    result = db.session.execute(
        db.update(ImageJob)
        .where(ImageJob.id == job_id, ImageJob.status.in_(from_statuses))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount == 1


def claim(job_id):
    """Atomically take a queued job for processing.

    Returns False when the job is not ``in_queue`` any more, e.g. another
    dispatcher claimed it first.
    """
    claimed = _conditional_update(
        job_id,
        [ImageJob.IN_QUEUE],
        {"status": ImageJob.PROCESSING, "error_message": None},
    )
    if claimed:
        logger.info("Image job %s: in_queue -> processing", job_id)
    return claimed


def mark_paid(job_id, session_id):
    """Queue a job after payment confirmation.

    Only unpaid or already-queued jobs move, so a replayed callback cannot
    pull a processing, complete or failed job back into the queue.
    """
    moved = _conditional_update(
        job_id,
        [ImageJob.NOT_TOONIFIED, ImageJob.IN_QUEUE],
        {
            "status": ImageJob.IN_QUEUE,
            "payment_status": ImageJob.PAYMENT_COMPLETED,
            "payment_session_id": session_id,
        },
    )
    if moved:
        logger.info("Image job %s paid (session %s), queued", job_id, session_id)
    return moved


def mark_failed(job_id, message):
    """processing -> error, recording a short reason."""
    # The session may be unusable after the failure that got us here
    db.session.rollback()
    return update_status(job_id, ImageJob.ERROR, error_message=(message or "")[:500])


def retry(job_id):
    """Send a failed job back to the queue. Status reset only."""
    job = get(job_id)
    if job.status != ImageJob.ERROR:
        raise InvalidTransition("Only failed images can be retried")
    return update_status(job_id, ImageJob.IN_QUEUE, error_message=None)


def _require_unpaid(job):
    if job.status != ImageJob.NOT_TOONIFIED:
        raise InvalidTransition("Quality can only be changed before payment")


def _require_tier(tier):
    if tier not in ImageJob.QUALITY_TIERS:
        raise BadRequest(f"Unknown quality tier: {tier}")


def set_quality(job_id, tier):
    _require_tier(tier)
    job = _get_for_update(job_id)
    _require_unpaid(job)
    job.quality_tier = tier
    job.updated_at = _now()
    db.session.commit()
    return job


def check_checkout_allowed(job):
    _require_unpaid(job)


def record_checkout(job_id, session_id, tier):
    """Persist the checkout session and the selected tier (last one wins)."""
    _require_tier(tier)
    job = _get_for_update(job_id)
    _require_unpaid(job)
    job.payment_session_id = session_id
    job.quality_tier = tier
    job.updated_at = _now()
    db.session.commit()
    return job


def list_by_status(status, limit=1, owner_id=None):
    stmt = db.select(ImageJob).where(ImageJob.status == status)
    if owner_id is not None:
        stmt = stmt.where(ImageJob.owner_id == owner_id)
    stmt = stmt.order_by(ImageJob.updated_at.asc()).limit(limit)
    return list(db.session.execute(stmt).scalars())


def list_for_owner(owner_id):
    stmt = (
        db.select(ImageJob)
        .where(ImageJob.owner_id == owner_id)
        .order_by(ImageJob.created_at.desc())
    )
    return list(db.session.execute(stmt).scalars())


def find_stale(status, older_than):
    """Jobs sitting in ``status`` without an update for ``older_than``."""
    cutoff = _now() - older_than
    stmt = db.select(ImageJob).where(
        ImageJob.status == status, ImageJob.updated_at < cutoff
    )
    return list(db.session.execute(stmt).scalars())


def delete(job_id):
    """Remove the job's blobs, then the record itself."""
    job = get(job_id)
    keys = [
        job.original_storage_key,
        job.toonified_storage_key
        or storage_service.key_from_url(job.toonified_image_url),
    ]
    storage_service.delete_many(keys)
    db.session.delete(job)
    db.session.commit()
    logger.info("Deleted image job %s", job_id)


def count_by_status():
    rows = db.session.execute(
        db.select(ImageJob.status, db.func.count(ImageJob.id)).group_by(
            ImageJob.status
        )
    ).all()
    return {status: count for status, count in rows}

