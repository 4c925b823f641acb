"""Dashboard API: the caller's images and the payment return."""
import logging
from functools import wraps
from flask import current_app, g, redirect, request

from toonify.blueprints.images import images_bp
from toonify.errors import BadRequest, NotFound
from toonify.handlers.payment_return import handle_payment_return
from toonify.models.image_job import ImageJob
from toonify.services import auth_service, image_service, job_store, storage_service

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 100


def require_caller(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        g.caller = auth_service.authenticate(request.headers.get("Authorization"))
        return view(*args, **kwargs)

    return wrapped


def _owned_job(image_id):
    job = job_store.get(image_id)
    if job.owner_id != g.caller.user_id:
        raise NotFound()
    return job


@images_bp.route("/api/images", methods=["POST"])
@require_caller
def upload_image():
    """Store an uploaded photo under the caller's namespace and open a job."""
    upload = request.files.get("file")
    if upload is None:
        raise BadRequest("No file uploaded")

    data = image_service.normalize_upload(upload.read(), upload.mimetype)
    storage_key = storage_service.original_key(g.caller.user_id, "jpg")
    storage_service.upload(storage_key, data, content_type="image/jpeg")

    job = job_store.create(
        g.caller.user_id,
        storage_service.get_public_url(storage_key),
        storage_key,
    )
    return job.to_dict(), 201


@images_bp.route("/api/images", methods=["GET"])
@require_caller
def list_images():
    status = request.args.get("status")
    if status:
        if status not in ImageJob.STATUSES:
            raise BadRequest(f"Unknown status: {status}")
        limit = max(1, min(request.args.get("limit", 1, type=int), MAX_LIST_LIMIT))
        jobs = job_store.list_by_status(status, limit, owner_id=g.caller.user_id)
    else:
        jobs = job_store.list_for_owner(g.caller.user_id)
    return {"images": [job.to_dict() for job in jobs]}


@images_bp.route("/api/images/<image_id>", methods=["GET"])
@require_caller
def get_image(image_id):
    return _owned_job(image_id).to_dict()


@images_bp.route("/api/images/<image_id>/quality", methods=["PUT"])
@require_caller
def set_quality(image_id):
    _owned_job(image_id)
    data = request.get_json(silent=True) or {}
    job = job_store.set_quality(image_id, data.get("qualityTier"))
    return job.to_dict()


@images_bp.route("/api/images/<image_id>/retry", methods=["POST"])
@require_caller
def retry_image(image_id):
    _owned_job(image_id)
    job = job_store.retry(image_id)
    logger.info("Image %s re-queued by owner", image_id)
    return job.to_dict()


@images_bp.route("/api/images/<image_id>", methods=["DELETE"])
@require_caller
def delete_image(image_id):
    _owned_job(image_id)
    job_store.delete(image_id)
    return "", 204


@images_bp.route("/payment-return")
def payment_return():
    """Stripe lands here; apply the result, then drop the query string."""
    outcome = handle_payment_return(request.args)
    logger.info(
        "Payment return for image %s: %s", request.args.get("image_id"), outcome
    )
    return redirect(current_app.config["DASHBOARD_URL"], code=302)
