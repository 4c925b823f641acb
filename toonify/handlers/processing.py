"""Drive one queued image through generation to a terminal state.

in_queue -> processing -> complete | error

Every failure after the claim leaves the job in ``error`` (best effort) and
re-raises as a ToonifyError so the HTTP layer can answer with JSON.
"""
import logging
import httpx
from flask import current_app

from toonify.errors import (
    BadRequest,
    InvalidTransition,
    NotFound,
    ToonifyError,
    UpstreamUnreachable,
)
from toonify.models.image_job import ImageJob
from toonify.services import generation_client, job_store, storage_service

logger = logging.getLogger(__name__)


def fetch_source(url):
    """Download the original upload. Returns (bytes, mime_type)."""
    try:
        resp = httpx.get(
            url,
            timeout=current_app.config["SOURCE_FETCH_TIMEOUT"],
            follow_redirects=True,
        )
        resp.raise_for_status()
    except httpx.HTTPError as e:
        raise UpstreamUnreachable(f"Failed to fetch original image: {e}") from e

    mime_type = resp.headers.get("content-type", "").split(";")[0].strip()
    return resp.content, mime_type or "image/jpeg"


def process_image(
    image_id,
    owner_id=None,
    *,
    store=job_store,
    storage=storage_service,
    generator=generation_client,
    fetch=fetch_source,
):
    """Process a queued image.

    Args:
        image_id: job to process
        owner_id: when given, the job must belong to this user

    Returns:
        {"success": True, "imageUrl": <public url of the toonified image>}
    """
    if not image_id:
        raise BadRequest("Image ID is required")

    job = store.get(image_id)
    if owner_id is not None and job.owner_id != owner_id:
        raise NotFound()
    source_url = job.original_image_url

    if not store.claim(image_id):
        logger.info("Image %s not claimable (status %s), skipping", image_id, job.status)
        raise InvalidTransition("Image is not queued for processing")

    logger.info("Processing image %s from %s", image_id, source_url)
    try:
        source_bytes, mime_type = fetch(source_url)
        output, output_mime = generator.generate(
            source_bytes, mime_type, generation_client.TOONIFY_PROMPT
        )

        storage_key = storage.toonified_key(image_id, output_mime)
        storage.upload(storage_key, output, content_type=output_mime)
        url = storage.get_public_url(storage_key)

        store.update_status(
            image_id,
            ImageJob.COMPLETE,
            toonified_image_url=url,
            toonified_storage_key=storage_key,
        )
    except Exception as e:
        logger.exception("Processing failed for image %s", image_id)
        _flag_error(store, image_id, e)
        if isinstance(e, ToonifyError):
            raise
        raise ToonifyError(f"Error processing image: {e}") from e

    logger.info("Image %s complete: %s", image_id, url)
    return {"success": True, "imageUrl": url}


def _flag_error(store, image_id, error):
    """Best-effort flip to ``error``; a failure here is only logged."""
    try:
        store.mark_failed(image_id, str(error))
    except Exception:
        logger.exception("Error updating image %s status after failure", image_id)
