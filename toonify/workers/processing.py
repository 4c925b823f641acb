"""RQ worker job: process a paid image outside the request cycle."""
import logging
from flask import current_app, has_app_context

from toonify import create_app
from toonify.errors import InvalidTransition, NotFound, ToonifyError
from toonify.handlers.processing import process_image

logger = logging.getLogger(__name__)

_worker_app = None


def _get_app():
    """Return an app instance for worker execution.

    Reuse the current app when already inside an app context (tests/CLI),
    otherwise lazily create the worker app once.
    """
    global _worker_app
    if has_app_context():
        return current_app._get_current_object()
    if _worker_app is None:
        _worker_app = create_app()
    return _worker_app


def process_image_job(image_id):
    """Process an image enqueued by the payment return.

    The claim inside the handler makes this safe to run alongside a
    dispatcher: whoever claims first does the work, the other skips.
    Failures are already persisted as ``error`` status, so nothing is
    re-raised for RQ to retry.
    """
    app = _get_app()
    with app.app_context():
        try:
            return process_image(image_id)
        except NotFound:
            logger.error("Image record %s not found", image_id)
        except InvalidTransition:
            logger.info("Image %s already claimed, skipping", image_id)
        except ToonifyError as e:
            logger.warning("Image %s failed: %s", image_id, e.message)
            return {"error": e.message}
        return None
