"""Checkout and processing endpoints called from the browser.

Both answer CORS preflights and always reply with JSON, never a bare 500.
"""
import logging
from flask import request
from werkzeug.exceptions import HTTPException

from toonify.blueprints.functions import functions_bp
from toonify.errors import BadRequest, ToonifyError
from toonify.handlers import checkout, processing
from toonify.services import auth_service

logger = logging.getLogger(__name__)


@functions_bp.errorhandler(Exception)
def handle_unexpected(e):
    if isinstance(e, HTTPException):
        return e
    if isinstance(e, ToonifyError):
        return {"error": e.message}, e.status_code
    logger.exception("Unhandled error in %s", request.path)
    return {"error": "Unhandled server error"}, 500


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequest("Invalid JSON in request body")
    return data


@functions_bp.route("/create-checkout-session", methods=["POST", "OPTIONS"])
def create_checkout_session():
    if request.method == "OPTIONS":
        return "", 200
    logger.info("Received request to create checkout session")
    result = checkout.create_checkout(
        request.headers.get("Authorization"),
        _json_body(),
        origin=request.headers.get("Origin"),
    )
    return result, 200


@functions_bp.route("/process-image", methods=["POST", "OPTIONS"])
def process_image():
    if request.method == "OPTIONS":
        return "", 200
    caller = auth_service.authenticate(request.headers.get("Authorization"))
    image_id = _json_body().get("imageId")
    result = processing.process_image(image_id, owner_id=caller.user_id)
    return result, 200
