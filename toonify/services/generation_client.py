import io
import logging
import time
import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from PIL import Image as PILImage
from flask import current_app

from toonify.errors import (
    ConfigMissing,
    GenerationFailed,
    NoImageInResponse,
    Throttled,
    UpstreamUnreachable,
)

logger = logging.getLogger(__name__)


TOONIFY_PROMPT = (
    "Transform this photo into a Studio Ghibli style cartoon. "
    "Keep the same composition but make it look hand-drawn."
)

GENERATION_CONFIG = {
    "temperature": 0.2,
    "top_p": 0.95,
    "top_k": 32,
}


def configure():
    """Configure Gemini with API key."""
    api_key = current_app.config["GEMINI_API_KEY"]
    if not api_key:
        raise ConfigMissing("Gemini API key not configured")
    genai.configure(api_key=api_key)


def generate(source_bytes, mime_type, style_hint=TOONIFY_PROMPT, sleep=time.sleep):
    """Stylize an image with Gemini.

    Args:
        source_bytes: bytes of the source photo
        mime_type: mime type of ``source_bytes``
        style_hint: instruction text sent alongside the image
        sleep: delay function used between throttled attempts

    Returns:
        (output_bytes, output_mime_type)

    Raises:
        GenerationFailed (or a subclass) when no image can be produced.
        Throttled responses are retried with exponential backoff first.
    """
    configure()

    max_retries = current_app.config["GENERATION_MAX_RETRIES"]
    base_delay = current_app.config["GENERATION_RETRY_BASE_DELAY"]

    attempt = 0
    while True:
        try:
            response = _request(source_bytes, mime_type, style_hint)
            break
        except Throttled as e:
            if attempt >= max_retries:
                logger.error(
                    "Gemini still throttling after %d retries: %s", max_retries, e
                )
                raise GenerationFailed(
                    f"Generation service busy, gave up after {max_retries} retries"
                ) from e
            delay = base_delay * (2 ** attempt)
            attempt += 1
            logger.warning(
                "Gemini throttled (retry %d/%d), sleeping %.1fs",
                attempt,
                max_retries,
                delay,
            )
            sleep(delay)

    return _extract_image(response)


def _request(source_bytes, mime_type, style_hint):
    model = genai.GenerativeModel(current_app.config["GEMINI_MODEL"])
    try:
        return model.generate_content(
            [style_hint, {"mime_type": mime_type, "data": source_bytes}],
            generation_config=GENERATION_CONFIG,
            request_options={"timeout": current_app.config["GENERATION_TIMEOUT"]},
        )
    except google_exceptions.TooManyRequests as e:
        raise Throttled(str(e)) from e
    except google_exceptions.GoogleAPIError as e:
        raise UpstreamUnreachable(f"Gemini API error: {e}") from e


def _extract_image(response):
    """Pull the first inline image out of a Gemini response."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        raise NoImageInResponse("No image candidates returned from Gemini")

    content = getattr(candidates[0], "content", None)
    for part in getattr(content, "parts", None) or []:
        inline = getattr(part, "inline_data", None)
        if not inline or not inline.data:
            continue
        if not (inline.mime_type or "").startswith("image/"):
            continue
        _verify(inline.data)
        return inline.data, inline.mime_type

    raise NoImageInResponse("No image was generated by Gemini")


def _verify(image_bytes):
    try:
        PILImage.open(io.BytesIO(image_bytes)).verify()
    except Exception as e:
        raise GenerationFailed("Gemini returned an unreadable image") from e
