import io
from PIL import Image as PILImage, ImageOps, UnidentifiedImageError

from toonify.errors import BadRequest


MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10 MB
MAX_EDGE = 2048  # px; larger sources only slow generation down


def normalize_upload(image_bytes, content_type=None):
    """Turn an uploaded photo into the JPEG the pipeline stores.

    Any ``image/*`` upload Pillow can decode is accepted. Orientation from
    EXIF is applied to the pixels before the metadata is dropped, and the
    longest edge is capped at ``MAX_EDGE``.

    Returns:
        JPEG bytes

    Raises:
        BadRequest on anything that is not a usable image
    """
    if content_type and not content_type.startswith("image/"):
        raise BadRequest(f"Unsupported file type: {content_type}")
    if not image_bytes:
        raise BadRequest("Empty upload")
    if len(image_bytes) > MAX_UPLOAD_BYTES:
        raise BadRequest(
            f"Image too large: {len(image_bytes)} bytes (max {MAX_UPLOAD_BYTES})"
        )

    try:
        with PILImage.open(io.BytesIO(image_bytes)) as probe:
            probe.verify()
        img = PILImage.open(io.BytesIO(image_bytes))
        img = ImageOps.exif_transpose(img)
    except (
        UnidentifiedImageError,
        PILImage.DecompressionBombError,
        OSError,
        SyntaxError,
    ) as e:
        raise BadRequest("Invalid image file") from e

    if img.mode != "RGB":
        img = img.convert("RGB")
    img.thumbnail((MAX_EDGE, MAX_EDGE), PILImage.LANCZOS)

    buffer = io.BytesIO()
    img.save(buffer, format="JPEG", quality=90)
    return buffer.getvalue()
