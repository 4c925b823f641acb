import logging
import secrets
import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from flask import current_app

from toonify.errors import StorageFailed

logger = logging.getLogger(__name__)

TOONIFIED_PREFIX = "toonified"

MIME_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}


def extension_for(mime_type):
    """File extension for a mime type; unmapped types use their subtype."""
    if mime_type in MIME_EXTENSIONS:
        return MIME_EXTENSIONS[mime_type]
    subtype = (mime_type or "").split("/")[-1].strip()
    return subtype or "jpg"


def original_key(owner_id, ext="jpg"):
    """Uploads live under the owner's namespace with a random name."""
    return f"{owner_id}/{secrets.token_hex(8)}.{ext}"


def toonified_key(job_id, mime_type):
    """Deterministic per job so reprocessing overwrites the previous output."""
    return f"{TOONIFIED_PREFIX}/toonified-{job_id}.{extension_for(mime_type)}"


def key_from_url(url):
    """Recover the storage key from a public URL, or None if foreign."""
    base = current_app.config["S3_PUBLIC_URL"].rstrip("/")
    if not url or not base or not url.startswith(base + "/"):
        return None
    return url[len(base) + 1:]


def _get_client():
    return boto3.client(
        "s3",
        endpoint_url=current_app.config["S3_ENDPOINT_URL"] or None,
        aws_access_key_id=current_app.config["S3_ACCESS_KEY"],
        aws_secret_access_key=current_app.config["S3_SECRET_KEY"],
        region_name=current_app.config["S3_REGION"],
        config=BotoConfig(signature_version="s3v4"),
    )


def upload(storage_key, data, content_type="image/jpeg", private=False):
    """Upload bytes to S3, replacing any object already at the key."""
    client = _get_client()
    bucket = current_app.config["S3_BUCKET_NAME"]
    acl = "private" if private else "public-read"

    try:
        client.put_object(
            Bucket=bucket,
            Key=storage_key,
            Body=data,
            ContentType=content_type,
            ACL=acl,
        )
    except (BotoCoreError, ClientError) as e:
        logger.error("S3 upload failed for %s: %s", storage_key, e)
        raise StorageFailed(f"Failed to upload {storage_key}") from e


def get_public_url(storage_key):
    """Return the public CDN URL for a storage key."""
    base = current_app.config["S3_PUBLIC_URL"].rstrip("/")
    return f"{base}/{storage_key}"


def delete_many(storage_keys):
    """Delete multiple objects from S3."""
    storage_keys = [k for k in storage_keys if k]
    if not storage_keys:
        return
    client = _get_client()
    bucket = current_app.config["S3_BUCKET_NAME"]
    objects = [{"Key": k} for k in storage_keys]
    try:
        client.delete_objects(
            Bucket=bucket,
            Delete={"Objects": objects},
        )
    except (BotoCoreError, ClientError) as e:
        raise StorageFailed("Failed to delete stored images") from e
