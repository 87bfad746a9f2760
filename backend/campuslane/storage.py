from __future__ import annotations
import logging
import secrets
import time
from functools import lru_cache
from typing import Any, Dict
import boto3
from botocore.client import Config
from .settings import settings


logger = logging.getLogger("campuslane.storage")

MAX_UPLOAD_BYTES = 300 * 1024 * 1024

ALLOWED_CONTENT_TYPES = (
	"image/jpeg",
	"image/png",
	"image/gif",
	"image/webp",
	"video/mp4",
	"video/webm",
	"video/quicktime",
	"application/pdf",
	"text/plain",
	"application/msword",
	"application/vnd.openxmlformats-officedocument.wordprocessingml.document",
	"application/vnd.ms-powerpoint",
	"application/vnd.openxmlformats-officedocument.presentationml.presentation",
)


@lru_cache(maxsize=1)
def get_s3_client():
	"""Return an S3 (or S3-compatible) client."""
	return boto3.client(
		"s3",
		endpoint_url=settings.s3_endpoint_url,
		aws_access_key_id=settings.aws_access_key_id,
		aws_secret_access_key=settings.aws_secret_access_key,
		region_name=settings.aws_region,
		config=Config(signature_version="s3v4"),
	)


def get_bucket_name() -> str:
	if not settings.s3_bucket:
		raise RuntimeError("S3_BUCKET not set")
	return settings.s3_bucket


def build_upload_key(file_name: str) -> str:
	return f"uploads/{int(time.time() * 1000)}-{secrets.token_hex(3)}-{file_name}"


def presign_upload(key: str, content_type: str) -> Dict[str, Any]:
	expires = settings.presign_expires_seconds
	url = get_s3_client().generate_presigned_url(
		ClientMethod="put_object",
		Params={"Bucket": get_bucket_name(), "Key": key, "ContentType": content_type},
		ExpiresIn=expires,
	)
	logger.info("presigned upload for %s", key)
	return {"url": url, "key": key, "expires": expires}


def file_url(key: str) -> str:
	return f"https://{get_bucket_name()}.s3.{settings.aws_region}.amazonaws.com/{key}"
