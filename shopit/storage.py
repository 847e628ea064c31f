"""
Media store abstraction for product images.

An S3-compatible implementation backs production deployments; the in-memory
client is a test double that behaves like the remote host (distinct object
per upload, idempotent destroy, prefix listing).
"""

from __future__ import annotations

import io
import re
import uuid
from dataclasses import dataclass, field
from typing import Literal, Optional, Protocol
from urllib.parse import urlsplit

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from PIL import Image, UnidentifiedImageError

from shopit.errors import (
    InvalidStateError,
    MediaDeleteError,
    MediaListError,
    UploadError,
)

DestroyStatus = Literal["ok", "not_found"]

_EXTENSIONS = {
    "JPEG": "jpg",
    "PNG": "png",
    "GIF": "gif",
    "WEBP": "webp",
    "BMP": "bmp",
    "TIFF": "tiff",
}
_CONTENT_TYPES = {
    "jpg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "bmp": "image/bmp",
    "tiff": "image/tiff",
}


@dataclass(frozen=True)
class UploadResult:
    remote_url: str
    public_id: str


@dataclass(frozen=True)
class MediaObject:
    remote_url: str
    public_id: str


class MediaStoreClient(Protocol):
    """Defines the operations the catalog needs from the media host."""

    folder: str

    def upload(self, data: bytes, filename: str, folder: Optional[str] = None) -> UploadResult:
        ...

    def destroy(self, public_id: str) -> DestroyStatus:
        ...

    def list(self, prefix: str) -> list[MediaObject]:
        ...


def derive_public_id(url: Optional[str], folder: str = "products") -> str:
    """
    Recover the media identifier from a stored image URL.

    Query string and fragment are ignored. When the folder appears as a path
    segment everything after it is kept (so nested keys and version segments
    placed before the folder survive); otherwise the last segment is used.
    Only the final extension is removed.
    """
    if not url:
        raise InvalidStateError(
            "Product has no image to derive a media identifier from"
        )
    path = urlsplit(url).path.strip("/")
    segments = [s for s in path.split("/") if s]
    if not segments:
        raise InvalidStateError(f"Cannot derive media identifier from {url!r}")

    if folder in segments:
        index = len(segments) - 1 - segments[::-1].index(folder)
        tail = segments[index + 1 :]
    else:
        tail = segments[-1:]
    if not tail:
        raise InvalidStateError(f"Cannot derive media identifier from {url!r}")

    stem, dot, _ext = tail[-1].rpartition(".")
    tail[-1] = stem if dot and stem else tail[-1]
    return "/".join([folder, *tail])


def strip_query(url: str) -> str:
    parts = urlsplit(url)
    return parts._replace(query="", fragment="").geturl()


def inspect_image(data: bytes) -> str:
    """Validate image bytes and return the file extension for their format."""
    if not data:
        raise UploadError("No image data received")
    try:
        with Image.open(io.BytesIO(data)) as image:
            image_format = image.format
            image.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise UploadError(
            "Uploaded file is not a valid image", details={"error": str(exc)}
        ) from exc
    return _EXTENSIONS.get(image_format or "", (image_format or "bin").lower())


def build_object_name(filename: str) -> str:
    """Return a unique, URL-safe base name for an uploaded file."""
    base = filename.rsplit("/", 1)[-1]
    stem = base.rsplit(".", 1)[0] if "." in base else base
    stem = re.sub(r"[^A-Za-z0-9_-]+", "_", stem).strip("_").lower() or "image"
    return f"{stem}_{uuid.uuid4().hex[:12]}"


@dataclass
class InMemoryMediaStoreClient:
    """Test double for media store interactions."""

    base_url: str = "https://media.test"
    folder: str = "products"
    stored_objects: dict = field(default_factory=dict)
    destroy_calls: list = field(default_factory=list)

    def _url_for(self, public_id: str, extension: str) -> str:
        return f"{self.base_url}/{public_id}.{extension}"

    def upload(self, data: bytes, filename: str, folder: Optional[str] = None) -> UploadResult:
        extension = inspect_image(data)
        public_id = f"{folder or self.folder}/{build_object_name(filename)}"
        url = self._url_for(public_id, extension)
        self.stored_objects[public_id] = (url, data)
        return UploadResult(remote_url=url, public_id=public_id)

    def put(self, public_id: str, extension: str = "png", data: bytes = b"") -> str:
        """Seed an object directly, bypassing upload validation."""
        url = self._url_for(public_id, extension)
        self.stored_objects[public_id] = (url, data)
        return url

    def destroy(self, public_id: str) -> DestroyStatus:
        self.destroy_calls.append(public_id)
        if self.stored_objects.pop(public_id, None) is None:
            return "not_found"
        return "ok"

    def list(self, prefix: str) -> list[MediaObject]:
        return [
            MediaObject(remote_url=url, public_id=public_id)
            for public_id, (url, _data) in self.stored_objects.items()
            if public_id.startswith(prefix)
        ]

    def reset(self) -> None:
        """Clear all stored objects (useful in tests)."""
        self.stored_objects.clear()
        self.destroy_calls.clear()


@dataclass
class S3MediaStoreClient:
    """
    S3-compatible media store.

    Object keys are ``<public_id>.<ext>``; the public identifier is the key
    without its extension, so destroy resolves the key by prefix lookup.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_base_url: str = ""
    folder: str = "products"

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )
        if not self.public_base_url:
            self.public_base_url = f"https://{self.bucket}.s3.amazonaws.com"
        self.public_base_url = self.public_base_url.rstrip("/")

    def _url_for(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    def upload(self, data: bytes, filename: str, folder: Optional[str] = None) -> UploadResult:
        extension = inspect_image(data)
        public_id = f"{folder or self.folder}/{build_object_name(filename)}"
        key = f"{public_id}.{extension}"
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=_CONTENT_TYPES.get(extension, "application/octet-stream"),
            )
        except (BotoCoreError, ClientError) as exc:
            raise UploadError(
                "Error uploading image to media store. Please try again later.",
                details={"error": str(exc)},
            ) from exc
        return UploadResult(remote_url=self._url_for(key), public_id=public_id)

    def _keys_for(self, public_id: str) -> list[str]:
        response = self._client.list_objects_v2(
            Bucket=self.bucket, Prefix=f"{public_id}."
        )
        keys = []
        for item in response.get("Contents", []):
            key = item["Key"]
            if key.rpartition(".")[0] == public_id:
                keys.append(key)
        return keys

    def destroy(self, public_id: str) -> DestroyStatus:
        try:
            keys = self._keys_for(public_id)
            if not keys:
                return "not_found"
            for key in keys:
                self._client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise MediaDeleteError(
                "Error deleting image from media store.",
                details={"error": str(exc)},
            ) from exc
        return "ok"

    def list(self, prefix: str) -> list[MediaObject]:
        objects: list[MediaObject] = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for item in page.get("Contents", []):
                    key = item["Key"]
                    public_id = key.rpartition(".")[0] or key
                    objects.append(
                        MediaObject(remote_url=self._url_for(key), public_id=public_id)
                    )
        except (BotoCoreError, ClientError) as exc:
            raise MediaListError(
                "Error listing images in media store.",
                details={"error": str(exc)},
            ) from exc
        return objects
