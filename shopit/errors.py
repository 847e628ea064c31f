"""
Error taxonomy shared by the catalog, media store and HTTP layers.

Every error carries the HTTP status it maps to, so route handlers can let
them propagate and the app-level exception handler renders the JSON body.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ShopError(Exception):
    """Base class for errors rendered as ``{success: false, message}``."""

    http_status: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        http_status: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if http_status is not None:
            self.http_status = http_status

    def as_payload(self) -> dict:
        payload = {"success": False, "message": self.message}
        for key, value in self.details.items():
            payload.setdefault(key, value)
        return payload


class ValidationError(ShopError):
    http_status = 400


class NotFoundError(ShopError):
    http_status = 404


class AuthError(ShopError):
    http_status = 400


class InvalidStateError(ShopError):
    http_status = 409


class UploadError(ShopError):
    http_status = 500


class MediaDeleteError(ShopError):
    http_status = 500


class RepositoryError(ShopError):
    http_status = 500


class MediaListError(ShopError):
    http_status = 500
