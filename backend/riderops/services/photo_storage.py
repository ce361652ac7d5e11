# Overview: Adapter for the external blob storage that holds verification, receipt and deposit photos.

"""
Photo Storage

The engine only ever keeps an opaque reference string. Clients either upload
through the storage service themselves and send the reference, or send the
image inline (base64) and let the engine upload it here.

Unavailability is reported as DependencyError. Whether that blocks the
caller is decided by the caller: stock returns hard-fail, receipts and
deposit proofs degrade to "no photo".
"""

from __future__ import annotations

import base64
import binascii
import os
import uuid

from flask import current_app

from ..validation import DependencyError, ValidationError


class PhotoStorage:
    """Interface for photo backends."""

    def save(self, data: bytes, *, prefix: str) -> str:
        raise NotImplementedError


class LocalPhotoStorage(PhotoStorage):
    """Writes photos under a local directory; references look like local://<name>."""

    def __init__(self, root: str):
        self.root = root

    def save(self, data: bytes, *, prefix: str) -> str:
        name = f"{prefix}-{uuid.uuid4().hex}.jpg"
        try:
            os.makedirs(self.root, exist_ok=True)
            with open(os.path.join(self.root, name), "wb") as fh:
                fh.write(data)
        except OSError as exc:
            raise DependencyError("Photo storage unavailable", reason=str(exc)) from exc
        return f"local://{name}"


def init_photo_storage(app) -> None:
    if "photo_storage" not in app.extensions:
        root = app.config["PHOTO_STORAGE_DIR"]
        if not os.path.isabs(root):
            root = os.path.join(app.root_path, os.pardir, root)
        app.extensions["photo_storage"] = LocalPhotoStorage(os.path.normpath(root))


def get_photo_storage() -> PhotoStorage:
    return current_app.extensions["photo_storage"]


def decode_photo(payload: str, field: str) -> bytes:
    """Decode an inline base64 photo (data: URLs accepted)."""
    if not isinstance(payload, str) or not payload.strip():
        raise ValidationError(f"{field} must be a base64 string", field=field)
    if payload.startswith("data:") and "," in payload:
        payload = payload.split(",", 1)[1]
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError(f"{field} is not valid base64", field=field) from exc


def resolve_photo(ref: str | None, payload: str | None, *, prefix: str, field: str) -> str | None:
    """
    Return a storage reference for a photo given as either a ref or an inline payload.

    Raises DependencyError if an inline payload cannot be stored.
    """
    if ref:
        return ref
    if payload is None:
        return None
    data = decode_photo(payload, field)
    return get_photo_storage().save(data, prefix=prefix)
