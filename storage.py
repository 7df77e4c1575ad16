"""
Asset storage for product images and payment screenshots.

Both stores satisfy the same contract: `save` returns a StoredAsset whose
`handle` is all `delete` needs to remove that exact asset later.
"""
import logging
import os
import shutil
import time
from typing import Optional
from uuid import uuid4

import cloudinary
import cloudinary.uploader
from fastapi import UploadFile
from pydantic import BaseModel

from config import Settings

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {"jpg", "jpeg", "png"}


class UnsupportedUpload(ValueError):
    pass


class StoredAsset(BaseModel):
    url: str
    handle: str


def has_file(upload: Optional[UploadFile]) -> bool:
    return upload is not None and bool(getattr(upload, "filename", ""))


def file_extension(filename: str) -> str:
    extension = os.path.splitext(filename or "")[1].lower().lstrip(".")
    if extension not in ALLOWED_EXTENSIONS:
        raise UnsupportedUpload("Unsupported image format. Upload PNG, JPG or JPEG files.")
    return extension


class LocalAssetStore:
    def __init__(self, upload_dir: str, base_url: str = ""):
        self.upload_dir = os.path.abspath(upload_dir)
        self.base_url = base_url.rstrip("/")
        os.makedirs(self.upload_dir, exist_ok=True)

    def save(self, upload: UploadFile, fieldname: str) -> StoredAsset:
        extension = file_extension(upload.filename)
        filename = f"{fieldname}_{uuid4().hex}.{extension}"
        destination = os.path.join(self.upload_dir, filename)
        with open(destination, "wb") as out:
            shutil.copyfileobj(upload.file, out)
        return StoredAsset(url=f"{self.base_url}/uploads/{filename}", handle=filename)

    def delete(self, handle: str) -> None:
        target = os.path.abspath(os.path.join(self.upload_dir, handle))
        if os.path.dirname(target) != self.upload_dir:
            raise ValueError(f"Refusing to delete outside upload dir: {handle!r}")
        try:
            os.remove(target)
        except FileNotFoundError:
            return


class CloudinaryAssetStore:
    def __init__(self, cloud_name: str, api_key: str, api_secret: str, folder: str = "cloud9pastries"):
        cloudinary.config(cloud_name=cloud_name, api_key=api_key, api_secret=api_secret, secure=True)
        self.folder = folder

    def save(self, upload: UploadFile, fieldname: str) -> StoredAsset:
        file_extension(upload.filename)
        result = cloudinary.uploader.upload(
            upload.file,
            folder=self.folder,
            public_id=f"{fieldname}_{int(time.time() * 1000)}",
            allowed_formats=sorted(ALLOWED_EXTENSIONS),
            resource_type="image",
        )
        return StoredAsset(url=result["secure_url"], handle=result["public_id"])

    def delete(self, handle: str) -> None:
        result = cloudinary.uploader.destroy(handle)
        if isinstance(result, dict) and result.get("result") not in ("ok", "not found"):
            raise RuntimeError(f"Cloudinary destroy returned {result!r}")


def build_asset_store(settings: Settings):
    if settings.storage_backend == "cloudinary":
        if not (settings.cloud_name and settings.cloud_key and settings.cloud_secret):
            raise RuntimeError("CLOUD_NAME, CLOUD_KEY and CLOUD_SECRET are required for cloudinary storage")
        return CloudinaryAssetStore(
            settings.cloud_name, settings.cloud_key, settings.cloud_secret, settings.cloudinary_folder
        )
    return LocalAssetStore(settings.upload_dir, settings.public_base_url)


def delete_asset_quietly(store, handle: Optional[str]) -> None:
    """Background task: remove an asset, logging instead of raising."""
    if not handle:
        return
    try:
        store.delete(handle)
    except Exception:
        logger.exception("Asset delete failed for %s", handle)
