"""
Media store adapter

Uploads in-memory file buffers (event images, sponsor logos, payment
receipts) to Cloudinary and hands back durable URLs.
"""

import io
import logging
from contextlib import contextmanager
from typing import Iterator, List, NamedTuple, Optional, Protocol

import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError

logger = logging.getLogger(__name__)

EVENTS_FOLDER = "events"
SPONSORS_FOLDER = "events/sponsors"
RECEIPTS_FOLDER = "receipts"


class MediaStoreError(Exception):
    pass


class StoredMedia(NamedTuple):
    url: str
    public_id: str


class MediaStore(Protocol):
    def upload(self, data: bytes, folder: str) -> StoredMedia: ...

    def delete(self, public_id: str) -> None: ...


class CloudinaryStore:
    """Cloudinary client built from explicit credentials.

    Credentials are passed on every call instead of through
    ``cloudinary.config()`` so several stores can coexist in one process.
    """

    def __init__(self, cloud_name: Optional[str], api_key: Optional[str], api_secret: Optional[str]):
        self._options = {
            "cloud_name": cloud_name,
            "api_key": api_key,
            "api_secret": api_secret,
            "secure": True,
        }

    def upload(self, data: bytes, folder: str) -> StoredMedia:
        try:
            result = cloudinary.uploader.upload(io.BytesIO(data), folder=folder, **self._options)
        except (CloudinaryError, ValueError) as e:
            raise MediaStoreError(f"Upload to {folder} failed: {e}") from e
        return StoredMedia(url=result["secure_url"], public_id=result["public_id"])

    def delete(self, public_id: str) -> None:
        try:
            cloudinary.uploader.destroy(public_id, **self._options)
        except (CloudinaryError, ValueError) as e:
            raise MediaStoreError(f"Delete of {public_id} failed: {e}") from e


class StagedUploads:
    def __init__(self, store: MediaStore):
        self.store = store
        self.assets: List[StoredMedia] = []

    def upload(self, data: bytes, folder: str) -> str:
        asset = self.store.upload(data, folder)
        self.assets.append(asset)
        return asset.url

    def discard(self) -> None:
        for asset in self.assets:
            try:
                self.store.delete(asset.public_id)
            except MediaStoreError:
                logger.warning("Could not remove orphaned upload %s", asset.public_id, exc_info=True)
        self.assets = []


@contextmanager
def staged_uploads(store: MediaStore) -> Iterator[StagedUploads]:
    """Yield an upload stage; if the block fails, the staged uploads are deleted."""
    stage = StagedUploads(store)
    try:
        yield stage
    except BaseException:
        if stage.assets:
            logger.info("Discarding %d staged upload(s)", len(stage.assets))
        stage.discard()
        raise
