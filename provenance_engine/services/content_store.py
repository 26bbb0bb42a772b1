"""Content-addressed persistence for packaged artifacts."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from provenance_engine.artifacts.hashing import is_sha256_hex, sha256_hex
from provenance_engine.core.errors import NotFoundError, StorageError
from provenance_engine.services.storage_client import BlobStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredContent:
  address: str
  locator: str
  size: int


class ContentStore:
  """Store blobs under the SHA-256 of their bytes so equal content shares one address."""

  def __init__(self, blobs: BlobStore, prefix: str = "artifacts") -> None:
    self._blobs = blobs
    self._prefix = prefix.strip("/")

  def object_name(self, address: str) -> str:
    return f"{self._prefix}/{address}.zip"

  async def put(self, data: bytes) -> StoredContent:
    """Persist bytes and return their content address; re-putting the same bytes is a no-op."""
    address = sha256_hex(data)
    object_name = self.object_name(address)
    try:
      if await self._blobs.exists(object_name):
        logger.info("Content %s already stored; skipping upload", address)
        locator = self._blobs.public_url(object_name)
      else:
        locator = await self._blobs.upload(object_name, data, "application/zip")
    except Exception as exc:
      logger.error("Content upload failed address=%s", address, exc_info=True)
      raise StorageError(f"Failed to store content {address}: {exc}") from exc
    return StoredContent(address=address, locator=locator, size=len(data))

  async def get(self, address: str) -> bytes:
    """Fetch bytes by address and check they still hash to it."""
    if not is_sha256_hex(address):
      raise NotFoundError(f"Content {address} not found.")
    object_name = self.object_name(address)
    try:
      data = await self._blobs.download(object_name)
    except FileNotFoundError as exc:
      raise NotFoundError(f"Content {address} not found.") from exc
    except Exception as exc:
      logger.error("Content download failed address=%s", address, exc_info=True)
      raise StorageError(f"Failed to read content {address}: {exc}") from exc
    if sha256_hex(data) != address:
      raise StorageError(f"Stored content {address} is corrupted.")
    return data

