"""
Blob store - content-addressed storage for job sources and rendered archives.

A blob is identified by the id the store assigns on create plus the SHA1
fingerprint of its content. Readers address blobs through URLs of the form

    blobstore:///<blob_id>?fingerprint=<sha1>

and the fingerprint is verified when the blob is fetched.
"""

import logging
import shutil
import tempfile
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from urllib.parse import parse_qs, urlencode, urlparse

from rendercache.errors import BlobIntegrityError, BlobNotFoundError
from rendercache.utils import compute_file_sha1

logger = logging.getLogger(__name__)

BLOB_URL_SCHEME = "blobstore"


def build_blob_url(blob_id: str, fingerprint: str) -> str:
    """Build a blob reference URL."""
    return f"{BLOB_URL_SCHEME}:///{blob_id}?{urlencode({'fingerprint': fingerprint})}"


def parse_blob_url(url: str) -> tuple[str, str]:
    """
    Split a blob reference URL into (blob_id, fingerprint).

    Raises:
        ValueError: If the URL is not a blobstore URL or lacks either part
    """
    parsed = urlparse(url)
    if parsed.scheme != BLOB_URL_SCHEME:
        raise ValueError(f"Expected {BLOB_URL_SCHEME}:// URL, got: {url}")

    blob_id = parsed.path.lstrip("/")
    if not blob_id or parsed.netloc:
        raise ValueError(f"Missing blob id in URL: {url}")

    fingerprints = parse_qs(parsed.query).get("fingerprint", [])
    if len(fingerprints) != 1 or not fingerprints[0]:
        raise ValueError(f"Missing fingerprint in URL: {url}")

    return blob_id, fingerprints[0]


class Blobstore(ABC):
    """
    Abstract base class for blob storage.

    Implementations must provide methods to:
    - Upload a local file and return (blob_id, fingerprint)
    - Fetch a blob into a local file, verifying its fingerprint
    - Delete a blob
    """

    @abstractmethod
    def create(self, path: Path | str) -> tuple[str, str]:
        """
        Upload a local file.

        Args:
            path: Local file to upload

        Returns:
            (blob_id, sha1 fingerprint of the content)
        """
        pass

    @abstractmethod
    def get(self, blob_id: str, fingerprint: str) -> Path:
        """
        Fetch a blob into a new local file owned by the caller.

        Args:
            blob_id: Id returned by create
            fingerprint: Expected SHA1 of the content

        Returns:
            Path of the local copy

        Raises:
            BlobNotFoundError: If the blob does not exist
            BlobIntegrityError: If the content does not match fingerprint
        """
        pass

    @abstractmethod
    def delete(self, blob_id: str) -> None:
        """Delete a blob. Deleting a missing blob is not an error."""
        pass


class LocalBlobstore(Blobstore):
    """
    Blob store on local disk.

    Stores each blob as a file named by its id:
        blobs_dir/
            {blob_id}
    """

    def __init__(self, blobs_dir: Path | str):
        self._blobs_dir = Path(blobs_dir)
        self._blobs_dir.mkdir(parents=True, exist_ok=True)

    @property
    def blobs_dir(self) -> Path:
        return self._blobs_dir

    def create(self, path: Path | str) -> tuple[str, str]:
        src = Path(path)
        blob_id = str(uuid.uuid4())
        dst = self._blobs_dir / blob_id

        shutil.copyfile(src, dst)
        fingerprint = compute_file_sha1(dst)

        logger.debug(f"Created blob {blob_id} from {src} (sha1={fingerprint})")
        return blob_id, fingerprint

    def get(self, blob_id: str, fingerprint: str) -> Path:
        src = self._blobs_dir / blob_id
        if not src.is_file():
            raise BlobNotFoundError(f"Blob not found: {blob_id}")

        fd, tmp_name = tempfile.mkstemp(prefix="rendercache-blob-")
        dst = Path(tmp_name)
        try:
            with open(fd, "wb") as out, open(src, "rb") as f:
                shutil.copyfileobj(f, out)

            actual = compute_file_sha1(dst)
            if actual != fingerprint:
                raise BlobIntegrityError(
                    f"Blob {blob_id} fingerprint mismatch: expected {fingerprint}, got {actual}"
                )
        except BaseException:
            dst.unlink(missing_ok=True)
            raise

        return dst

    def delete(self, blob_id: str) -> None:
        (self._blobs_dir / blob_id).unlink(missing_ok=True)
