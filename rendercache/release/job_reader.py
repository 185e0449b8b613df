"""
Job archive reader - parses a job tarball stored in the blob store.

The reader is created from a blob URL without doing any I/O. read()
fetches the blob (verifying its fingerprint), extracts it into a private
temp directory and parses job.MF. The extracted files stay on disk until
close(), because the renderer reads template sources from them.

Usage:
    factory = ReaderFactory(blobstore)
    with factory.new_tar_reader(url) as reader:
        job = reader.read()
"""

import logging
import shutil
import tarfile
import tempfile
from pathlib import Path
from typing import Optional

import yaml

from rendercache.blobstore import Blobstore, parse_blob_url
from rendercache.errors import JobReadError
from rendercache.schemas import JobDescription

logger = logging.getLogger(__name__)

JOB_MANIFEST_NAME = "job.MF"


class TarReader:
    """
    One-shot reader for a job tarball.

    Owns the fetched blob and the extraction directory until close().
    """

    def __init__(self, blob_url: str, blobstore: Blobstore):
        self._blob_url = blob_url
        self._blobstore = blobstore
        self._archive_path: Optional[Path] = None
        self._extracted_dir: Optional[Path] = None
        self._read = False
        self._closed = False

    @property
    def blob_url(self) -> str:
        return self._blob_url

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self) -> JobDescription:
        """
        Fetch, extract and parse the job archive.

        Returns:
            The parsed job description, with extracted_path set

        Raises:
            JobReadError: If the reader was already used or closed, or the
                archive is missing, corrupt or has an invalid job.MF
            BlobNotFoundError, BlobIntegrityError: From the blob store
        """
        if self._closed:
            raise JobReadError(f"Reader for {self._blob_url} is closed")
        if self._read:
            raise JobReadError(f"Reader for {self._blob_url} was already read")
        self._read = True

        try:
            blob_id, fingerprint = parse_blob_url(self._blob_url)
        except ValueError as e:
            raise JobReadError(str(e)) from e

        self._archive_path = self._blobstore.get(blob_id, fingerprint)
        self._extracted_dir = Path(tempfile.mkdtemp(prefix="rendercache-job-"))

        try:
            with tarfile.open(self._archive_path, "r:*") as tar:
                tar.extractall(self._extracted_dir, filter="data")
        except (tarfile.TarError, OSError) as e:
            raise JobReadError(f"Extracting job archive {blob_id}: {e}") from e

        manifest_path = self._extracted_dir / JOB_MANIFEST_NAME
        if not manifest_path.is_file():
            raise JobReadError(f"Job archive {blob_id} has no {JOB_MANIFEST_NAME}")

        try:
            with open(manifest_path, encoding="utf-8") as f:
                manifest = yaml.safe_load(f)
            job = JobDescription.from_manifest(manifest, extracted_path=self._extracted_dir)
        except (yaml.YAMLError, ValueError) as e:
            raise JobReadError(f"Invalid {JOB_MANIFEST_NAME} in job archive {blob_id}: {e}") from e

        logger.debug(f"Read job {job.name} from {self._blob_url}")
        return job

    def close(self) -> None:
        """Remove fetched and extracted files. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True

        if self._extracted_dir is not None:
            shutil.rmtree(self._extracted_dir, ignore_errors=True)
        if self._archive_path is not None:
            self._archive_path.unlink(missing_ok=True)

    def __enter__(self) -> "TarReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ReaderFactory:
    """Creates TarReaders bound to one blob store."""

    def __init__(self, blobstore: Blobstore):
        self._blobstore = blobstore

    def new_tar_reader(self, blob_url: str) -> TarReader:
        return TarReader(blob_url, self._blobstore)
