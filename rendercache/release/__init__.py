"""
rendercache.release - Reading releases and job archives.
"""

from .job_reader import JOB_MANIFEST_NAME, ReaderFactory, TarReader
from .release_reader import RELEASE_MANIFEST_NAME, read_release

__all__ = [
    "JOB_MANIFEST_NAME",
    "RELEASE_MANIFEST_NAME",
    "ReaderFactory",
    "TarReader",
    "read_release",
]
