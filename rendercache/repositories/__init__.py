"""
rendercache.repositories - Lookup tables behind the templates compiler.

All repositories share one RecordStore. Use an InMemoryRecordStore in
tests and a FileRecordStore everywhere else.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .base import (
    FileRecordStore,
    InMemoryRecordStore,
    KeyedLocks,
    KeyValueRepository,
    RecordStore,
    Repository,
)
from .jobs import JobsRepository, RuntimePackagesRepository, TemplateToJobRepository
from .templates import TemplatesRepository


@dataclass
class Repositories:
    """The four repositories the templates compiler needs."""
    jobs: JobsRepository
    tpl_to_job: TemplateToJobRepository
    runtime_packages: RuntimePackagesRepository
    templates: TemplatesRepository


def build_repositories(store_dir: Optional[Path | str] = None) -> Repositories:
    """
    Build all repositories over one record store.

    Args:
        store_dir: Directory for the file store. None selects in-memory storage.
    """
    store: RecordStore
    if store_dir is None:
        store = InMemoryRecordStore()
    else:
        store = FileRecordStore(store_dir)

    return Repositories(
        jobs=JobsRepository(store),
        tpl_to_job=TemplateToJobRepository(store),
        runtime_packages=RuntimePackagesRepository(store),
        templates=TemplatesRepository(store),
    )


__all__ = [
    "FileRecordStore",
    "InMemoryRecordStore",
    "KeyedLocks",
    "KeyValueRepository",
    "RecordStore",
    "Repository",
    "JobsRepository",
    "TemplateToJobRepository",
    "RuntimePackagesRepository",
    "TemplatesRepository",
    "Repositories",
    "build_repositories",
]
