"""
Release job repositories.

- JobsRepository: release job -> uploaded source tarball (JobRecord)
- TemplateToJobRepository: deployment template -> release job that provides it
- RuntimePackagesRepository: release job -> runtime packages, in two slots:
    * "all": every package of the release, saved by precompile
    * filtered: the packages the job actually declares, memoized by compile
"""

from typing import Optional

from rendercache.schemas import (
    JobRecord,
    Release,
    ReleaseJob,
    ReleasePackage,
    Template,
)

from .base import KeyValueRepository, RecordStore


def _encode_packages(pkgs: list[ReleasePackage]) -> list[dict]:
    return [pkg.to_dict() for pkg in pkgs]


def _decode_packages(data: list[dict]) -> list[ReleasePackage]:
    return [ReleasePackage.from_dict(d) for d in data]


class JobsRepository(KeyValueRepository[ReleaseJob, JobRecord]):
    """Job source records keyed by release job identity."""

    NAMESPACE = "jobs"

    def __init__(self, store: RecordStore):
        super().__init__(
            store,
            self.NAMESPACE,
            key_fn=lambda job: job.key,
            encode=lambda rec: rec.to_dict(),
            decode=JobRecord.from_dict,
        )


class TemplateToJobRepository:
    """Maps templates (by release and template name) to release jobs."""

    NAMESPACE = "template_to_job"

    def __init__(self, store: RecordStore):
        self._repo: KeyValueRepository[Template, ReleaseJob] = KeyValueRepository(
            store,
            self.NAMESPACE,
            key_fn=lambda tpl: tpl.key,
            encode=lambda job: job.to_dict(),
            decode=ReleaseJob.from_dict,
        )

    def find_by_template(self, template: Template) -> Optional[ReleaseJob]:
        return self._repo.find(template)

    def save_for_job(self, release: Release, job: ReleaseJob) -> None:
        """Map every template job declares, within release, to job."""
        for template_name in job.templates:
            self._repo.save(Template(name=template_name, release=release.name), job)


class RuntimePackagesRepository:
    """Runtime package lists per release job."""

    NAMESPACE = "runtime_packages"
    ALL_NAMESPACE = "release_job_packages"

    def __init__(self, store: RecordStore):
        self._filtered: KeyValueRepository[ReleaseJob, list[ReleasePackage]] = KeyValueRepository(
            store,
            self.NAMESPACE,
            key_fn=lambda job: job.key,
            encode=_encode_packages,
            decode=_decode_packages,
        )
        self._all: KeyValueRepository[ReleaseJob, list[ReleasePackage]] = KeyValueRepository(
            store,
            self.ALL_NAMESPACE,
            key_fn=lambda job: job.key,
            encode=_encode_packages,
            decode=_decode_packages,
        )

    def find_by_release_job(self, job: ReleaseJob) -> Optional[list[ReleasePackage]]:
        """Memoized runtime packages. An empty list is a valid memoized value."""
        return self._filtered.find(job)

    def save_for_release_job(self, job: ReleaseJob, pkgs: list[ReleasePackage]) -> None:
        self._filtered.save(job, pkgs)

    def find_all_by_release_job(self, job: ReleaseJob) -> Optional[list[ReleasePackage]]:
        """Every package of the release job's release."""
        return self._all.find(job)

    def save_all_for_release_job(self, job: ReleaseJob, pkgs: list[ReleasePackage]) -> None:
        self._all.save(job, pkgs)
