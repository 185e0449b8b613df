"""
TemplatesCompiler - precompile releases, compile templates per instance.

precompile(release) runs once per release:
- uploads each job source tarball once (find before create)
- maps every declared template to its release job
- saves the release's full package list for each job

compile(job, instance) runs once per deployment job instance:
- resolves each template to its release job and job source blob
- reads the job archives
- memoizes each release job's runtime packages (first compile only)
- renders all templates for the instance, uploads the archive and records it

Rendered archives are not cached across compile calls: compiling the same
(job, instance) again re-renders and replaces the record, so changed
instance properties are always picked up.

Find-then-create sequences run under per-key locks, so concurrent callers
in one process upload a job source once and memoize packages once.
"""

import logging
import threading
from contextlib import ExitStack
from dataclasses import dataclass
from typing import Optional

from rendercache.blobstore import Blobstore, build_blob_url
from rendercache.errors import (
    CompileCancelledError,
    ConsistencyError,
    MalformedReleaseError,
    wrap_error,
)
from rendercache.release.job_reader import ReaderFactory, TarReader
from rendercache.renderers import RenderedArchivesCompiler
from rendercache.repositories import (
    JobsRepository,
    KeyedLocks,
    RuntimePackagesRepository,
    TemplatesRepository,
    TemplateToJobRepository,
)
from rendercache.schemas import (
    DeploymentJob,
    Instance,
    JobDescription,
    JobRecord,
    Release,
    ReleaseJob,
    ReleasePackage,
    RenderedArchiveRecord,
    Template,
    TemplateRecord,
)

logger = logging.getLogger(__name__)


@dataclass
class _JobReader:
    rel_job: ReleaseJob
    tar_reader: TarReader


def _check_cancelled(cancel_event: Optional[threading.Event], what: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise CompileCancelledError(f"Cancelled {what}")


class TemplatesCompiler:
    """
    Orchestrates the job source, package and rendered template caches.

    All collaborators are injected; none are global.
    """

    def __init__(
        self,
        rendered_archives_compiler: RenderedArchivesCompiler,
        job_reader_factory: ReaderFactory,
        jobs_repo: JobsRepository,
        tpl_to_job_repo: TemplateToJobRepository,
        run_pkgs_repo: RuntimePackagesRepository,
        templates_repo: TemplatesRepository,
        blobstore: Blobstore,
    ):
        self._rendered_archives_compiler = rendered_archives_compiler
        self._job_reader_factory = job_reader_factory

        self._jobs_repo = jobs_repo
        self._tpl_to_job_repo = tpl_to_job_repo
        self._run_pkgs_repo = run_pkgs_repo
        self._templates_repo = templates_repo

        self._blobstore = blobstore
        self._locks = KeyedLocks()

    def precompile(self, release: Release, cancel_event: Optional[threading.Event] = None) -> None:
        """
        Prepare release jobs to be later combined with instance properties.

        Safe to re-run: job sources already uploaded are reused, template
        mappings and full package lists are saved again.

        Args:
            release: Release to precompile
            cancel_event: Checked before each job

        Raises:
            MalformedReleaseError: If the release has a None package
            AccessError: If a repository or blob store call fails
        """
        all_pkgs: list[ReleasePackage] = []
        for pkg in release.packages:
            if pkg is None:
                raise MalformedReleaseError(f"Expected release {release.name} to not have nil package")
            all_pkgs.append(pkg)

        logger.info(
            f"Precompiling release {release.name}/{release.version} "
            f"({len(release.jobs)} jobs, {len(all_pkgs)} packages)"
        )

        for job in release.jobs:
            _check_cancelled(cancel_event, f"precompile of release {release.name}")

            self._ensure_job_source(job)

            try:
                self._tpl_to_job_repo.save_for_job(release, job)
            except Exception as e:
                raise wrap_error(e, f"Saving release job {job.name}") from e

            try:
                self._run_pkgs_repo.save_all_for_release_job(job, all_pkgs)
            except Exception as e:
                raise wrap_error(e, f"Saving release job packages {job.name}") from e

        logger.info(f"Precompiled release {release.name}/{release.version}")

    def _ensure_job_source(self, job: ReleaseJob) -> JobRecord:
        with self._locks.hold(f"job-source:{job.key}"):
            try:
                job_rec = self._jobs_repo.find(job)
            except Exception as e:
                raise wrap_error(e, f"Finding job source blob {job.name}") from e

            if job_rec is not None:
                logger.debug(f"Job source blob for {job.name} already exists: {job_rec.blob_id}")
                return job_rec

            try:
                blob_id, fingerprint = self._blobstore.create(job.tar_path)
            except Exception as e:
                raise wrap_error(e, f"Creating job source blob {job.name}") from e

            job_rec = JobRecord(blob_id=blob_id, sha1=fingerprint)

            try:
                self._jobs_repo.save(job, job_rec)
            except Exception as e:
                raise wrap_error(e, f"Saving job record {job.name}") from e

            logger.debug(f"Uploaded job source blob for {job.name}: {blob_id}")
            return job_rec

    def compile(
        self,
        job: DeploymentJob,
        instance: Instance,
        cancel_event: Optional[threading.Event] = None,
    ) -> TemplateRecord:
        """
        Populate the blob store with rendered templates for one instance.

        Always re-renders; a previous record for (job, instance) is replaced.

        Args:
            job: Deployment job whose templates are rendered
            instance: Instance to render for
            cancel_event: Checked before each stage

        Returns:
            The saved TemplateRecord

        Raises:
            ValueError: If job has no templates
            ConsistencyError: If precompile has not established a template
                mapping, job source record or package list
            AccessError: If a repository, reader, renderer or blob store call fails
            CompileCancelledError: If cancel_event was set
        """
        if not job.templates:
            raise ValueError(f"Deployment job {job.name} has no templates")

        logger.info(f"Compiling templates for {job.name} on {instance.key}")

        with self._locks.hold(f"rendered:{job.name}:{instance.key}"):
            with ExitStack() as stack:
                job_readers = self._build_job_readers(job, stack)
                blob_id, fingerprint = self._compile_job(job, job_readers, instance, cancel_event)

            template_rec = TemplateRecord(blob_id=blob_id, sha1=fingerprint)

            try:
                self._templates_repo.save(job, instance, template_rec)
            except Exception as e:
                raise wrap_error(e, f"Saving compiled templates record {job.name}") from e

        logger.info(f"Compiled templates for {job.name} on {instance.key}: {blob_id}")
        return template_rec

    def find_packages(self, template: Template) -> list[ReleasePackage]:
        """
        Return the packages required to run a job template.

        The list is what the release job declares, memoized by the first
        compile of any deployment job using the template.

        Raises:
            ConsistencyError: If the template or its packages are unknown
            AccessError: If a repository call fails
        """
        job = self._find_job_by_template(template, "job by template")

        try:
            pkgs = self._run_pkgs_repo.find_by_release_job(job)
        except Exception as e:
            raise wrap_error(e, f"Finding packages by job {job.name}") from e
        if pkgs is None:
            raise ConsistencyError(f"Expected to find packages by job {job.name}")

        return pkgs

    def find_rendered_archive(self, job: DeploymentJob, instance: Instance) -> RenderedArchiveRecord:
        """
        Return the previously compiled templates for an instance.

        Raises:
            ConsistencyError: If compile has not run for (job, instance)
            AccessError: If a repository call fails
        """
        try:
            rec = self._templates_repo.find(job, instance)
        except Exception as e:
            raise wrap_error(e, f"Finding compiled templates {job.name}") from e
        if rec is None:
            raise ConsistencyError(f"Expected to find compiled templates {job.name} for {instance.key}")

        return RenderedArchiveRecord(blob_id=rec.blob_id, sha1=rec.sha1)

    def _find_job_by_template(self, template: Template, what: str) -> ReleaseJob:
        try:
            rel_job = self._tpl_to_job_repo.find_by_template(template)
        except Exception as e:
            raise wrap_error(e, f"Finding {what} {template.name}") from e
        if rel_job is None:
            raise ConsistencyError(f"Expected to find {what} {template.name}")
        return rel_job

    def _build_job_readers(self, job: DeploymentJob, stack: ExitStack) -> list[_JobReader]:
        """Resolve every template to a reader. Readers are closed when stack exits."""
        readers = []

        for template in job.templates:
            rel_job = self._find_job_by_template(template, "dep-template -> rel-job")

            try:
                job_rec = self._jobs_repo.find(rel_job)
            except Exception as e:
                raise wrap_error(e, f"Finding job source blob {template.name}") from e
            if job_rec is None:
                raise ConsistencyError(f"Expected to find job source blob {template.name}")

            job_url = build_blob_url(job_rec.blob_id, job_rec.sha1)

            tar_reader = self._job_reader_factory.new_tar_reader(job_url)
            stack.callback(tar_reader.close)

            readers.append(_JobReader(rel_job=rel_job, tar_reader=tar_reader))

        return readers

    def _compile_job(
        self,
        job: DeploymentJob,
        job_readers: list[_JobReader],
        instance: Instance,
        cancel_event: Optional[threading.Event],
    ) -> tuple[str, str]:
        """Produce and upload the rendered templates archive."""
        rel_jobs: list[JobDescription] = []

        for job_reader in job_readers:
            _check_cancelled(cancel_event, f"compile of {job.name}")

            try:
                rel_job = job_reader.tar_reader.read()
            except Exception as e:
                raise wrap_error(e, f"Reading job {job_reader.rel_job.name}") from e

            try:
                self._associate_packages(job_reader.rel_job, rel_job)
            except Exception as e:
                raise wrap_error(e, f"Preparing runtime dep packages {job_reader.rel_job.name}") from e

            rel_jobs.append(rel_job)

        _check_cancelled(cancel_event, f"compile of {job.name}")

        try:
            rendered_archive_path = self._rendered_archives_compiler.compile(rel_jobs, instance)
        except Exception as e:
            raise wrap_error(e, f"Compiling templates {job.name}") from e

        try:
            _check_cancelled(cancel_event, f"compile of {job.name}")
            blob_id, fingerprint = self._blobstore.create(rendered_archive_path)
        except CompileCancelledError:
            raise
        except Exception as e:
            raise wrap_error(e, f"Creating compiled templates {job.name}") from e
        finally:
            self._rendered_archives_compiler.clean_up(rendered_archive_path)

        return blob_id, fingerprint

    def _associate_packages(self, r_job: ReleaseJob, rel_job: JobDescription) -> None:
        """
        Memoize the runtime packages of a release job.

        The first call filters the release's full package list down to the
        names rel_job declares, in full-list order. Each declared name is
        included at most once (first match wins). Declared names that the
        release does not ship are dropped. Later calls keep the memoized list.
        """
        with self._locks.hold(f"packages:{r_job.key}"):
            try:
                memoized = self._run_pkgs_repo.find_by_release_job(r_job)
            except Exception as e:
                raise wrap_error(e, f"Finding runtime deps for {r_job.name}") from e

            if memoized is not None:
                return

            try:
                all_pkgs = self._run_pkgs_repo.find_all_by_release_job(r_job)
            except Exception as e:
                raise wrap_error(e, f"Finding rel-job -> rel-pkgs {r_job.name}") from e
            if all_pkgs is None:
                raise ConsistencyError(f"Expected to find rel-job -> rel-pkgs {r_job.name}")

            declared = set(rel_job.package_names)
            pkgs = []
            matched: set[str] = set()
            for pkg in all_pkgs:
                if pkg.name in declared and pkg.name not in matched:
                    matched.add(pkg.name)
                    pkgs.append(pkg)

            try:
                self._run_pkgs_repo.save_for_release_job(r_job, pkgs)
            except Exception as e:
                raise wrap_error(e, f"Saving job packages {r_job.name}") from e

            dropped = declared - {pkg.name for pkg in pkgs}
            if dropped:
                logger.debug(f"Job {r_job.name} declares packages not in release: {sorted(dropped)}")
