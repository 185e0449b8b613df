import io
import tarfile
from pathlib import Path

import pytest
import yaml

from rendercache.blobstore import LocalBlobstore
from rendercache.release.job_reader import ReaderFactory
from rendercache.renderers import SubstitutionArchivesCompiler
from rendercache.repositories import build_repositories
from rendercache.schemas import Release, ReleaseJob, ReleasePackage
from rendercache.templates_compiler import TemplatesCompiler


def make_job_tarball(
    path: Path,
    name: str,
    templates: dict[str, tuple[str, str]] | None = None,
    packages: list[str] | None = None,
    properties: dict | None = None,
) -> Path:
    """
    Write a BOSH style job tarball.

    Args:
        templates: src -> (dst, template source)
    """
    templates = templates or {}
    manifest = {
        "name": name,
        "templates": {src: dst for src, (dst, _) in templates.items()},
        "packages": packages or [],
        "properties": properties or {},
    }

    def _add(tar, arcname, content: str):
        data = content.encode()
        info = tarfile.TarInfo(arcname)
        info.size = len(data)
        tar.addfile(info, io.BytesIO(data))

    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w:gz") as tar:
        _add(tar, "job.MF", yaml.safe_dump(manifest))
        _add(tar, "monit", "")
        for src, (_, source) in templates.items():
            _add(tar, f"templates/{src}", source)
    return path


class CountingBlobstore(LocalBlobstore):
    """LocalBlobstore that records every create call."""

    def __init__(self, blobs_dir):
        super().__init__(blobs_dir)
        self.created: list[str] = []
        self.fail_when = None

    def create(self, path):
        if self.fail_when is not None and self.fail_when(Path(path)):
            raise OSError(f"upload refused for {path}")
        result = super().create(path)
        self.created.append(str(path))
        return result


class RecordingRenderer(SubstitutionArchivesCompiler):
    """Substitution renderer that records compile and clean_up calls."""

    def __init__(self, work_dir):
        super().__init__(work_dir)
        self.compiled: list[tuple[list, object]] = []
        self.cleaned: list[Path] = []
        self.fail_with: Exception | None = None

    def compile(self, job_descriptions, instance):
        self.compiled.append(([j.name for j in job_descriptions], instance))
        if self.fail_with is not None:
            raise self.fail_with
        return super().compile(job_descriptions, instance)

    def clean_up(self, archive_path):
        self.cleaned.append(Path(archive_path))
        super().clean_up(archive_path)


@pytest.fixture
def blobstore(tmp_path):
    return CountingBlobstore(tmp_path / "blobs")


@pytest.fixture
def renderer(tmp_path):
    return RecordingRenderer(tmp_path / "work")


@pytest.fixture
def repos():
    return build_repositories()


@pytest.fixture
def compiler(renderer, blobstore, repos):
    return TemplatesCompiler(
        rendered_archives_compiler=renderer,
        job_reader_factory=ReaderFactory(blobstore),
        jobs_repo=repos.jobs,
        tpl_to_job_repo=repos.tpl_to_job,
        run_pkgs_repo=repos.runtime_packages,
        templates_repo=repos.templates,
        blobstore=blobstore,
    )


@pytest.fixture
def router_tarball(tmp_path):
    return make_job_tarball(
        tmp_path / "release" / "jobs" / "router.tgz",
        "router",
        templates={"router.conf": ("config/router.conf", "port=${router.port}\nindex=${spec.index}\n")},
        packages=["router-pkg"],
        properties={"router.port": {"default": 8080, "description": "Listen port"}},
    )


@pytest.fixture
def router_release(router_tarball):
    """Release with job router (template router_conf) and packages router-pkg, common-pkg."""
    return Release(
        name="cf",
        version="1",
        jobs=[
            ReleaseJob(
                name="router",
                version="1",
                fingerprint="fp-router",
                tar_path=str(router_tarball),
                templates=("router_conf",),
            ),
        ],
        packages=[
            ReleasePackage(name="router-pkg", version="1"),
            ReleasePackage(name="common-pkg", version="1"),
        ],
    )
