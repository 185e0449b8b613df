"""Build a TemplatesCompiler and its collaborators from configuration."""

from typing import Optional

from rendercache.blobstore import LocalBlobstore
from rendercache.config import RenderCacheConfig
from rendercache.release.job_reader import ReaderFactory
from rendercache.renderers import RenderedArchivesCompiler, load_renderer
from rendercache.repositories import build_repositories
from rendercache.templates_compiler import TemplatesCompiler


def build_compiler(
    config: RenderCacheConfig,
    renderer: Optional[RenderedArchivesCompiler] = None,
) -> TemplatesCompiler:
    """
    Wire file repositories, the local blob store and a renderer.

    Args:
        config: Loaded configuration
        renderer: Renderer to use instead of config.renderer
    """
    if renderer is None:
        renderer = load_renderer(config.renderer, work_dir=config.work_dir)

    repos = build_repositories(config.store_dir)
    blobstore = LocalBlobstore(config.blobstore_dir)

    return TemplatesCompiler(
        rendered_archives_compiler=renderer,
        job_reader_factory=ReaderFactory(blobstore),
        jobs_repo=repos.jobs,
        tpl_to_job_repo=repos.tpl_to_job,
        run_pkgs_repo=repos.runtime_packages,
        templates_repo=repos.templates,
        blobstore=blobstore,
    )
