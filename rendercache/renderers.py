"""
Renderers - turn job descriptions plus an instance into a rendered archive.

The templates compiler only decides when rendering happens and caches the
result. How templates are rendered is up to the RenderedArchivesCompiler
passed to it.

SubstitutionArchivesCompiler is the renderer shipped with rendercache.
Template sources use ${dotted.property} placeholders:

    port = ${router.port}
    index = ${spec.index}

Values come from the instance properties (nested mappings are flattened to
dotted names), falling back to the defaults declared in job.MF. A literal
dollar sign is written as $$.

The rendered archive holds one directory per job:

    {job_name}/{dst_path}
"""

import importlib
import logging
import re
import shutil
import string
import tarfile
import tempfile
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from rendercache.errors import RenderError
from rendercache.schemas import Instance, JobDescription

logger = logging.getLogger(__name__)


class RenderedArchivesCompiler(ABC):
    """
    Abstract base class for renderers.

    Implementations must provide methods to:
    - Render all jobs for one instance into a single archive file
    - Remove an archive produced by compile
    """

    @abstractmethod
    def compile(self, job_descriptions: list[JobDescription], instance: Instance) -> Path:
        """
        Render templates of every job for instance.

        Args:
            job_descriptions: Materialized jobs, in deployment template order
            instance: Instance whose properties are rendered in

        Returns:
            Path to the rendered archive, owned by the caller until clean_up
        """
        pass

    @abstractmethod
    def clean_up(self, archive_path: Path) -> None:
        """Remove an archive. Must be safe if the path no longer exists."""
        pass


class PropertyTemplate(string.Template):
    """string.Template that accepts dotted identifiers like ${router.port}."""
    idpattern = r"(?a:[_a-z][_a-z0-9]*(?:\.[_a-z0-9]+)*)"


def flatten_properties(properties: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """
    Flatten nested mappings into dotted keys.

    {"router": {"port": 80}} -> {"router.port": 80}
    """
    flat: dict[str, Any] = {}
    for key, value in properties.items():
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(flatten_properties(value, prefix=f"{name}."))
        else:
            flat[name] = value
    return flat


class SubstitutionArchivesCompiler(RenderedArchivesCompiler):
    """
    Renders ${property} placeholders and packs the result as a .tgz.

    Args:
        work_dir: Where rendered archives are written. Defaults to the
            system temp directory.
    """

    def __init__(self, work_dir: Optional[Path | str] = None):
        self._work_dir = Path(work_dir) if work_dir else Path(tempfile.gettempdir())
        self._work_dir.mkdir(parents=True, exist_ok=True)

    def _context(self, job: JobDescription, instance: Instance) -> dict[str, Any]:
        context = dict(job.property_defaults())
        context.update(flatten_properties(instance.properties))
        context["spec.job"] = instance.job_name
        context["spec.index"] = instance.index
        return context

    def _render_job(self, job: JobDescription, instance: Instance, out_dir: Path) -> None:
        if job.extracted_path is None:
            raise RenderError(f"Job {job.name} has no extracted archive")

        context = self._context(job, instance)
        for template in job.templates:
            src = job.extracted_path / "templates" / template.src_path
            if not src.is_file():
                raise RenderError(f"Job {job.name}: template source not found: {template.src_path}")

            try:
                rendered = PropertyTemplate(src.read_text(encoding="utf-8")).substitute(context)
            except KeyError as e:
                raise RenderError(
                    f"Job {job.name}: template {template.src_path} references unknown property {e}"
                ) from e
            except ValueError as e:
                raise RenderError(f"Job {job.name}: template {template.src_path}: {e}") from e

            dst = out_dir / job.name / template.dst_path
            if not dst.resolve().is_relative_to(out_dir.resolve()):
                raise RenderError(f"Job {job.name}: destination escapes archive: {template.dst_path}")
            dst.parent.mkdir(parents=True, exist_ok=True)
            dst.write_text(rendered, encoding="utf-8")

    def compile(self, job_descriptions: list[JobDescription], instance: Instance) -> Path:
        staging_dir = Path(tempfile.mkdtemp(prefix="rendercache-render-", dir=self._work_dir))
        archive_path = self._work_dir / f"rendered-{uuid.uuid4()}.tgz"

        try:
            for job in job_descriptions:
                self._render_job(job, instance, staging_dir)

            with tarfile.open(archive_path, "w:gz") as tar:
                for entry in sorted(staging_dir.iterdir()):
                    tar.add(entry, arcname=entry.name)
        except BaseException:
            archive_path.unlink(missing_ok=True)
            raise
        finally:
            shutil.rmtree(staging_dir, ignore_errors=True)

        logger.debug(f"Rendered {len(job_descriptions)} job(s) for {instance.key} into {archive_path}")
        return archive_path

    def clean_up(self, archive_path: Path) -> None:
        Path(archive_path).unlink(missing_ok=True)


RENDERER_SPEC_PATTERN = re.compile(r"^[A-Za-z_][\w.]*:[A-Za-z_]\w*$")


def load_renderer(spec: str, **kwargs: Any) -> RenderedArchivesCompiler:
    """
    Load a renderer from a "module:attribute" string.

    A class is instantiated with kwargs; any other attribute is returned
    as is and must already be a renderer.

    Raises:
        ValueError: If the spec is malformed, cannot be imported or does not
            name a RenderedArchivesCompiler
    """
    if not RENDERER_SPEC_PATTERN.match(spec):
        raise ValueError(f"Renderer must be given as 'module:attribute', got: {spec}")

    module_path, _, attr = spec.partition(":")
    try:
        module = importlib.import_module(module_path)
    except ImportError as e:
        raise ValueError(f"Cannot import renderer module {module_path}: {e}") from e

    target = getattr(module, attr, None)
    if target is None:
        raise ValueError(f"Renderer {attr} not found in {module_path}")

    renderer = target(**kwargs) if isinstance(target, type) else target
    if not isinstance(renderer, RenderedArchivesCompiler):
        raise ValueError(f"{spec} is not a RenderedArchivesCompiler")
    return renderer
