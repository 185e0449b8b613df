"""
CLI interface for rendercache.

Provides commands to precompile releases, compile templates for deployment
instances and inspect the caches.
"""

import sys
from pathlib import Path

import click
import yaml

from rendercache import __version__


def _require_config(ctx):
    if "config" not in ctx.obj:
        click.echo(f"✗ Config not loaded: {ctx.obj.get('config_error', 'Unknown error')}", err=True)
        click.echo("Run 'rendercache init' to create a configuration file.", err=True)
        raise SystemExit(1)
    return ctx.obj["config"]


def _build_compiler(ctx, renderer_spec=None):
    from rendercache.factory import build_compiler
    from rendercache.renderers import load_renderer

    config = _require_config(ctx)
    renderer = None
    if renderer_spec:
        try:
            renderer = load_renderer(renderer_spec, work_dir=config.work_dir)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--renderer")

    try:
        return build_compiler(config, renderer=renderer)
    except ValueError as e:
        click.echo(f"✗ Invalid renderer in config: {e}", err=True)
        raise SystemExit(1)


@click.group()
@click.version_option(version=__version__, prog_name="rendercache")
@click.option("-v", "--verbose", is_flag=True, help="Log debug output")
@click.pass_context
def main(ctx, verbose: bool):
    """
    rendercache - Content-addressed template compilation cache.

    Precompile releases once, then compile and look up rendered templates
    per deployment instance.
    """
    from rendercache.config import load_config
    from rendercache.utils import setup_logging

    ctx.ensure_object(dict)
    try:
        config = load_config()
    except Exception as e:
        # init runs without a config; other commands report the error
        ctx.obj["config_error"] = str(e)
        setup_logging(log_level="DEBUG" if verbose else "WARNING")
        return

    ctx.obj["config"] = config
    setup_logging(
        log_file=config.logging.get_log_file_path(),
        log_level="DEBUG" if verbose else config.logging.level,
        log_format=config.logging.format,
        console_output=config.logging.console,
    )


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Initialize rendercache configuration."""
    from rendercache.config import RenderCacheConfig, get_rendercache_home

    home = get_rendercache_home()
    home.mkdir(parents=True, exist_ok=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    default_cfg = RenderCacheConfig.defaults(home).to_dict()
    cfg_path.write_text(yaml.safe_dump(default_cfg, sort_keys=False))

    click.echo(f"Initialized rendercache config at {cfg_path}")


@main.command("precompile")
@click.argument("release_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.pass_context
def precompile(ctx, release_dir: Path):
    """
    Upload job sources and record template mappings for a release.

    RELEASE_DIR is an extracted release containing release.MF.
    """
    from rendercache.release import read_release

    compiler = _build_compiler(ctx)
    try:
        release = read_release(release_dir)
        compiler.precompile(release)
    except Exception as e:
        click.echo(f"✗ precompile failed: {e}", err=True)
        raise SystemExit(1)

    click.echo(f"✓ {release.name}/{release.version} precompiled ({len(release.jobs)} jobs)")


@main.command("compile")
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--job", "job_name", help="Only compile this deployment job")
@click.option("--renderer", "renderer_spec", help="Renderer as module:attribute (overrides config)")
@click.pass_context
def compile_cmd(ctx, manifest: Path, job_name: str, renderer_spec: str):
    """
    Render templates for every instance of the deployment jobs in MANIFEST.

    MANIFEST is a deployment YAML file with name, properties and jobs.
    """
    from rendercache.schemas import DeploymentManifest

    try:
        with open(manifest) as f:
            deployment = DeploymentManifest.from_dict(yaml.safe_load(f))
        jobs = [deployment.get_job(job_name)] if job_name else deployment.jobs
    except (yaml.YAMLError, ValueError, KeyError) as e:
        click.echo(f"✗ Invalid manifest {manifest}: {e}", err=True)
        raise SystemExit(1)

    compiler = _build_compiler(ctx, renderer_spec)

    for job in jobs:
        for instance in deployment.instances_for(job):
            try:
                rec = compiler.compile(job, instance)
            except Exception as e:
                click.echo(f"✗ {job.name}/{instance.index} failed: {e}", err=True)
                raise SystemExit(1)
            click.echo(f"✓ {job.name}/{instance.index} {rec.blob_id} sha1={rec.sha1}")


@main.command("packages")
@click.argument("template")
@click.option("--release", "release_name", required=True, help="Release providing the template")
@click.pass_context
def packages(ctx, template: str, release_name: str):
    """List the runtime packages of TEMPLATE."""
    from rendercache.schemas import Template

    compiler = _build_compiler(ctx)
    try:
        pkgs = compiler.find_packages(Template(name=template, release=release_name))
    except Exception as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(1)

    if not pkgs:
        click.echo("No runtime packages.")
        return
    for pkg in pkgs:
        click.echo(f"{pkg.name}\t{pkg.version}")


@main.command("rendered")
@click.argument("job")
@click.argument("index", type=int)
@click.pass_context
def rendered(ctx, job: str, index: int):
    """Show the rendered archive of instance INDEX of deployment job JOB."""
    from rendercache.schemas import DeploymentJob, Instance

    compiler = _build_compiler(ctx)
    try:
        rec = compiler.find_rendered_archive(DeploymentJob(name=job), Instance(job_name=job, index=index))
    except Exception as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(1)

    click.echo(f"blob_id: {rec.blob_id}")
    click.echo(f"sha1:    {rec.sha1}")


if __name__ == "__main__":
    sys.exit(main())
