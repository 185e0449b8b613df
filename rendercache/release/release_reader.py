"""
Release reader - builds a Release from an extracted release directory.

Expected layout (BOSH style):

    release_dir/
        release.MF
        jobs/
            {job_name}.tgz
        packages/
            {package_name}.tgz

release.MF:

    name: cf
    version: "42"
    jobs:
      - name: router
        version: 1a2b
        fingerprint: 1a2b
        templates: [router_conf]     # optional, defaults to [router]
    packages:
      - name: router-pkg
        version: 3c4d
        fingerprint: 3c4d
        sha1: 5e6f
        dependencies: []
"""

from pathlib import Path
from typing import Any, Optional

import yaml

from rendercache.errors import MalformedReleaseError
from rendercache.schemas import Release, ReleaseJob, ReleasePackage

RELEASE_MANIFEST_NAME = "release.MF"


def _load_manifest(release_dir: Path) -> dict[str, Any]:
    manifest_path = release_dir / RELEASE_MANIFEST_NAME
    if not manifest_path.is_file():
        raise MalformedReleaseError(f"{RELEASE_MANIFEST_NAME} not found in {release_dir}")

    try:
        with open(manifest_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise MalformedReleaseError(f"Invalid YAML in {manifest_path}: {e}") from e

    if not isinstance(data, dict):
        raise MalformedReleaseError(f"{manifest_path} must contain a mapping")
    if not data.get("name"):
        raise MalformedReleaseError(f"{manifest_path} is missing 'name'")
    return data


def _read_job(release_dir: Path, data: Any) -> ReleaseJob:
    if not isinstance(data, dict) or not data.get("name"):
        raise MalformedReleaseError(f"Invalid job entry in {RELEASE_MANIFEST_NAME}: {data!r}")

    name = data["name"]
    tar_path = release_dir / "jobs" / f"{name}.tgz"
    if not tar_path.is_file():
        raise MalformedReleaseError(f"Job tarball not found for {name}: {tar_path}")

    templates = data.get("templates") or [name]
    if not isinstance(templates, list):
        raise MalformedReleaseError(f"Job {name}: templates must be a list")

    return ReleaseJob(
        name=name,
        version=str(data.get("version", "")),
        fingerprint=str(data.get("fingerprint", "")),
        tar_path=str(tar_path),
        templates=tuple(templates),
    )


def _read_package(release_dir: Path, data: Any) -> Optional[ReleasePackage]:
    # Null entries are kept so precompile can reject the release as malformed
    if data is None:
        return None
    if not isinstance(data, dict) or not data.get("name"):
        raise MalformedReleaseError(f"Invalid package entry in {RELEASE_MANIFEST_NAME}: {data!r}")

    name = data["name"]
    tar_path = release_dir / "packages" / f"{name}.tgz"

    return ReleasePackage(
        name=name,
        version=str(data.get("version", "")),
        fingerprint=str(data.get("fingerprint", "")),
        sha1=str(data.get("sha1", "")),
        tar_path=str(tar_path) if tar_path.is_file() else "",
        dependencies=tuple(data.get("dependencies") or ()),
    )


def read_release(release_dir: Path | str) -> Release:
    """
    Read a release directory.

    Args:
        release_dir: Directory containing release.MF

    Returns:
        The Release, jobs and packages in manifest order

    Raises:
        MalformedReleaseError: If release.MF or a job tarball is missing or invalid
    """
    release_dir = Path(release_dir)
    data = _load_manifest(release_dir)

    return Release(
        name=data["name"],
        version=str(data.get("version", "")),
        jobs=[_read_job(release_dir, j) for j in data.get("jobs") or []],
        packages=[_read_package(release_dir, p) for p in data.get("packages") or []],
    )
