"""
Release schemas - jobs and packages as shipped in a release.

A Release is the input to precompile. Its jobs point at source tarballs on
local disk; its packages are matched by name against what each job declares
it needs at runtime.
"""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class ReleasePackage:
    """
    A package shipped in a release.

    Attributes:
        name: Package name, the only attribute used for dependency matching
        version: Package version from release.MF
        fingerprint: Content fingerprint from release.MF
        sha1: SHA1 of the package tarball
        tar_path: Local path to the package tarball (may be empty)
        dependencies: Names of compile-time dependencies
    """
    name: str
    version: str = ""
    fingerprint: str = ""
    sha1: str = ""
    tar_path: str = ""
    dependencies: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "name": self.name,
            "version": self.version,
            "fingerprint": self.fingerprint,
            "sha1": self.sha1,
            "tar_path": self.tar_path,
        }
        if self.dependencies:
            result["dependencies"] = list(self.dependencies)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReleasePackage":
        """Deserialize from dictionary."""
        return cls(
            name=data["name"],
            version=data.get("version", ""),
            fingerprint=data.get("fingerprint", ""),
            sha1=data.get("sha1", ""),
            tar_path=data.get("tar_path", ""),
            dependencies=tuple(data.get("dependencies", ())),
        )


@dataclass(frozen=True)
class ReleaseJob:
    """
    A job shipped in a release.

    Attributes:
        name: Job name
        version: Job version from release.MF
        fingerprint: Content fingerprint from release.MF
        tar_path: Local path to the job source tarball
        templates: Template names this job provides to deployments
    """
    name: str
    version: str = ""
    fingerprint: str = ""
    tar_path: str = ""
    templates: tuple[str, ...] = field(default_factory=tuple)

    @property
    def key(self) -> str:
        """Identity used by the job repositories."""
        return f"{self.name}/{self.version}/{self.fingerprint}"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        return {
            "name": self.name,
            "version": self.version,
            "fingerprint": self.fingerprint,
            "tar_path": self.tar_path,
            "templates": list(self.templates),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReleaseJob":
        """Deserialize from dictionary."""
        return cls(
            name=data["name"],
            version=data.get("version", ""),
            fingerprint=data.get("fingerprint", ""),
            tar_path=data.get("tar_path", ""),
            templates=tuple(data.get("templates", ())),
        )


@dataclass
class Release:
    """
    A versioned bundle of jobs and packages.

    packages may contain None entries when built from untrusted input;
    precompile rejects such a release as malformed.
    """
    name: str
    version: str = ""
    jobs: list[ReleaseJob] = field(default_factory=list)
    packages: list[Optional[ReleasePackage]] = field(default_factory=list)
