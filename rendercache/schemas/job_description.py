"""
JobDescription schema - a job archive parsed into memory.

A job tarball carries a job.MF manifest:

    name: router
    templates:
      router.conf.erb: config/router.conf
    packages:
      - router-pkg
    properties:
      router.port:
        default: 8080
        description: Listen port

plus the template sources under templates/. The reader extracts the archive
and keeps extracted_path so the renderer can open template sources.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional


@dataclass(frozen=True)
class JobTemplate:
    """A template source file and where its rendered output goes."""
    src_path: str
    dst_path: str


@dataclass(frozen=True)
class PackageRef:
    """A package a job needs at runtime, by name only."""
    name: str


@dataclass(frozen=True)
class PropertyDefinition:
    """A property a job understands, with an optional default."""
    name: str
    description: str = ""
    default: Any = None


@dataclass
class JobDescription:
    """
    A materialized job.

    Attributes:
        name: Job name from job.MF
        templates: Template sources and destinations
        packages: Declared runtime package names
        properties: Declared properties
        extracted_path: Directory the archive was extracted into
    """
    name: str
    templates: list[JobTemplate] = field(default_factory=list)
    packages: list[PackageRef] = field(default_factory=list)
    properties: list[PropertyDefinition] = field(default_factory=list)
    extracted_path: Optional[Path] = None

    @property
    def package_names(self) -> list[str]:
        return [p.name for p in self.packages]

    def property_defaults(self) -> dict[str, Any]:
        """Defaults keyed by dotted property name (properties without one are skipped)."""
        return {p.name: p.default for p in self.properties if p.default is not None}

    @classmethod
    def from_manifest(cls, data: dict[str, Any], extracted_path: Optional[Path] = None) -> "JobDescription":
        """
        Build from a parsed job.MF.

        Raises:
            ValueError: If required keys are missing or have the wrong shape
        """
        if not isinstance(data, dict):
            raise ValueError("job.MF must be a mapping")
        if not data.get("name"):
            raise ValueError("job.MF is missing 'name'")

        templates_data = data.get("templates") or {}
        if not isinstance(templates_data, dict):
            raise ValueError("job.MF 'templates' must be a mapping of src -> dst")

        packages_data = data.get("packages") or []
        if not isinstance(packages_data, list):
            raise ValueError("job.MF 'packages' must be a list")
        for name in packages_data:
            if not isinstance(name, str) or not name:
                raise ValueError(f"job.MF package entries must be names, got: {name!r}")

        properties_data = data.get("properties") or {}
        if not isinstance(properties_data, dict):
            raise ValueError("job.MF 'properties' must be a mapping")

        properties = []
        for prop_name, prop_def in properties_data.items():
            prop_def = prop_def or {}
            if not isinstance(prop_def, dict):
                raise ValueError(f"job.MF property '{prop_name}' must be a mapping, got: {prop_def!r}")
            properties.append(PropertyDefinition(
                name=prop_name,
                description=prop_def.get("description", ""),
                default=prop_def.get("default"),
            ))

        return cls(
            name=data["name"],
            templates=[JobTemplate(src, dst) for src, dst in templates_data.items()],
            packages=[PackageRef(name) for name in packages_data],
            properties=properties,
            extracted_path=extracted_path,
        )
