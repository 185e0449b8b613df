"""
Deployment schemas - what a deployment asks the compiler to render.

A DeploymentManifest lists deployment jobs. Each deployment job names the
templates it runs (each resolving to one release job) and how many
instances it has. Every instance is a separate compile target.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Template:
    """
    A reference from a deployment job to a release job template.

    Attributes:
        name: Template name as declared by the release job
        release: Name of the release that provides the template
    """
    name: str
    release: str = ""

    @property
    def key(self) -> str:
        """Identity used by the template-to-job repository."""
        return f"{self.release}/{self.name}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Template":
        """
        Deserialize from dictionary.

        Raises:
            ValueError: If name or release is missing
        """
        if not isinstance(data, dict) or not data.get("name"):
            raise ValueError(f"Template must be a mapping with a name, got: {data!r}")
        if not data.get("release"):
            raise ValueError(f"Template '{data['name']}' is missing 'release'")
        return cls(name=data["name"], release=data["release"])


@dataclass(frozen=True)
class Instance:
    """
    A concrete deployment target.

    Only job_name and index form the identity; properties are what the
    renderer substitutes into templates.
    """
    job_name: str
    index: int = 0
    properties: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def key(self) -> str:
        return f"{self.job_name}/{self.index}"


@dataclass(frozen=True)
class DeploymentJob:
    """
    A job in a deployment manifest.

    Attributes:
        name: Deployment job name
        templates: Ordered template references
        instances: Number of instances to compile
        properties: Job-level properties, merged over manifest properties
    """
    name: str
    templates: tuple[Template, ...] = field(default_factory=tuple)
    instances: int = 1
    properties: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DeploymentJob":
        """Deserialize from dictionary."""
        templates = data.get("templates", [])
        if not isinstance(templates, list):
            raise ValueError(f"Job '{data.get('name')}': templates must be a list")
        return cls(
            name=data["name"],
            templates=tuple(Template.from_dict(t) for t in templates),
            instances=int(data.get("instances", 1)),
            properties=data.get("properties", {}) or {},
        )


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


@dataclass
class DeploymentManifest:
    """A deployment: global properties plus deployment jobs."""
    name: str
    jobs: list[DeploymentJob] = field(default_factory=list)
    properties: dict[str, Any] = field(default_factory=dict)

    def get_job(self, name: str) -> DeploymentJob:
        for job in self.jobs:
            if job.name == name:
                return job
        raise KeyError(f"Deployment job not found: {name}")

    def instances_for(self, job: DeploymentJob) -> list[Instance]:
        """
        Build the instances of a deployment job.

        Job properties are deep-merged over manifest properties.
        """
        properties = _deep_merge(self.properties, job.properties)
        return [
            Instance(job_name=job.name, index=i, properties=properties)
            for i in range(job.instances)
        ]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DeploymentManifest":
        """Deserialize from dictionary."""
        if not isinstance(data, dict) or "name" not in data:
            raise ValueError("Deployment manifest must be a mapping with a 'name'")
        return cls(
            name=data["name"],
            jobs=[DeploymentJob.from_dict(j) for j in data.get("jobs", [])],
            properties=data.get("properties", {}) or {},
        )
