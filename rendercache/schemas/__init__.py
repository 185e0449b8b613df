"""
rendercache.schemas - Data structures for the template compilation cache.

Release -> ReleaseJob -> JobRecord            (precompile)
DeploymentJob + Instance -> TemplateRecord    (compile)

Lifecycle:
1. Release: jobs and packages read from a release directory
2. JobRecord: job source tarball uploaded once per release job
3. JobDescription: job tarball parsed at compile time
4. TemplateRecord: rendered archive uploaded once per compile
5. RenderedArchiveRecord: what find_rendered_archive hands back
"""

from .release import (
    Release,
    ReleaseJob,
    ReleasePackage,
)
from .deployment import (
    DeploymentJob,
    DeploymentManifest,
    Instance,
    Template,
)
from .records import (
    JobRecord,
    RenderedArchiveRecord,
    TemplateRecord,
)
from .job_description import (
    JobDescription,
    JobTemplate,
    PackageRef,
    PropertyDefinition,
)

__all__ = [
    # Release
    "Release",
    "ReleaseJob",
    "ReleasePackage",
    # Deployment
    "DeploymentJob",
    "DeploymentManifest",
    "Instance",
    "Template",
    # Records
    "JobRecord",
    "RenderedArchiveRecord",
    "TemplateRecord",
    # Job Description
    "JobDescription",
    "JobTemplate",
    "PackageRef",
    "PropertyDefinition",
]
