"""Rendered templates repository: (deployment job, instance) -> TemplateRecord."""

from typing import Optional

from rendercache.schemas import DeploymentJob, Instance, TemplateRecord

from .base import KeyValueRepository, RecordStore


class TemplatesRepository:
    """Records of rendered template archives, one per (job, instance)."""

    NAMESPACE = "rendered_templates"

    def __init__(self, store: RecordStore):
        self._repo: KeyValueRepository[tuple[DeploymentJob, Instance], TemplateRecord] = KeyValueRepository(
            store,
            self.NAMESPACE,
            key_fn=lambda pair: f"{pair[0].name}:{pair[1].key}",
            encode=lambda rec: rec.to_dict(),
            decode=TemplateRecord.from_dict,
        )

    def find(self, job: DeploymentJob, instance: Instance) -> Optional[TemplateRecord]:
        return self._repo.find((job, instance))

    def save(self, job: DeploymentJob, instance: Instance, record: TemplateRecord) -> None:
        self._repo.save((job, instance), record)
