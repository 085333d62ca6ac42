"""Task adding descriptive ``general.*`` metadata."""

from typing import Any, Mapping

from gguf_pack.tasks.base import BuildContext, ConfigReader, PackTask

CARD_FIELDS = ("name", "author", "description", "license", "architecture")


class AddModelCardTask(PackTask):
    """Writes the model card fields as ``general.<field>`` strings."""

    task_type = "add-model-card"

    def __init__(
        self,
        key: str,
        name: str,
        author: str,
        description: str,
        license: str,
        architecture: str,
    ) -> None:
        super().__init__(key)
        self.name = name
        self.author = author
        self.description = description
        self.license = license
        self.architecture = architecture

    @classmethod
    def from_config(cls, key: str, table: Mapping[str, Any]) -> "AddModelCardTask":
        reader = ConfigReader(table, key, cls.task_type)
        reader.warn_unknown(CARD_FIELDS)
        return cls(key, **{field: reader.string(field) for field in CARD_FIELDS})

    def process(self, ctx: BuildContext) -> None:
        for field in CARD_FIELDS:
            ctx.push_metadata_str(f"general.{field}", getattr(self, field))
