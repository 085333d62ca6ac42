"""Task adding architecture hyperparameters as metadata."""

from dataclasses import dataclass
from typing import Any, Mapping

from gguf_pack.container.types import MetadataValue
from gguf_pack.tasks.base import BuildContext, ConfigReader, PackTask

# State space placeholders llama.cpp requires to load RWKV models
SSM_STATE_SIZE = 1
SSM_INNER_SIZE = 1


@dataclass
class ModelHyperparameters:
    """Hyperparameters of one architecture, keyed under ``<architecture>.``."""

    architecture: str
    context_length: int
    embedding_length: int
    block_count: int
    feed_forward_length: int
    attention_head_count: int
    layer_norm_epsilon: float


class AddModelConfigTask(PackTask):
    """Writes ``general.architecture`` and the architecture's hyperparameters."""

    task_type = "add-model-config"

    U32_FIELDS = (
        "context_length",
        "embedding_length",
        "block_count",
        "feed_forward_length",
        "attention_head_count",
    )

    def __init__(self, key: str, params: ModelHyperparameters) -> None:
        super().__init__(key)
        self.params = params

    @classmethod
    def from_config(cls, key: str, table: Mapping[str, Any]) -> "AddModelConfigTask":
        reader = ConfigReader(table, key, cls.task_type)
        reader.warn_unknown(("architecture", "layer_norm_epsilon") + cls.U32_FIELDS)

        epsilon = reader.number("layer_norm_epsilon")
        try:
            MetadataValue.float32(epsilon)
        except ValueError:
            raise reader.error(
                f'"layer_norm_epsilon" {epsilon!r} does not fit a 32-bit float'
            )

        params = ModelHyperparameters(
            architecture=reader.string("architecture"),
            layer_norm_epsilon=epsilon,
            **{name: reader.uint(name) for name in cls.U32_FIELDS},
        )
        return cls(key, params)

    def process(self, ctx: BuildContext) -> None:
        p = self.params
        ctx.push_metadata_str("general.architecture", p.architecture)

        def k(name: str) -> str:
            return f"{p.architecture}.{name}"

        ctx.push_metadata_u32(k("context_length"), p.context_length)
        ctx.push_metadata_u32(k("embedding_length"), p.embedding_length)
        ctx.push_metadata_u32(k("block_count"), p.block_count)
        ctx.push_metadata_u32(k("feed_forward_length"), p.feed_forward_length)
        ctx.push_metadata_u32(k("attention.head_count"), p.attention_head_count)
        ctx.push_metadata_f32(k("attention.layer_norm_epsilon"), p.layer_norm_epsilon)

        ctx.push_metadata_u32(k("ssm.state_size"), SSM_STATE_SIZE)
        ctx.push_metadata_u32(k("ssm.inner_size"), SSM_INNER_SIZE)
