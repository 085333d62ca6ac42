"""Task converting an RWKV vocabulary into tokenizer metadata."""

import logging
from typing import Any, Mapping

from gguf_pack.container.types import MAX_ARRAY_LENGTH, MetadataType, MetadataValue
from gguf_pack.errors import ConfigError, FormatError
from gguf_pack.tasks.base import BuildContext, ConfigReader, PackTask
from gguf_pack.vocab import escape_single_byte, parse_vocab

logger = logging.getLogger(__name__)

# llama.cpp token type codes
TOKEN_TYPE_NORMAL = 1
TOKEN_TYPE_CONTROL = 3
TOKEN_TYPE_UNUSED = 5


class ConvertRwkvTokenizerTask(PackTask):
    """Reads a vocabulary file and emits the ``tokenizer.ggml.*`` entries.

    The vocabulary is padded up to ``token_count`` with unique
    ``<unused N>`` tokens, since models may reserve more embedding rows
    than the vocabulary uses.
    """

    task_type = "convert-rwkv-tokenizer"

    def __init__(
        self,
        key: str,
        source: str,
        token_count: int,
        escape_single_bytes: bool = False,
    ) -> None:
        super().__init__(key)
        self.source = source
        self.token_count = token_count
        self.escape_single_bytes = escape_single_bytes

    @classmethod
    def from_config(
        cls, key: str, table: Mapping[str, Any]
    ) -> "ConvertRwkvTokenizerTask":
        reader = ConfigReader(table, key, cls.task_type)
        reader.warn_unknown(("source", "token_count", "escape_single_bytes"))
        token_count = reader.uint("token_count", bits=64)
        if token_count > MAX_ARRAY_LENGTH:
            raise reader.error(
                f'"token_count" ({token_count}) exceeds the {MAX_ARRAY_LENGTH} '
                "entries a metadata array may hold"
            )
        return cls(
            key,
            source=reader.string("source"),
            token_count=token_count,
            escape_single_bytes=reader.boolean("escape_single_bytes", default=False),
        )

    def process(self, ctx: BuildContext) -> None:
        vocab_path = ctx.source_root / self.source
        logger.info(f"Reading vocabulary {vocab_path}")
        try:
            raw = vocab_path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise FormatError(f"vocabulary {vocab_path} is not valid UTF-8: {e}") from e
        vocab = parse_vocab(raw)

        if self.escape_single_bytes:
            vocab = [escape_single_byte(token) for token in vocab]

        remainder = self.token_count - len(vocab)
        if remainder < 0:
            raise ConfigError(
                f'"token_count" ({self.token_count}) is less than the '
                f"{len(vocab)} tokens in the vocabulary",
                key=self.key,
                task=self.task_type,
            )

        token_type = [TOKEN_TYPE_NORMAL] * len(vocab)
        if token_type:
            token_type[0] = TOKEN_TYPE_CONTROL

        # Every token has to be unique for llama.cpp
        for i in range(remainder):
            vocab.append(f"<unused {i}>".encode("utf-8"))
            token_type.append(TOKEN_TYPE_UNUSED)

        logger.debug(f"Vocabulary has {len(vocab)} tokens, {remainder} padding")

        ctx.push_metadata_str("tokenizer.ggml.model", "rwkv")
        ctx.push_metadata_value(
            "tokenizer.ggml.tokens", MetadataValue.array(MetadataType.STRING, vocab)
        )
        ctx.push_metadata_value(
            "tokenizer.ggml.token_type",
            MetadataValue.array(MetadataType.UINT32, token_type),
        )
