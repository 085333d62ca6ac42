"""Base classes for packaging tasks.

A task runs in two phases. During :meth:`PackTask.process` it contributes
metadata entries and tensor descriptors to a shared :class:`BuildContext`;
during :meth:`PackTask.write_tensors` it streams the payloads of the tensors it
declared into the output at their precomputed offsets.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from gguf_pack.container.header import write_padding
from gguf_pack.container.types import (
    Header,
    MetadataValue,
    TensorDimensions,
    TensorInfo,
    TensorType,
    align_offset,
)
from gguf_pack.errors import ConfigError, LayoutInvariantViolation

logger = logging.getLogger(__name__)


class BuildContext:
    """Accumulator shared by all tasks during the contribute phase.

    Attributes:
        source_root: Directory source paths are resolved against
        metadata: Metadata entries in contribution order
        tensors: Tensor descriptors in contribution order
        next_offset: Offset the next allocated tensor will receive
        current_task: Key of the task currently contributing
    """

    def __init__(self, source_root: Union[str, Path]) -> None:
        self.source_root = Path(source_root)
        self.metadata: List[Tuple[str, MetadataValue]] = []
        self.tensors: List[TensorInfo] = []
        self.next_offset = 0
        self.current_task: Optional[str] = None
        self._metadata_owners: Dict[str, Tuple[str, MetadataValue]] = {}
        self._tensor_owners: Dict[str, str] = {}

    def push_metadata_str(self, key: str, value: Union[str, bytes]) -> None:
        self.push_metadata_value(key, MetadataValue.string(value))

    def push_metadata_u32(self, key: str, value: int) -> None:
        self.push_metadata_value(key, MetadataValue.uint32(value))

    def push_metadata_f32(self, key: str, value: float) -> None:
        self.push_metadata_value(key, MetadataValue.float32(value))

    def push_metadata_value(self, key: str, value: MetadataValue) -> None:
        """Append a metadata entry.

        A key contributed again with an equal value is kept once; a
        conflicting value is rejected.

        Raises:
            ConfigError: If the key already holds a different value
        """
        owner = self.current_task or "<none>"
        existing = self._metadata_owners.get(key)
        if existing is not None:
            previous_owner, previous_value = existing
            if previous_value == value:
                logger.debug(f"Metadata {key!r} already set by \"{previous_owner}\"")
                return
            raise ConfigError(
                f"metadata key {key!r} conflicts with the value set by "
                f"task \"{previous_owner}\"",
                key=owner,
            )

        self._metadata_owners[key] = (owner, value)
        self.metadata.append((key, value))

    def allocate(
        self, name: str, tensor_type: TensorType, dimensions: TensorDimensions
    ) -> TensorInfo:
        """Record a tensor descriptor at the next aligned offset.

        Raises:
            ConfigError: If a tensor with the same name was already declared
        """
        owner = self.current_task or "<none>"
        if name in self._tensor_owners:
            raise ConfigError(
                f"tensor {name!r} already declared by task "
                f"\"{self._tensor_owners[name]}\"",
                key=owner,
            )

        element_size = tensor_type.element_size
        if element_size is None:
            raise ConfigError(
                f"tensor type {tensor_type.name} cannot be produced", key=owner
            )

        info = TensorInfo(
            name=name,
            tensor_type=tensor_type,
            dimensions=dimensions,
            offset=self.next_offset,
        )
        self.tensors.append(info)
        self._tensor_owners[name] = owner

        self.next_offset = align_offset(
            self.next_offset + dimensions.total() * element_size
        )
        return info

    def to_header(self) -> Header:
        return Header(metadata=list(self.metadata), tensors=list(self.tensors))


@dataclass
class OutputContext:
    """Output handed to each task during the payload phase.

    Attributes:
        stream: Output stream, positioned where the previous task left it
        data_start: Absolute position of the tensor data region
        source_root: Directory source paths are resolved against
        show_progress: Whether tasks may display progress bars
    """

    stream: BinaryIO
    data_start: int
    source_root: Path
    show_progress: bool = False

    def write_tensor(self, tensor: TensorInfo, payload: bytes) -> None:
        """Pad to alignment and write a payload at its precomputed offset.

        Raises:
            LayoutInvariantViolation: If the stream is not at the offset
                recorded for the tensor, or the payload size is wrong
        """
        expected_size = tensor.byte_size
        if len(payload) != expected_size:
            raise LayoutInvariantViolation(
                f"payload of tensor {tensor.name!r} is {len(payload)} bytes, "
                f"descriptor declares {expected_size}"
            )

        position = write_padding(self.stream, self.data_start)
        expected = self.data_start + tensor.offset
        if position != expected:
            raise LayoutInvariantViolation(
                f"tensor {tensor.name!r} would be written at {position}, "
                f"expected {expected}"
            )

        self.stream.write(payload)


class ConfigReader:
    """Strict accessor for a task configuration table.

    Every failure raises :class:`ConfigError` naming the task key and type.
    """

    def __init__(self, table: Mapping[str, Any], key: str, task: str) -> None:
        self.table = table
        self.key = key
        self.task = task

    def error(self, message: str) -> ConfigError:
        return ConfigError(message, key=self.key, task=self.task)

    def get(self, name: str) -> Any:
        if name not in self.table:
            raise self.error(f'missing key "{name}"')
        return self.table[name]

    def string(self, name: str) -> str:
        value = self.get(name)
        if not isinstance(value, str):
            raise self.error(f'"{name}" must be a string, got {type(value).__name__}')
        return value

    def uint(self, name: str, bits: int = 32) -> int:
        value = self.get(name)
        if isinstance(value, bool) or not isinstance(value, int):
            raise self.error(f'"{name}" must be an integer, got {type(value).__name__}')
        if not 0 <= value < 2**bits:
            raise self.error(f'"{name}" must fit an unsigned {bits}-bit integer')
        return value

    def number(self, name: str) -> float:
        value = self.get(name)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise self.error(f'"{name}" must be a number, got {type(value).__name__}')
        return float(value)

    def boolean(self, name: str, default: Optional[bool] = None) -> bool:
        if name not in self.table and default is not None:
            return default
        value = self.get(name)
        if not isinstance(value, bool):
            raise self.error(f'"{name}" must be a boolean, got {type(value).__name__}')
        return value

    def subtable(self, name: str) -> Mapping[str, Any]:
        value = self.get(name)
        if not isinstance(value, Mapping):
            raise self.error(f'"{name}" must be a table, got {type(value).__name__}')
        return value

    def warn_unknown(self, known: Sequence[str]) -> None:
        """Log fields that no accessor of the task reads."""
        for name in self.table:
            if name != "task" and name not in known:
                logger.warning(
                    f'Task "{self.key}" ({self.task}): ignoring unknown key "{name}"'
                )


class PackTask(ABC):
    """Abstract base class for packaging tasks.

    Subclasses set ``task_type`` to their manifest discriminator and build
    themselves from a configuration table in :meth:`from_config`.

    Attributes:
        key: Manifest key of this task
    """

    task_type: str = ""

    def __init__(self, key: str) -> None:
        self.key = key

    @classmethod
    @abstractmethod
    def from_config(cls, key: str, table: Mapping[str, Any]) -> "PackTask":
        """Create the task from its manifest table.

        Raises:
            ConfigError: If a field is missing or has the wrong type
        """
        pass

    @abstractmethod
    def process(self, ctx: BuildContext) -> None:
        """Contribute metadata and tensor descriptors.

        Called exactly once per run. Must not depend on other tasks' output.
        """
        pass

    def write_tensors(self, out: OutputContext) -> None:
        """Write the payloads of the tensors declared in :meth:`process`.

        Tasks without tensors write nothing.
        """
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key={self.key!r})"
