"""Type definitions for the GGUF container format."""

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from gguf_pack.errors import TooManyDimensionsError

MAGIC_NUMBER = b"GGUF"

# Version written by this package; 2 and 3 share the same layout
CONTAINER_VERSION = 3
SUPPORTED_VERSIONS = (2, 3)

# Decode limits, protecting against corrupt or hostile length fields
MAX_TENSOR_COUNT = 1024
MAX_METADATA_COUNT = 1024
MAX_STRING_LENGTH = 65535
MAX_ARRAY_LENGTH = 524288
MAX_ARRAY_DEPTH = 2
MAX_DIMENSIONS = 4

ALIGNMENT = 32


def align_offset(offset: int) -> int:
    """Round an offset up to the next 32 byte boundary.

    Args:
        offset: Byte offset to align

    Returns:
        The smallest multiple of 32 that is not less than ``offset``
    """
    return offset + (ALIGNMENT - offset % ALIGNMENT) % ALIGNMENT


class MetadataType(IntEnum):
    """Wire type tags of metadata values."""

    UINT8 = 0
    INT8 = 1
    UINT16 = 2
    INT16 = 3
    UINT32 = 4
    INT32 = 5
    FLOAT32 = 6
    BOOL = 7
    STRING = 8
    ARRAY = 9
    UINT64 = 10
    INT64 = 11
    FLOAT64 = 12

    @property
    def struct_format(self) -> Optional[str]:
        """Little-endian struct format of fixed-width kinds, None otherwise."""
        return _STRUCT_FORMATS.get(self)


_STRUCT_FORMATS = {
    MetadataType.UINT8: "<B",
    MetadataType.INT8: "<b",
    MetadataType.UINT16: "<H",
    MetadataType.INT16: "<h",
    MetadataType.UINT32: "<I",
    MetadataType.INT32: "<i",
    MetadataType.FLOAT32: "<f",
    MetadataType.BOOL: "<?",
    MetadataType.UINT64: "<Q",
    MetadataType.INT64: "<q",
    MetadataType.FLOAT64: "<d",
}

_FLOAT_KINDS = (MetadataType.FLOAT32, MetadataType.FLOAT64)


def _normalize_scalar(kind: MetadataType, value: Any) -> Any:
    """Validate a scalar payload against its kind and return the stored form.

    Floats are rounded to their wire precision so that an encoded value
    always decodes to an equal one.
    """
    if kind == MetadataType.STRING:
        if isinstance(value, str):
            return value.encode("utf-8")
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        raise TypeError(f"STRING value must be bytes or str, got {type(value)}")

    if kind == MetadataType.BOOL:
        if not isinstance(value, bool):
            raise TypeError(f"BOOL value must be bool, got {type(value)}")
        return value

    fmt = _STRUCT_FORMATS[kind]

    if kind in _FLOAT_KINDS:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeError(f"{kind.name} value must be a number, got {type(value)}")
        try:
            return struct.unpack(fmt, struct.pack(fmt, float(value)))[0]
        except (OverflowError, struct.error) as e:
            raise ValueError(f"{value!r} is out of range for {kind.name}: {e}")

    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{kind.name} value must be an integer, got {type(value)}")
    try:
        struct.pack(fmt, value)
    except struct.error as e:
        raise ValueError(f"{value!r} is out of range for {kind.name}: {e}")
    return int(value)


@dataclass(frozen=True)
class MetadataArray:
    """A homogeneous array of metadata values.

    ``values`` holds plain Python scalars for scalar kinds, ``bytes`` for
    strings and nested :class:`MetadataArray` instances for ``ARRAY``.
    """

    type: MetadataType
    values: Tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        kind = MetadataType(self.type)
        if kind == MetadataType.ARRAY:
            for item in self.values:
                if not isinstance(item, MetadataArray):
                    raise TypeError("nested array elements must be MetadataArray")
            normalized = tuple(self.values)
        else:
            normalized = tuple(_normalize_scalar(kind, item) for item in self.values)
        object.__setattr__(self, "type", kind)
        object.__setattr__(self, "values", normalized)

    def __len__(self) -> int:
        return len(self.values)

    def to_python(self) -> List[Any]:
        return [
            item.to_python() if isinstance(item, MetadataArray) else item
            for item in self.values
        ]


@dataclass(frozen=True)
class MetadataValue:
    """A typed metadata value.

    The wire type tag is carried next to the payload and checked on
    construction, so every value can be encoded without inspection.

    Example:
        MetadataValue(MetadataType.UINT32, 4096)
        MetadataValue.string("rwkv")
        MetadataValue.array(MetadataType.STRING, [b"a", b"b"])
    """

    type: MetadataType
    value: Any

    def __post_init__(self) -> None:
        kind = MetadataType(self.type)
        if kind == MetadataType.ARRAY:
            if not isinstance(self.value, MetadataArray):
                raise TypeError("ARRAY value must be a MetadataArray")
            normalized = self.value
        else:
            normalized = _normalize_scalar(kind, self.value)
        object.__setattr__(self, "type", kind)
        object.__setattr__(self, "value", normalized)

    @classmethod
    def string(cls, value: Union[str, bytes]) -> "MetadataValue":
        return cls(MetadataType.STRING, value)

    @classmethod
    def uint32(cls, value: int) -> "MetadataValue":
        return cls(MetadataType.UINT32, value)

    @classmethod
    def uint64(cls, value: int) -> "MetadataValue":
        return cls(MetadataType.UINT64, value)

    @classmethod
    def float32(cls, value: float) -> "MetadataValue":
        return cls(MetadataType.FLOAT32, value)

    @classmethod
    def array(cls, element_type: MetadataType, values: Sequence[Any]) -> "MetadataValue":
        return cls(MetadataType.ARRAY, MetadataArray(element_type, tuple(values)))

    def to_python(self) -> Any:
        """Return the payload as plain Python data."""
        if isinstance(self.value, MetadataArray):
            return self.value.to_python()
        return self.value


class TensorType(IntEnum):
    """Element encodings of tensor payloads.

    Only F32 and F16 are produced by the packaging pipeline; the quantized
    block types exist so that foreign containers can be decoded.
    """

    F32 = 0
    F16 = 1
    Q4_0 = 2
    Q4_1 = 3
    Q5_0 = 6
    Q5_1 = 7
    Q8_0 = 8
    Q8_1 = 9
    Q2_K = 10
    Q3_K = 11
    Q4_K = 12
    Q5_K = 13
    Q6_K = 14
    Q8_K = 15
    I8 = 16
    I16 = 17
    I32 = 18
    COUNT = 19

    @property
    def element_size(self) -> Optional[int]:
        """Bytes per element, or None for block-quantized types."""
        return _ELEMENT_SIZES.get(self)


_ELEMENT_SIZES = {
    TensorType.F32: 4,
    TensorType.F16: 2,
    TensorType.I8: 1,
    TensorType.I16: 2,
    TensorType.I32: 4,
}


@dataclass(frozen=True)
class TensorDimensions:
    """Tensor extents in four fixed slots, width first.

    GGUF orders dimensions ``Width x Height x Channel x Batch``. Unused
    trailing slots are zero, which real extents cannot be.
    """

    slots: Tuple[int, int, int, int] = (0, 0, 0, 0)

    def __post_init__(self) -> None:
        slots = tuple(int(v) for v in self.slots)
        if len(slots) != MAX_DIMENSIONS:
            raise ValueError(f"expected {MAX_DIMENSIONS} slots, got {len(slots)}")
        for value in slots:
            if not 0 <= value < 2**64:
                raise ValueError(f"dimension out of range: {value}")
        object.__setattr__(self, "slots", slots)

    @classmethod
    def from_width_first(cls, values: Sequence[int]) -> "TensorDimensions":
        """Create dimensions from values already in width-first order."""
        if len(values) > MAX_DIMENSIONS:
            raise TooManyDimensionsError(
                f"{len(values)} dimensions given, at most {MAX_DIMENSIONS} supported"
            )
        if any(v == 0 for v in values):
            raise ValueError(f"zero is not a valid dimension: {list(values)}")
        padded = list(values) + [0] * (MAX_DIMENSIONS - len(values))
        return cls(tuple(padded))

    @classmethod
    def from_width_last(cls, values: Sequence[int]) -> "TensorDimensions":
        """Create dimensions from a width-last shape, such as a safetensors one."""
        return cls.from_width_first(list(reversed(list(values))))

    def count(self) -> int:
        """Number of used slots."""
        for i, value in enumerate(self.slots):
            if value == 0:
                return i
        return MAX_DIMENSIONS

    def total(self) -> int:
        """Number of scalars in total."""
        count = self.count()
        if count == 0:
            return 0
        value = 1
        for extent in self.slots[:count]:
            value *= extent
        return value

    def to_width_first(self) -> List[int]:
        return list(self.slots[: self.count()])

    def to_width_last(self) -> List[int]:
        return list(reversed(self.to_width_first()))

    def __str__(self) -> str:
        return "[" + ", ".join(str(v) for v in self.to_width_first()) + "]"


@dataclass
class TensorInfo:
    """Descriptor of a tensor inside a GGUF container."""

    name: str
    tensor_type: TensorType
    dimensions: TensorDimensions
    offset: int  # relative to the start of the tensor data region

    @property
    def byte_size(self) -> Optional[int]:
        """Payload size in bytes, or None for block-quantized types."""
        element_size = self.tensor_type.element_size
        if element_size is None:
            return None
        return self.dimensions.total() * element_size

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.tensor_type.name,
            "dimensions": self.dimensions.to_width_first(),
            "offset": self.offset,
        }


@dataclass
class Header:
    """Ordered metadata entries and tensor descriptors of a container."""

    metadata: List[Tuple[str, MetadataValue]] = field(default_factory=list)
    tensors: List[TensorInfo] = field(default_factory=list)

    def get_metadata(self, key: str) -> Optional[MetadataValue]:
        """Return the first metadata value stored under ``key``."""
        for entry_key, value in self.metadata:
            if entry_key == key:
                return value
        return None

    def get_tensor(self, name: str) -> Optional[TensorInfo]:
        for tensor in self.tensors:
            if tensor.name == name:
                return tensor
        return None
