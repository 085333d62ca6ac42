"""Type definitions for reading safetensors sources."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

ShapeType = Tuple[int, ...]

# Header entries with this prefix are format bookkeeping, not tensors
RESERVED_PREFIX = "__"


class DType(Enum):
    """Element types that can appear in a safetensors header."""

    FLOAT64 = "F64"
    FLOAT32 = "F32"
    FLOAT16 = "F16"
    BFLOAT16 = "BF16"
    INT64 = "I64"
    INT32 = "I32"
    INT16 = "I16"
    INT8 = "I8"
    UINT8 = "U8"
    BOOL = "BOOL"

    @property
    def itemsize(self) -> int:
        """Bytes per element."""
        return _ITEMSIZES[self]

    @classmethod
    def lookup(cls, name: str) -> Optional["DType"]:
        """Return the DType for a header name, or None if it is unknown."""
        try:
            return cls(name)
        except ValueError:
            return None


_ITEMSIZES = {
    DType.FLOAT64: 8,
    DType.FLOAT32: 4,
    DType.FLOAT16: 2,
    DType.BFLOAT16: 2,
    DType.INT64: 8,
    DType.INT32: 4,
    DType.INT16: 2,
    DType.INT8: 1,
    DType.UINT8: 1,
    DType.BOOL: 1,
}


@dataclass
class TensorInfo:
    """Information about a tensor in a safetensors file."""

    name: str
    dtype: str  # header element type name, e.g. "BF16"
    shape: ShapeType  # width-last
    data_offsets: Tuple[int, int]  # relative to the start of the payload region

    @property
    def byte_size(self) -> int:
        """Calculate the byte size of the tensor.

        Returns:
            Size in bytes
        """
        return self.data_offsets[1] - self.data_offsets[0]

    @property
    def element_count(self) -> int:
        count = 1
        for extent in self.shape:
            count *= extent
        return count
