"""Numeric conversion of tensor payloads.

Source payloads are widened to float32 and then narrowed to the target
element type. Only bfloat16 sources are supported.
"""

import numpy as np

from gguf_pack.container.types import TensorType
from gguf_pack.errors import SizeMismatchError, UnsupportedDTypeError
from gguf_pack.safetensors.types import DType

# Little-endian numpy dtypes of the supported target types
TARGET_DTYPES = {
    TensorType.F32: np.dtype("<f4"),
    TensorType.F16: np.dtype("<f2"),
}

SOURCE_DTYPES = (DType.BFLOAT16,)


def bf16_to_f32(raw: bytes) -> np.ndarray:
    """Widen little-endian bfloat16 bytes to float32.

    bfloat16 is the upper half of a float32, so widening is exact.
    """
    if len(raw) % 2:
        raise SizeMismatchError(f"bfloat16 payload has odd length {len(raw)}")
    halves = np.frombuffer(raw, dtype=np.dtype("<u2"))
    return (halves.astype(np.uint32) << np.uint32(16)).view(np.float32)


def f32_to_target(values: np.ndarray, tensor_type: TensorType) -> bytes:
    """Encode float32 values as the target tensor type.

    Narrowing to F16 rounds to nearest even; values beyond the half range
    become infinity.
    """
    dtype = TARGET_DTYPES.get(tensor_type)
    if dtype is None:
        raise UnsupportedDTypeError(
            f"target tensor type {tensor_type.name} is not supported for conversion"
        )
    with np.errstate(over="ignore"):
        return np.asarray(values, dtype=np.float32).astype(dtype).tobytes()


def convert_payload(
    raw: bytes, source_dtype: str, target_type: TensorType, element_count: int
) -> bytes:
    """Convert a source payload into the target element encoding.

    Args:
        raw: Source payload bytes
        source_dtype: Safetensors element type name of the payload
        target_type: Tensor type to produce
        element_count: Number of elements the payload must hold

    Returns:
        Converted little-endian payload bytes

    Raises:
        UnsupportedDTypeError: If the source or target type is unsupported
        SizeMismatchError: If the payload length disagrees with element_count
    """
    dtype = DType.lookup(source_dtype)
    if dtype not in SOURCE_DTYPES:
        raise UnsupportedDTypeError(
            f"source element type {source_dtype!r} is not supported, "
            f"expected one of {[d.value for d in SOURCE_DTYPES]}"
        )

    expected = element_count * dtype.itemsize
    if len(raw) != expected:
        raise SizeMismatchError(
            f"source payload is {len(raw)} bytes, expected {expected} "
            f"for {element_count} {dtype.value} elements"
        )

    return f32_to_target(bf16_to_f32(raw), target_type)
