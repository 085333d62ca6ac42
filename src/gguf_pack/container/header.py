"""Reading and writing complete GGUF headers."""

import logging
from typing import BinaryIO

from gguf_pack.container.metadata import read_metadata_entry, write_metadata_entry
from gguf_pack.container.primitives import (
    read_exact,
    read_string,
    read_u32,
    read_u64,
    write_string,
    write_u32,
    write_u64,
)
from gguf_pack.container.types import (
    CONTAINER_VERSION,
    MAGIC_NUMBER,
    MAX_DIMENSIONS,
    MAX_METADATA_COUNT,
    MAX_TENSOR_COUNT,
    SUPPORTED_VERSIONS,
    Header,
    TensorDimensions,
    TensorInfo,
    TensorType,
    align_offset,
)
from gguf_pack.errors import (
    ExcessiveCountError,
    FormatError,
    InvalidMagicError,
    InvalidTensorTypeError,
    PackError,
    TooManyDimensionsError,
    UnsupportedVersionError,
)

logger = logging.getLogger(__name__)


def read_header(stream: BinaryIO) -> Header:
    """Read the header of a GGUF container.

    This also validates the magic number and the container version.

    Args:
        stream: Binary stream positioned at the start of the container

    Returns:
        Header with metadata and tensor descriptors in file order

    Raises:
        FormatError: If the container is malformed
        TruncatedInputError: If the stream ends inside the header
    """
    magic = read_exact(stream, 4)
    if magic != MAGIC_NUMBER:
        raise InvalidMagicError(f"magic number doesn't match: {magic!r}")

    # Versions 2 and 3 share a layout. Version 3 may hypothetically hold
    # big-endian values but has no way of flagging it, so it is read as
    # little-endian. Version 1 used 32-bit counts and is not supported.
    version = read_u32(stream)
    if version not in SUPPORTED_VERSIONS:
        raise UnsupportedVersionError(f"unsupported gguf version: {version}")

    tensor_count = read_u64(stream)
    metadata_count = read_u64(stream)

    if tensor_count > MAX_TENSOR_COUNT:
        raise ExcessiveCountError(f"excessive tensor count: {tensor_count}")
    if metadata_count > MAX_METADATA_COUNT:
        raise ExcessiveCountError(f"excessive metadata count: {metadata_count}")

    logger.debug(
        f"Reading gguf v{version} header: {metadata_count} metadata entries, "
        f"{tensor_count} tensors"
    )

    header = Header()
    for index in range(metadata_count):
        try:
            header.metadata.append(read_metadata_entry(stream))
        except PackError as e:
            raise type(e)(f"failed to read metadata entry {index}: {e}") from e

    for index in range(tensor_count):
        try:
            header.tensors.append(read_tensor_info(stream))
        except PackError as e:
            raise type(e)(f"failed to read tensor info {index}: {e}") from e

    return header


def read_tensor_info(stream: BinaryIO) -> TensorInfo:
    """Read a single tensor descriptor."""
    try:
        name = read_string(stream).decode("utf-8")
    except UnicodeDecodeError as e:
        raise FormatError(f"tensor name is not valid UTF-8: {e}")

    dimension_count = read_u32(stream)
    if dimension_count > MAX_DIMENSIONS:
        raise TooManyDimensionsError(
            f"invalid tensor {name!r}: {dimension_count} dimensions"
        )

    slots = [0] * MAX_DIMENSIONS
    for i in range(dimension_count):
        slots[i] = read_u64(stream)
        if slots[i] == 0:
            raise FormatError(f"invalid tensor {name!r}: zero extent in dimension {i}")

    tag = read_u32(stream)
    try:
        tensor_type = TensorType(tag)
    except ValueError:
        raise InvalidTensorTypeError(f"invalid tensor {name!r}: type tag {tag}")

    offset = read_u64(stream)

    return TensorInfo(
        name=name,
        tensor_type=tensor_type,
        dimensions=TensorDimensions(tuple(slots)),
        offset=offset,
    )


def write_header(stream: BinaryIO, header: Header) -> None:
    """Write a complete GGUF header at the current stream position.

    The header is always written as the latest supported version.
    """
    stream.write(MAGIC_NUMBER)
    write_u32(stream, CONTAINER_VERSION)

    write_u64(stream, len(header.tensors))
    write_u64(stream, len(header.metadata))

    for key, value in header.metadata:
        write_metadata_entry(stream, key, value)

    for tensor in header.tensors:
        write_tensor_info(stream, tensor)

    logger.debug(
        f"Wrote header with {len(header.metadata)} metadata entries and "
        f"{len(header.tensors)} tensors"
    )


def write_tensor_info(stream: BinaryIO, tensor: TensorInfo) -> None:
    write_string(stream, tensor.name.encode("utf-8"))

    count = tensor.dimensions.count()
    write_u32(stream, count)
    for value in tensor.dimensions.slots[:count]:
        write_u64(stream, value)

    write_u32(stream, tensor.tensor_type)
    write_u64(stream, tensor.offset)


def write_padding(stream: BinaryIO, base: int = 0) -> int:
    """Pad with zero bytes up to the next aligned position.

    Args:
        stream: Seekable binary stream
        base: Position alignment is measured from

    Returns:
        The aligned absolute stream position
    """
    current = stream.tell()
    padded = base + align_offset(current - base)
    padding = padded - current
    if padding:
        stream.write(b"\x00" * padding)
    return padded

