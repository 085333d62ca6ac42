"""Encoding and decoding of metadata values and entries."""

import struct
from typing import Any, BinaryIO, List, Tuple

from gguf_pack.container.primitives import (
    read_bool,
    read_exact,
    read_scalar,
    read_string,
    read_u32,
    read_u64,
    write_bool,
    write_scalar,
    write_string,
    write_u32,
    write_u64,
)
from gguf_pack.container.types import (
    MAX_ARRAY_DEPTH,
    MAX_ARRAY_LENGTH,
    MetadataArray,
    MetadataType,
    MetadataValue,
)
from gguf_pack.errors import FormatError, InvalidTypeTagError, UnsupportedWriteError


def read_metadata_type(stream: BinaryIO) -> MetadataType:
    """Read a u32 type tag.

    Raises:
        InvalidTypeTagError: If the tag is not a known metadata type
    """
    tag = read_u32(stream)
    try:
        return MetadataType(tag)
    except ValueError:
        raise InvalidTypeTagError(f"invalid metadata type tag: {tag}")


def read_metadata_value(stream: BinaryIO) -> MetadataValue:
    """Read a type tag followed by its payload."""
    kind = read_metadata_type(stream)

    if kind == MetadataType.STRING:
        return MetadataValue(kind, read_string(stream))
    if kind == MetadataType.ARRAY:
        return MetadataValue(kind, read_metadata_array(stream, 0))
    if kind == MetadataType.BOOL:
        return MetadataValue(kind, read_bool(stream))
    return MetadataValue(kind, read_scalar(stream, kind.struct_format))


def read_metadata_array(stream: BinaryIO, depth: int) -> MetadataArray:
    """Read an array body: element tag, u64 length and the elements.

    Args:
        stream: Binary stream positioned at the element tag
        depth: Nesting depth of this array, 0 for a top-level value

    Raises:
        FormatError: If the array is nested too deeply or is too long
    """
    if depth > MAX_ARRAY_DEPTH:
        raise FormatError("excessive metadata array depth")

    kind = read_metadata_type(stream)
    length = read_u64(stream)

    # This is a very large value, but it's necessary for some vocabs
    if length > MAX_ARRAY_LENGTH:
        raise FormatError(f"excessive array length: {length}")

    values: List[Any]
    if kind == MetadataType.ARRAY:
        values = [read_metadata_array(stream, depth + 1) for _ in range(length)]
    elif kind == MetadataType.STRING:
        values = [read_string(stream) for _ in range(length)]
    elif kind == MetadataType.BOOL:
        values = [byte != 0 for byte in read_exact(stream, length)]
    else:
        fmt = kind.struct_format
        item_size = struct.calcsize(fmt)
        raw = read_exact(stream, item_size * length)
        values = list(struct.unpack(f"<{length}{fmt[1:]}", raw))

    return MetadataArray(kind, tuple(values))


def read_metadata_entry(stream: BinaryIO) -> Tuple[str, MetadataValue]:
    """Read a length-prefixed key followed by a typed value."""
    raw_key = read_string(stream)
    try:
        key = raw_key.decode("utf-8")
    except UnicodeDecodeError as e:
        raise FormatError(f"metadata key is not valid UTF-8: {e}")
    return key, read_metadata_value(stream)


def write_metadata_value(stream: BinaryIO, value: MetadataValue) -> None:
    """Write a type tag followed by its payload."""
    write_u32(stream, value.type)

    if value.type == MetadataType.STRING:
        write_string(stream, value.value)
    elif value.type == MetadataType.ARRAY:
        write_metadata_array(stream, value.value, 0)
    elif value.type == MetadataType.BOOL:
        write_bool(stream, value.value)
    else:
        write_scalar(stream, value.type.struct_format, value.value)


def write_metadata_array(stream: BinaryIO, array: MetadataArray, depth: int) -> None:
    """Write an array body, mirroring :func:`read_metadata_array`.

    Raises:
        UnsupportedWriteError: If the array is nested deeper than a reader
            would accept
    """
    if depth > MAX_ARRAY_DEPTH:
        raise UnsupportedWriteError("array nesting too deep to be read back")
    if len(array) > MAX_ARRAY_LENGTH:
        raise UnsupportedWriteError(
            f"array length {len(array)} exceeds {MAX_ARRAY_LENGTH}"
        )

    write_u32(stream, array.type)
    write_u64(stream, len(array))

    if array.type == MetadataType.ARRAY:
        for item in array.values:
            write_metadata_array(stream, item, depth + 1)
    elif array.type == MetadataType.STRING:
        for item in array.values:
            write_string(stream, item)
    elif array.type == MetadataType.BOOL:
        stream.write(bytes(1 if item else 0 for item in array.values))
    else:
        fmt = array.type.struct_format
        stream.write(struct.pack(f"<{len(array)}{fmt[1:]}", *array.values))


def write_metadata_entry(stream: BinaryIO, key: str, value: MetadataValue) -> None:
    """Write a length-prefixed key followed by a typed value."""
    write_string(stream, key.encode("utf-8"))
    write_metadata_value(stream, value)
