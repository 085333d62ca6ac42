"""Little-endian primitive reads and writes.

All readers take a binary stream and either return a complete value or raise
:class:`TruncatedInputError`; a partially read value is never returned.
"""

import struct
from typing import Any, BinaryIO

from gguf_pack.container.types import MAX_STRING_LENGTH
from gguf_pack.errors import FormatError, TruncatedInputError


def read_exact(stream: BinaryIO, size: int) -> bytes:
    """Read exactly ``size`` bytes from a stream.

    Raises:
        TruncatedInputError: If the stream ends early
    """
    data = stream.read(size)
    if len(data) != size:
        raise TruncatedInputError(f"expected {size} bytes, got {len(data)}")
    return data


def read_scalar(stream: BinaryIO, fmt: str) -> Any:
    """Read one value described by a struct format string."""
    return struct.unpack(fmt, read_exact(stream, struct.calcsize(fmt)))[0]


def write_scalar(stream: BinaryIO, fmt: str, value: Any) -> None:
    stream.write(struct.pack(fmt, value))


def read_u8(stream: BinaryIO) -> int:
    return read_scalar(stream, "<B")


def read_i8(stream: BinaryIO) -> int:
    return read_scalar(stream, "<b")


def read_u16(stream: BinaryIO) -> int:
    return read_scalar(stream, "<H")


def read_i16(stream: BinaryIO) -> int:
    return read_scalar(stream, "<h")


def read_u32(stream: BinaryIO) -> int:
    return read_scalar(stream, "<I")


def read_i32(stream: BinaryIO) -> int:
    return read_scalar(stream, "<i")


def read_u64(stream: BinaryIO) -> int:
    return read_scalar(stream, "<Q")


def read_i64(stream: BinaryIO) -> int:
    return read_scalar(stream, "<q")


def read_f32(stream: BinaryIO) -> float:
    return read_scalar(stream, "<f")


def read_f64(stream: BinaryIO) -> float:
    return read_scalar(stream, "<d")


def read_bool(stream: BinaryIO) -> bool:
    # Any non-zero byte is true
    return read_u8(stream) != 0


def read_string(stream: BinaryIO) -> bytes:
    """Read a u64 length-prefixed byte string.

    Raises:
        FormatError: If the declared length exceeds the string limit
        TruncatedInputError: If the stream ends early
    """
    length = read_u64(stream)
    if length > MAX_STRING_LENGTH:
        raise FormatError(f"invalid string: length {length} exceeds {MAX_STRING_LENGTH}")
    return read_exact(stream, length)


def write_u32(stream: BinaryIO, value: int) -> None:
    write_scalar(stream, "<I", value)


def write_u64(stream: BinaryIO, value: int) -> None:
    write_scalar(stream, "<Q", value)


def write_bool(stream: BinaryIO, value: bool) -> None:
    write_scalar(stream, "<B", 1 if value else 0)


def write_string(stream: BinaryIO, data: bytes) -> None:
    """Write a u64 length-prefixed byte string.

    Raises:
        FormatError: If the string exceeds the string limit
    """
    if len(data) > MAX_STRING_LENGTH:
        raise FormatError(
            f"invalid string: length {len(data)} exceeds {MAX_STRING_LENGTH}"
        )
    write_u64(stream, len(data))
    stream.write(data)
