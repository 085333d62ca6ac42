"""Safetensors header reader.

Only the lightweight JSON header is parsed; payload bytes are returned raw so
that the numeric conversion can interpret them.
"""

import json
import logging
import struct
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional, Union

from gguf_pack.errors import FormatError, MissingTensorError, TruncatedInputError
from gguf_pack.safetensors.types import RESERVED_PREFIX, TensorInfo

# Configure logger
logger = logging.getLogger(__name__)

# Upper bound for the header length prefix
MAX_HEADER_SIZE = 100 * 1024 * 1024


def read_header(stream: BinaryIO) -> "SafetensorsHeader":
    """Parse the header of a safetensors stream.

    The format is ``[8 bytes header size][JSON header][raw tensor data]``.
    Entries whose name starts with ``__`` are dropped.

    Args:
        stream: Seekable binary stream; it is rewound to the start first

    Returns:
        Parsed header with the absolute start of the payload region

    Raises:
        TruncatedInputError: If the stream ends inside the header
        FormatError: If the header is malformed
    """
    stream.seek(0)

    size_bytes = stream.read(8)
    if len(size_bytes) != 8:
        raise TruncatedInputError(
            f"Invalid header size: expected 8 bytes, got {len(size_bytes)}"
        )
    header_size = struct.unpack("<Q", size_bytes)[0]
    logger.debug(f"Header size: {header_size} bytes")

    if header_size > MAX_HEADER_SIZE:
        raise FormatError(f"Header size too large: {header_size} bytes")

    header_bytes = stream.read(header_size)
    if len(header_bytes) != header_size:
        raise TruncatedInputError(
            f"Incomplete header: expected {header_size} bytes, got {len(header_bytes)}"
        )

    try:
        raw = json.loads(header_bytes.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise FormatError(f"Header is not valid UTF-8: {e}")
    except json.JSONDecodeError as e:
        raise FormatError(f"Invalid JSON header: {e}")

    if not isinstance(raw, dict):
        raise FormatError(f"Header must be a JSON object, got {type(raw).__name__}")

    entries: Dict[str, TensorInfo] = {}
    for name, entry in raw.items():
        if name.startswith(RESERVED_PREFIX):
            continue
        entries[name] = _parse_entry(name, entry)

    data_start = stream.tell()
    logger.debug(f"Parsed {len(entries)} tensor entries, data starts at {data_start}")

    return SafetensorsHeader(entries=entries, data_start=data_start)


def _parse_entry(name: str, entry: Any) -> TensorInfo:
    """Validate and convert one tensor entry of the JSON header."""
    if not isinstance(entry, dict):
        raise FormatError(
            f"Invalid tensor info for '{name}': expected dict, got {type(entry).__name__}"
        )

    for field in ("dtype", "data_offsets", "shape"):
        if field not in entry:
            raise FormatError(f"Missing required field '{field}' for tensor '{name}'")

    dtype = entry["dtype"]
    if not isinstance(dtype, str):
        raise FormatError(f"Invalid dtype for tensor '{name}': {dtype!r}")

    offsets = entry["data_offsets"]
    if (
        not isinstance(offsets, list)
        or len(offsets) != 2
        or not all(_is_unsigned(v) for v in offsets)
    ):
        raise FormatError(f"Invalid data_offsets for tensor '{name}': {offsets}")
    if offsets[1] < offsets[0]:
        raise FormatError(f"Invalid offset range for tensor '{name}': {offsets}")

    shape = entry["shape"]
    if not isinstance(shape, list) or not all(_is_unsigned(v) for v in shape):
        raise FormatError(f"Invalid shape for tensor '{name}': {shape}")

    return TensorInfo(
        name=name,
        dtype=dtype,
        shape=tuple(shape),
        data_offsets=(offsets[0], offsets[1]),
    )


def _is_unsigned(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


class SafetensorsHeader:
    """Parsed safetensors header.

    Attributes:
        entries: Tensor records keyed by name, in header order
        data_start: Absolute file position of the payload region
    """

    def __init__(self, entries: Dict[str, TensorInfo], data_start: int) -> None:
        self.entries = entries
        self.data_start = data_start

    def get(self, name: str) -> Optional[TensorInfo]:
        return self.entries.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self.entries

    def __len__(self) -> int:
        return len(self.entries)


class SafetensorsReader:
    """Reader for the raw tensor bytes of a safetensors file.

    Example:
        with SafetensorsReader("model.safetensors") as reader:
            info = reader.get_tensor_info("emb.weight")
            data = reader.read_raw("emb.weight")

    Attributes:
        file_path: Path to the Safetensors file
        header: Parsed header containing tensor information
    """

    def __init__(self, file_path: Union[str, Path]) -> None:
        """Open a safetensors file and parse its header.

        Args:
            file_path: Path to the Safetensors file to read

        Raises:
            FileNotFoundError: If the file does not exist
            FormatError: If file format is invalid
        """
        self.file_path = Path(file_path)

        logger.debug(f"Opening safetensors file: {self.file_path}")
        self._file_handle: Optional[BinaryIO] = open(self.file_path, "rb")
        try:
            self.header = read_header(self._file_handle)
        except Exception:
            self.close()
            raise

        logger.info(f"Loaded header with {len(self.header)} tensors from {self.file_path}")

    def get_tensor_names(self) -> List[str]:
        """Get list of all tensor names in the file.

        Returns:
            List of tensor names
        """
        return list(self.header.entries.keys())

    def get_tensor_info(self, name: str) -> TensorInfo:
        """Get information about a specific tensor.

        Raises:
            MissingTensorError: If the tensor does not exist
        """
        info = self.header.get(name)
        if info is None:
            raise MissingTensorError(
                f"Tensor '{name}' not found in {self.file_path.name}"
            )
        return info

    def read_raw(self, name: str) -> bytes:
        """Read the declared byte range of a tensor.

        Raises:
            MissingTensorError: If the tensor does not exist
            TruncatedInputError: If the file ends before the range does
        """
        if self._file_handle is None:
            raise ValueError("reader is closed")

        info = self.get_tensor_info(name)
        self._file_handle.seek(self.header.data_start + info.data_offsets[0])
        data = self._file_handle.read(info.byte_size)

        if len(data) != info.byte_size:
            raise TruncatedInputError(
                f"Incomplete tensor data for '{name}': "
                f"expected {info.byte_size} bytes, got {len(data)}"
            )
        return data

    def close(self) -> None:
        """Close the reader and release resources."""
        if self._file_handle is not None:
            self._file_handle.close()
            self._file_handle = None
            logger.debug(f"Closed SafetensorsReader for {self.file_path}")

    def __enter__(self) -> "SafetensorsReader":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        self.close()

    def __contains__(self, name: str) -> bool:
        return name in self.header

    def __len__(self) -> int:
        return len(self.header)
