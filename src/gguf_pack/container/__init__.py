"""
GGUF container codec

Typed, versioned encoding of metadata entries and tensor descriptors.

Example Usage:
    with open("model.gguf", "rb") as f:
        header = read_header(f)

    header = Header()
    header.metadata.append(("general.name", MetadataValue.string("demo")))
    with open("out.gguf", "wb") as f:
        write_header(f, header)
"""

from .header import read_header, read_tensor_info, write_header, write_padding
from .metadata import (
    read_metadata_entry,
    read_metadata_value,
    write_metadata_entry,
    write_metadata_value,
)
from .types import (
    ALIGNMENT,
    CONTAINER_VERSION,
    MAGIC_NUMBER,
    Header,
    MetadataArray,
    MetadataType,
    MetadataValue,
    TensorDimensions,
    TensorInfo,
    TensorType,
    align_offset,
)

__all__ = [
    # Header codec
    "read_header",
    "read_tensor_info",
    "write_header",
    "write_padding",
    # Metadata codec
    "read_metadata_entry",
    "read_metadata_value",
    "write_metadata_entry",
    "write_metadata_value",
    # Types
    "Header",
    "MetadataArray",
    "MetadataType",
    "MetadataValue",
    "TensorDimensions",
    "TensorInfo",
    "TensorType",
    # Layout
    "ALIGNMENT",
    "CONTAINER_VERSION",
    "MAGIC_NUMBER",
    "align_offset",
]
