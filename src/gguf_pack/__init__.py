"""gguf-pack: package model weights and metadata into GGUF containers"""

__version__ = "0.1.0"

from gguf_pack.container import Header, MetadataType, MetadataValue, TensorType
from gguf_pack.errors import ConfigError, FormatError, PackError, TaskError
from gguf_pack.packager import pack_model, read_container_header

__all__ = [
    "pack_model",
    "read_container_header",
    "Header",
    "MetadataType",
    "MetadataValue",
    "TensorType",
    "PackError",
    "ConfigError",
    "FormatError",
    "TaskError",
]
