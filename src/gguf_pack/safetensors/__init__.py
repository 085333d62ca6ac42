"""
Safetensors source support

Parses the JSON header of safetensors files and reads raw tensor payloads.

Example Usage:
    with SafetensorsReader("model.safetensors") as reader:
        info = reader.get_tensor_info("blocks.0.att.key.weight")
        raw = reader.read_raw("blocks.0.att.key.weight")
"""

from .reader import SafetensorsHeader, SafetensorsReader, read_header
from .types import DType, TensorInfo

__all__ = [
    "SafetensorsReader",
    "SafetensorsHeader",
    "read_header",
    "DType",
    "TensorInfo",
]
