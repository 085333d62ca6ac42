"""Shared fixtures for gguf-pack tests."""

import json
import struct
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import pytest


def bf16_bytes(values: Sequence[float]) -> bytes:
    """Encode values as little-endian bfloat16 by truncating float32."""
    words = np.asarray(values, dtype="<f4").view("<u4")
    return (words >> np.uint32(16)).astype("<u2").tobytes()


def write_safetensors(
    path: Path,
    tensors: Dict[str, Tuple[str, Sequence[int], bytes]],
    metadata: Optional[Dict[str, str]] = None,
) -> Path:
    """Write a safetensors file from ``name -> (dtype, shape, raw bytes)``."""
    header = {}
    if metadata is not None:
        header["__metadata__"] = metadata

    offset = 0
    payload = b""
    for name, (dtype, shape, raw) in tensors.items():
        header[name] = {
            "dtype": dtype,
            "shape": list(shape),
            "data_offsets": [offset, offset + len(raw)],
        }
        payload += raw
        offset += len(raw)

    header_bytes = json.dumps(header).encode("utf-8")
    with open(path, "wb") as f:
        f.write(struct.pack("<Q", len(header_bytes)))
        f.write(header_bytes)
        f.write(payload)
    return path


@pytest.fixture
def model_dir(tmp_path):
    """Directory holding model sources for a packaging run."""
    path = tmp_path / "model"
    path.mkdir()
    return path


@pytest.fixture
def st_writer():
    """Helper writing safetensors fixtures."""
    return write_safetensors


@pytest.fixture
def to_bf16():
    """Helper encoding floats as bfloat16 bytes."""
    return bf16_bytes
