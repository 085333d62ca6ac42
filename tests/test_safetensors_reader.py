"""Tests for the safetensors source reader."""

import io
import json
import struct

import pytest

from gguf_pack.errors import FormatError, MissingTensorError, TruncatedInputError
from gguf_pack.safetensors import DType, SafetensorsReader, read_header


def raw_file(header, payload=b""):
    header_bytes = json.dumps(header).encode("utf-8")
    return struct.pack("<Q", len(header_bytes)) + header_bytes + payload


class TestReadHeader:
    """Tests for header parsing."""

    def test_entries_and_data_start(self):
        header = {"a": {"dtype": "BF16", "shape": [2], "data_offsets": [0, 4]}}
        data = raw_file(header, b"\x00" * 4)
        parsed = read_header(io.BytesIO(data))

        assert len(parsed) == 1
        assert parsed.data_start == len(data) - 4
        info = parsed.get("a")
        assert info.dtype == "BF16"
        assert info.shape == (2,)
        assert info.data_offsets == (0, 4)
        assert info.byte_size == 4
        assert info.element_count == 2

    def test_reserved_entries_dropped(self):
        header = {
            "__metadata__": {"format": "pt"},
            "a": {"dtype": "BF16", "shape": [1], "data_offsets": [0, 2]},
        }
        parsed = read_header(io.BytesIO(raw_file(header, b"\x00\x00")))
        assert "__metadata__" not in parsed
        assert "a" in parsed

    def test_scalar_shape(self):
        header = {"s": {"dtype": "F32", "shape": [], "data_offsets": [0, 4]}}
        parsed = read_header(io.BytesIO(raw_file(header, b"\x00" * 4)))
        assert parsed.get("s").element_count == 1

    def test_truncated_length(self):
        with pytest.raises(TruncatedInputError):
            read_header(io.BytesIO(b"\x01\x00"))

    def test_truncated_json(self):
        data = struct.pack("<Q", 100) + b"{}"
        with pytest.raises(TruncatedInputError):
            read_header(io.BytesIO(data))

    def test_invalid_json(self):
        data = struct.pack("<Q", 3) + b"{x}"
        with pytest.raises(FormatError, match="Invalid JSON"):
            read_header(io.BytesIO(data))

    def test_non_object_json(self):
        with pytest.raises(FormatError, match="JSON object"):
            read_header(io.BytesIO(raw_file([1, 2])))

    def test_missing_field(self):
        header = {"a": {"dtype": "BF16", "shape": [1]}}
        with pytest.raises(FormatError, match="data_offsets"):
            read_header(io.BytesIO(raw_file(header)))

    @pytest.mark.parametrize(
        "offsets", [[0], [4, 2], [-1, 2], ["0", "2"], [0.0, 2.0]]
    )
    def test_bad_offsets(self, offsets):
        header = {"a": {"dtype": "BF16", "shape": [1], "data_offsets": offsets}}
        with pytest.raises(FormatError):
            read_header(io.BytesIO(raw_file(header)))

    def test_bad_shape(self):
        header = {"a": {"dtype": "BF16", "shape": [-1], "data_offsets": [0, 2]}}
        with pytest.raises(FormatError, match="shape"):
            read_header(io.BytesIO(raw_file(header)))


class TestSafetensorsReader:
    """Tests for reading tensors from files."""

    def test_read_raw(self, tmp_path, st_writer, to_bf16):
        path = st_writer(
            tmp_path / "model.safetensors",
            {
                "a": ("BF16", [2], to_bf16([1.0, 2.0])),
                "b": ("BF16", [1], to_bf16([-1.0])),
            },
            metadata={"format": "pt"},
        )

        with SafetensorsReader(path) as reader:
            assert reader.get_tensor_names() == ["a", "b"]
            assert len(reader) == 2
            assert "b" in reader
            assert reader.read_raw("a") == to_bf16([1.0, 2.0])
            assert reader.read_raw("b") == to_bf16([-1.0])

    def test_missing_tensor(self, tmp_path, st_writer, to_bf16):
        path = st_writer(tmp_path / "m.safetensors", {"a": ("BF16", [1], to_bf16([0.0]))})
        with SafetensorsReader(path) as reader:
            with pytest.raises(MissingTensorError):
                reader.get_tensor_info("nope")

    def test_truncated_payload(self, tmp_path):
        path = tmp_path / "m.safetensors"
        header = {"a": {"dtype": "BF16", "shape": [4], "data_offsets": [0, 8]}}
        path.write_bytes(raw_file(header, b"\x00" * 3))
        with SafetensorsReader(path) as reader:
            with pytest.raises(TruncatedInputError):
                reader.read_raw("a")

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            SafetensorsReader(tmp_path / "missing.safetensors")

    def test_closed_reader(self, tmp_path, st_writer, to_bf16):
        path = st_writer(tmp_path / "m.safetensors", {"a": ("BF16", [1], to_bf16([0.0]))})
        reader = SafetensorsReader(path)
        reader.close()
        with pytest.raises(ValueError):
            reader.read_raw("a")


class TestDType:
    def test_lookup(self):
        assert DType.lookup("BF16") is DType.BFLOAT16
        assert DType.lookup("F8_E4M3") is None

    def test_itemsize(self):
        assert DType.BFLOAT16.itemsize == 2
        assert DType.FLOAT64.itemsize == 8
