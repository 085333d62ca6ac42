"""Tests for the GGUF container codec."""

import io
import struct

import pytest

from gguf_pack.container import (
    Header,
    MetadataArray,
    MetadataType,
    MetadataValue,
    TensorDimensions,
    TensorInfo,
    TensorType,
    align_offset,
    read_header,
    read_metadata_entry,
    read_metadata_value,
    write_header,
    write_metadata_entry,
    write_metadata_value,
)
from gguf_pack.container.primitives import (
    read_bool,
    read_f32,
    read_f64,
    read_i8,
    read_i16,
    read_i32,
    read_i64,
    read_string,
    read_u16,
    read_u32,
    read_u64,
    write_string,
    write_u32,
    write_u64,
)
from gguf_pack.errors import (
    ExcessiveCountError,
    FormatError,
    InvalidMagicError,
    InvalidTensorTypeError,
    InvalidTypeTagError,
    TooManyDimensionsError,
    TruncatedInputError,
    UnsupportedVersionError,
    UnsupportedWriteError,
)


def encode_value(value: MetadataValue) -> bytes:
    stream = io.BytesIO()
    write_metadata_value(stream, value)
    return stream.getvalue()


def encode_header(header: Header) -> bytes:
    stream = io.BytesIO()
    write_header(stream, header)
    return stream.getvalue()


def sample_header() -> Header:
    return Header(
        metadata=[
            ("general.name", MetadataValue.string("demo")),
            ("demo.block_count", MetadataValue.uint32(24)),
            ("demo.epsilon", MetadataValue.float32(1e-5)),
            ("demo.flag", MetadataValue(MetadataType.BOOL, True)),
            ("demo.offset", MetadataValue(MetadataType.INT64, -7)),
            (
                "tokenizer.ggml.tokens",
                MetadataValue.array(MetadataType.STRING, [b"a", b"\xe4\xbd", b"c"]),
            ),
            (
                "demo.nested",
                MetadataValue.array(
                    MetadataType.ARRAY,
                    [
                        MetadataArray(MetadataType.UINT8, (1, 2)),
                        MetadataArray(MetadataType.UINT8, ()),
                    ],
                ),
            ),
        ],
        tensors=[
            TensorInfo(
                "emb.weight",
                TensorType.F16,
                TensorDimensions.from_width_first([768, 50277]),
                0,
            ),
            TensorInfo(
                "ln0.weight", TensorType.F32, TensorDimensions.from_width_first([768]), 0
            ),
        ],
    )


class TestPrimitives:
    """Tests for primitive reads and writes."""

    def test_u32_little_endian(self):
        stream = io.BytesIO()
        write_u32(stream, 0x01020304)
        assert stream.getvalue() == b"\x04\x03\x02\x01"

    def test_u64_round_trip(self):
        stream = io.BytesIO()
        write_u64(stream, 2**64 - 1)
        stream.seek(0)
        assert read_u64(stream) == 2**64 - 1

    @pytest.mark.parametrize(
        "reader,fmt,value",
        [
            (read_i8, "<b", -5),
            (read_u16, "<H", 65535),
            (read_i16, "<h", -300),
            (read_i32, "<i", -70000),
            (read_i64, "<q", -(2**40)),
            (read_f32, "<f", 1.5),
            (read_f64, "<d", -0.25),
        ],
    )
    def test_fixed_width_reads(self, reader, fmt, value):
        assert reader(io.BytesIO(struct.pack(fmt, value))) == value

    def test_truncated_read(self):
        with pytest.raises(TruncatedInputError):
            read_u32(io.BytesIO(b"\x01\x02"))

    def test_nonzero_bool_is_true(self):
        assert read_bool(io.BytesIO(b"\x02")) is True
        assert read_bool(io.BytesIO(b"\x00")) is False

    def test_string_round_trip_raw_bytes(self):
        stream = io.BytesIO()
        write_string(stream, b"\xff\x00abc")
        stream.seek(0)
        assert read_string(stream) == b"\xff\x00abc"

    def test_string_length_limit_on_read(self):
        stream = io.BytesIO(struct.pack("<Q", 65536) + b"x" * 65536)
        with pytest.raises(FormatError):
            read_string(stream)

    def test_string_length_limit_on_write(self):
        with pytest.raises(FormatError):
            write_string(io.BytesIO(), b"x" * 65536)

    def test_string_at_limit(self):
        stream = io.BytesIO()
        write_string(stream, b"x" * 65535)
        stream.seek(0)
        assert len(read_string(stream)) == 65535

    def test_truncated_string(self):
        stream = io.BytesIO(struct.pack("<Q", 10) + b"abc")
        with pytest.raises(TruncatedInputError):
            read_string(stream)


class TestMetadataValue:
    """Tests for metadata value construction and encoding."""

    def test_uint32_range_checked(self):
        with pytest.raises(ValueError):
            MetadataValue.uint32(2**32)
        with pytest.raises(ValueError):
            MetadataValue.uint32(-1)

    def test_bool_requires_bool(self):
        with pytest.raises(TypeError):
            MetadataValue(MetadataType.BOOL, 1)

    def test_float32_normalized(self):
        value = MetadataValue.float32(0.1)
        assert value.value == struct.unpack("<f", struct.pack("<f", 0.1))[0]

    def test_string_stored_as_bytes(self):
        assert MetadataValue.string("héllo").value == "héllo".encode("utf-8")

    def test_scalar_encoding(self):
        encoded = encode_value(MetadataValue.uint32(5))
        assert encoded == struct.pack("<I", 4) + struct.pack("<I", 5)

    def test_string_encoding(self):
        encoded = encode_value(MetadataValue.string("rwkv"))
        assert encoded == struct.pack("<IQ", 8, 4) + b"rwkv"

    def test_array_encoding(self):
        encoded = encode_value(MetadataValue.array(MetadataType.UINT32, [3, 1]))
        assert encoded == struct.pack("<IIQII", 9, 4, 2, 3, 1)

    @pytest.mark.parametrize(
        "value",
        [
            MetadataValue(MetadataType.UINT8, 255),
            MetadataValue(MetadataType.INT8, -128),
            MetadataValue(MetadataType.UINT16, 65535),
            MetadataValue(MetadataType.INT16, -32768),
            MetadataValue(MetadataType.INT32, -1),
            MetadataValue(MetadataType.FLOAT64, 3.5),
            MetadataValue(MetadataType.BOOL, False),
            MetadataValue.uint64(2**64 - 1),
            MetadataValue.array(MetadataType.BOOL, [True, False, True]),
            MetadataValue.array(MetadataType.FLOAT32, [0.5, -2.0]),
        ],
    )
    def test_value_round_trip(self, value):
        decoded = read_metadata_value(io.BytesIO(encode_value(value)))
        assert decoded == value

    def test_entry_round_trip(self):
        stream = io.BytesIO()
        write_metadata_entry(stream, "general.name", MetadataValue.string("x"))
        stream.seek(0)
        assert read_metadata_entry(stream) == ("general.name", MetadataValue.string("x"))

    def test_invalid_type_tag(self):
        with pytest.raises(InvalidTypeTagError):
            read_metadata_value(io.BytesIO(struct.pack("<I", 13)))

    def test_excessive_array_length(self):
        data = struct.pack("<IIQ", 9, 0, 524289)
        with pytest.raises(FormatError, match="excessive array length"):
            read_metadata_value(io.BytesIO(data))

    def test_array_depth_limit_on_read(self):
        # Four levels of arrays: depths 0, 1, 2 and 3
        data = struct.pack("<I", 9)
        for _ in range(4):
            data += struct.pack("<IQ", 9, 1)
        data += struct.pack("<IQ", 0, 0)
        with pytest.raises(FormatError, match="depth"):
            read_metadata_value(io.BytesIO(data))

    def test_nested_array_round_trip(self):
        inner = MetadataArray(MetadataType.UINT16, (1, 2, 3))
        middle = MetadataArray(MetadataType.ARRAY, (inner,))
        value = MetadataValue.array(MetadataType.ARRAY, [middle])
        assert read_metadata_value(io.BytesIO(encode_value(value))) == value

    def test_too_deep_write_refused(self):
        level = MetadataArray(MetadataType.UINT8, (1,))
        for _ in range(3):
            level = MetadataArray(MetadataType.ARRAY, (level,))
        value = MetadataValue(MetadataType.ARRAY, level)
        with pytest.raises(UnsupportedWriteError):
            encode_value(value)

    def test_too_long_write_refused(self):
        value = MetadataValue.array(MetadataType.UINT8, [0] * 524289)
        with pytest.raises(UnsupportedWriteError):
            encode_value(value)

    def test_unsupported_write_is_not_format_error(self):
        assert not issubclass(UnsupportedWriteError, FormatError)


class TestHeader:
    """Tests for whole-header encoding."""

    def test_round_trip(self):
        header = sample_header()
        decoded = read_header(io.BytesIO(encode_header(header)))
        assert decoded == header

    def test_layout_prefix(self):
        encoded = encode_header(Header())
        assert encoded == b"GGUF" + struct.pack("<IQQ", 3, 0, 0)

    def test_duplicate_keys_passed_through(self):
        header = Header(
            metadata=[
                ("a", MetadataValue.uint32(1)),
                ("a", MetadataValue.uint32(2)),
            ]
        )
        decoded = read_header(io.BytesIO(encode_header(header)))
        assert [key for key, _ in decoded.metadata] == ["a", "a"]
        assert decoded.get_metadata("a") == MetadataValue.uint32(1)

    def test_bad_magic(self):
        data = b"GGML" + encode_header(Header())[4:]
        with pytest.raises(InvalidMagicError):
            read_header(io.BytesIO(data))

    def test_version_2_accepted(self):
        data = bytearray(encode_header(sample_header()))
        data[4:8] = struct.pack("<I", 2)
        assert read_header(io.BytesIO(bytes(data))) == sample_header()

    @pytest.mark.parametrize("version", [1, 4])
    def test_unsupported_version(self, version):
        data = b"GGUF" + struct.pack("<IQQ", version, 0, 0)
        with pytest.raises(UnsupportedVersionError):
            read_header(io.BytesIO(data))

    def test_excessive_tensor_count(self):
        data = b"GGUF" + struct.pack("<IQQ", 3, 1025, 0)
        with pytest.raises(ExcessiveCountError):
            read_header(io.BytesIO(data))

    def test_excessive_metadata_count(self):
        data = b"GGUF" + struct.pack("<IQQ", 3, 0, 1025)
        with pytest.raises(ExcessiveCountError):
            read_header(io.BytesIO(data))

    def test_too_many_dimensions(self):
        data = b"GGUF" + struct.pack("<IQQ", 3, 1, 0)
        data += struct.pack("<Q", 1) + b"t" + struct.pack("<I", 5)
        with pytest.raises(TooManyDimensionsError):
            read_header(io.BytesIO(data))

    def test_zero_extent_rejected(self):
        data = b"GGUF" + struct.pack("<IQQ", 3, 1, 0)
        data += struct.pack("<Q", 1) + b"t" + struct.pack("<IQQ", 2, 0, 5)
        with pytest.raises(FormatError, match="zero extent"):
            read_header(io.BytesIO(data))

    def test_invalid_tensor_type(self):
        data = b"GGUF" + struct.pack("<IQQ", 3, 1, 0)
        data += struct.pack("<Q", 1) + b"t" + struct.pack("<IQIQ", 1, 4, 4, 0)
        with pytest.raises(InvalidTensorTypeError):
            read_header(io.BytesIO(data))

    def test_truncated_header(self):
        encoded = encode_header(sample_header())
        with pytest.raises(TruncatedInputError):
            read_header(io.BytesIO(encoded[:-3]))

    def test_entry_index_in_error(self):
        data = b"GGUF" + struct.pack("<IQQ", 3, 0, 1)
        data += struct.pack("<Q", 1) + b"k" + struct.pack("<I", 99)
        with pytest.raises(InvalidTypeTagError, match="metadata entry 0"):
            read_header(io.BytesIO(data))


class TestDimensions:
    """Tests for tensor dimensions."""

    def test_count_and_total(self):
        dims = TensorDimensions.from_width_first([4, 3, 2])
        assert dims.count() == 3
        assert dims.total() == 24

    def test_empty(self):
        dims = TensorDimensions()
        assert dims.count() == 0
        assert dims.total() == 0

    def test_full(self):
        assert TensorDimensions((1, 2, 3, 4)).count() == 4

    @pytest.mark.parametrize("shape", [[7], [2, 3], [5, 1, 4], [2, 3, 4, 5]])
    def test_width_last_involution(self, shape):
        assert TensorDimensions.from_width_last(shape).to_width_last() == shape

    def test_width_last_reverses(self):
        dims = TensorDimensions.from_width_last([50277, 768])
        assert dims.slots == (768, 50277, 0, 0)

    def test_more_than_four(self):
        with pytest.raises(TooManyDimensionsError):
            TensorDimensions.from_width_last([1, 2, 3, 4, 5])

    def test_zero_rejected(self):
        with pytest.raises(ValueError):
            TensorDimensions.from_width_first([4, 0])


class TestAlignment:
    """Tests for offset alignment."""

    @pytest.mark.parametrize(
        "offset,expected", [(0, 0), (1, 32), (8, 32), (31, 32), (32, 32), (33, 64)]
    )
    def test_align_offset(self, offset, expected):
        assert align_offset(offset) == expected

    def test_alignment_properties(self):
        for offset in range(0, 200):
            aligned = align_offset(offset)
            assert aligned % 32 == 0
            assert offset <= aligned < offset + 32
