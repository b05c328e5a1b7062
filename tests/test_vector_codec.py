import struct

import ml_dtypes
import numpy as np
import pytest
from scipy.sparse import csr_array, csr_matrix

from milvus_dataplane.client.type_handlers import (
    decode_vector,
    encode_vector,
    get_type_handler,
    normalize_sparse_row,
    sparse_bytes_to_rows,
    sparse_rows_to_bytes,
)
from milvus_dataplane.client.types import DataType
from milvus_dataplane.exceptions import (
    DataNotMatchException,
    DuplicateIndexException,
    InvalidDimensionException,
    NegativeIndexException,
    ParamError,
    ValueOutOfRangeException,
)

rng = np.random.default_rng(seed=19530)


class TestFloatVector:
    def test_round_trip_is_float32(self):
        vec = rng.random(8).tolist()
        wire = encode_vector(DataType.FLOAT_VECTOR, 8, vec)
        assert wire == np.asarray(vec, dtype=np.float32).tolist()
        assert decode_vector(DataType.FLOAT_VECTOR, 8, wire) == wire

    def test_numpy_input(self):
        vec = rng.random(4, dtype=np.float32)
        assert encode_vector(DataType.FLOAT_VECTOR, 4, vec) == vec.tolist()

    def test_wrong_dim(self):
        with pytest.raises(InvalidDimensionException):
            encode_vector(DataType.FLOAT_VECTOR, 4, [1.0, 2.0, 3.0])

    def test_rejects_int_ndarray(self):
        with pytest.raises(ParamError):
            encode_vector(DataType.FLOAT_VECTOR, 2, np.array([1, 2], dtype=np.int64))

    def test_rejects_nested(self):
        with pytest.raises(DataNotMatchException):
            encode_vector(DataType.FLOAT_VECTOR, 2, [[1.0, 2.0]])


class TestHalfVectors:
    @pytest.mark.parametrize(
        "dtype, np_dtype",
        [
            (DataType.FLOAT16_VECTOR, np.float16),
            (DataType.BFLOAT16_VECTOR, ml_dtypes.bfloat16),
        ],
    )
    def test_encode_layout(self, dtype, np_dtype):
        vec = [0.5, -1.0, 2.0, 0.25]
        wire = encode_vector(dtype, 4, vec)
        assert len(wire) == 8
        assert wire == np.asarray(vec, dtype=np_dtype).view(np.uint16).astype("<u2").tobytes()

    @pytest.mark.parametrize("dtype", [DataType.FLOAT16_VECTOR, DataType.BFLOAT16_VECTOR])
    def test_round_trip_through_to_floats(self, dtype):
        vec = [0.5, -1.0, 2.0, 0.25]
        wire = encode_vector(dtype, 4, vec)
        assert decode_vector(dtype, 4, wire) == wire
        assert get_type_handler(dtype).to_floats(wire) == vec

    def test_bfloat16_rounds_to_target_precision(self):
        vec = rng.random(16).astype(np.float32)
        wire = encode_vector(DataType.BFLOAT16_VECTOR, 16, vec)
        back = np.asarray(get_type_handler(DataType.BFLOAT16_VECTOR).to_floats(wire))
        np.testing.assert_allclose(back, vec, rtol=1e-2)

    def test_bytes_pass_through(self):
        wire = np.zeros(4, dtype=np.float16).tobytes()
        assert encode_vector(DataType.FLOAT16_VECTOR, 4, wire) == wire

    def test_bytes_of_wrong_length(self):
        with pytest.raises(InvalidDimensionException):
            encode_vector(DataType.FLOAT16_VECTOR, 4, b"\x00" * 6)


class TestBinaryVector:
    def test_msb_first_packing(self):
        bits = [1, 0, 0, 0, 0, 0, 0, 1, 0, 0, 0, 0, 1, 1, 1, 1]
        wire = encode_vector(DataType.BINARY_VECTOR, 16, bits)
        assert wire == bytes([0b10000001, 0b00001111])
        assert decode_vector(DataType.BINARY_VECTOR, 16, wire) == wire
        assert get_type_handler(DataType.BINARY_VECTOR).to_bits(wire) == bits

    def test_last_byte_zero_padded(self):
        wire = encode_vector(DataType.BINARY_VECTOR, 12, [1] * 12)
        assert wire == b"\xff\xf0"
        assert decode_vector(DataType.BINARY_VECTOR, 12, wire) == wire
        assert get_type_handler(DataType.BINARY_VECTOR).to_bits(wire, 12) == [1] * 12
        assert encode_vector(DataType.BINARY_VECTOR, 12, b"\x01\x02") == b"\x01\x02"
        with pytest.raises(InvalidDimensionException):
            encode_vector(DataType.BINARY_VECTOR, 12, b"\x01")

    @pytest.mark.parametrize("dim", [0, -8])
    def test_dim_must_be_positive(self, dim):
        with pytest.raises(InvalidDimensionException):
            encode_vector(DataType.BINARY_VECTOR, dim, [])

    def test_bad_element(self):
        with pytest.raises(ValueOutOfRangeException):
            encode_vector(DataType.BINARY_VECTOR, 8, [0, 1, 2, 0, 0, 0, 0, 0])

    def test_bytes_input_checked_against_dim(self):
        assert encode_vector(DataType.BINARY_VECTOR, 16, b"\x01\x02") == b"\x01\x02"
        with pytest.raises(InvalidDimensionException):
            encode_vector(DataType.BINARY_VECTOR, 16, b"\x01")


class TestInt8Vector:
    def test_round_trip(self):
        vec = [-128, -1, 0, 127]
        wire = encode_vector(DataType.INT8_VECTOR, 4, vec)
        assert wire == np.asarray(vec, dtype=np.int8).tobytes()
        assert decode_vector(DataType.INT8_VECTOR, 4, wire) == vec

    def test_out_of_range(self):
        with pytest.raises(ValueOutOfRangeException):
            encode_vector(DataType.INT8_VECTOR, 2, [1, 128])

    def test_float_elements_rejected(self):
        with pytest.raises(DataNotMatchException):
            encode_vector(DataType.INT8_VECTOR, 2, [1.5, 2.0])


class TestSparseVector:
    expected = struct.pack("<If", 2, 0.5) + struct.pack("<If", 98, 0.25)

    @pytest.mark.parametrize(
        "row",
        [
            {98: 0.25, 2: 0.5},
            {"indices": [2, 98], "values": [0.5, 0.25]},
            [{"index": 98, "value": 0.25}, {"index": 2, "value": 0.5}],
            [(2, 0.5), (98, 0.25)],
            {"2": "0.5", "98": 0.25},
        ],
    )
    def test_every_shape_encodes_the_same(self, row):
        assert encode_vector(DataType.SPARSE_FLOAT_VECTOR, 0, row) == self.expected

    def test_positional_array(self):
        row = [None, 0.5, None, 0.25]
        expected = struct.pack("<If", 1, 0.5) + struct.pack("<If", 3, 0.25)
        assert encode_vector(DataType.SPARSE_FLOAT_VECTOR, 0, row) == expected

    @pytest.mark.parametrize("cls", [csr_matrix, csr_array])
    def test_scipy_row(self, cls):
        row = cls(([0.5, 0.25], ([0, 0], [2, 98])), shape=(1, 100))
        assert encode_vector(DataType.SPARSE_FLOAT_VECTOR, 0, row) == self.expected

    def test_scipy_multi_row_rejected(self):
        with pytest.raises(ParamError):
            encode_vector(DataType.SPARSE_FLOAT_VECTOR, 0, csr_matrix((2, 10)))

    def test_decode_formats(self):
        wire = self.expected
        assert decode_vector(DataType.SPARSE_FLOAT_VECTOR, 0, wire) == {2: 0.5, 98: 0.25}
        assert decode_vector(DataType.SPARSE_FLOAT_VECTOR, 0, wire, sparse_format="csr") == {
            "indices": [2, 98],
            "values": [0.5, 0.25],
        }
        assert decode_vector(DataType.SPARSE_FLOAT_VECTOR, 0, wire, sparse_format="pairs") == [
            (2, 0.5),
            (98, 0.25),
        ]
        with pytest.raises(ParamError):
            decode_vector(DataType.SPARSE_FLOAT_VECTOR, 0, wire, sparse_format="dense")

    def test_empty_row(self):
        assert encode_vector(DataType.SPARSE_FLOAT_VECTOR, 0, {}) == b""
        assert decode_vector(DataType.SPARSE_FLOAT_VECTOR, 0, b"") == {}

    def test_duplicate_index(self):
        with pytest.raises(DuplicateIndexException):
            normalize_sparse_row([(3, 0.1), (3, 0.2)])

    def test_negative_index(self):
        with pytest.raises(NegativeIndexException):
            normalize_sparse_row({-1: 0.5})

    @pytest.mark.parametrize("row", [{2**32 - 1: 0.5}, {1: float("nan")}, {1: float("inf")}])
    def test_out_of_range(self, row):
        with pytest.raises(ValueOutOfRangeException):
            normalize_sparse_row(row)

    def test_batch_dim_is_max_index_plus_one(self):
        contents, dim = sparse_rows_to_bytes([{1: 0.5}, {7: 0.5, 3: 0.25}, {}])
        assert dim == 8
        assert sparse_bytes_to_rows(contents) == [{1: 0.5}, {3: 0.25, 7: 0.5}, {}]

    def test_batch_from_scipy(self):
        matrix = csr_matrix(([0.5, 0.25], ([0, 1], [4, 9])), shape=(2, 10))
        contents, dim = sparse_rows_to_bytes(matrix)
        assert dim == 10
        assert sparse_bytes_to_rows(contents) == [{4: 0.5}, {9: 0.25}]


class TestTransformers:
    def test_encode_transformer_result_is_checked(self):
        to_wire = lambda v: np.asarray(v, dtype=np.float16).tobytes()  # noqa: E731
        wire = encode_vector(DataType.FLOAT16_VECTOR, 2, [1.0, 2.0], transformer=to_wire)
        assert wire == np.asarray([1.0, 2.0], dtype=np.float16).tobytes()
        with pytest.raises(InvalidDimensionException):
            encode_vector(DataType.FLOAT16_VECTOR, 3, [1.0, 2.0], transformer=to_wire)

    def test_decode_transformer_gets_raw_wire(self):
        wire = np.asarray([1.0, 2.0], dtype=np.float16).tobytes()
        got = decode_vector(
            DataType.FLOAT16_VECTOR,
            2,
            wire,
            transformer=lambda b: np.frombuffer(b, dtype=np.float16).tolist(),
        )
        assert got == [1.0, 2.0]

    def test_sparse_decode_transformer_gets_mapping(self):
        wire = struct.pack("<If", 5, 0.5)
        got = decode_vector(DataType.SPARSE_FLOAT_VECTOR, 0, wire, transformer=lambda d: sorted(d))
        assert got == [5]


@pytest.mark.parametrize("dtype", [DataType.INT64, DataType.VARCHAR, DataType.JSON])
def test_non_vector_types_rejected(dtype):
    with pytest.raises(ParamError):
        encode_vector(dtype, 4, [1.0, 2.0, 3.0, 4.0])
    with pytest.raises(ParamError):
        decode_vector(dtype, 4, [1.0, 2.0, 3.0, 4.0])


class TestRandomRoundTrip:
    @pytest.mark.parametrize("dim", [1, 8, 128])
    def test_dense(self, dim):
        for _ in range(20):
            floats = rng.standard_normal(dim).astype(np.float32).tolist()
            assert decode_vector(DataType.FLOAT_VECTOR, dim, encode_vector(DataType.FLOAT_VECTOR, dim, floats)) == floats

            ints = rng.integers(-128, 128, size=dim).tolist()
            assert decode_vector(DataType.INT8_VECTOR, dim, encode_vector(DataType.INT8_VECTOR, dim, ints)) == ints

            halves = rng.standard_normal(dim).astype(np.float16)
            wire = encode_vector(DataType.FLOAT16_VECTOR, dim, halves)
            assert get_type_handler(DataType.FLOAT16_VECTOR).to_floats(decode_vector(DataType.FLOAT16_VECTOR, dim, wire)) == halves.astype(np.float32).tolist()

            bf16 = rng.standard_normal(dim).astype(ml_dtypes.bfloat16)
            wire = encode_vector(DataType.BFLOAT16_VECTOR, dim, bf16)
            assert len(wire) == dim * 2
            assert get_type_handler(DataType.BFLOAT16_VECTOR).to_floats(decode_vector(DataType.BFLOAT16_VECTOR, dim, wire)) == bf16.astype(np.float32).tolist()

    @pytest.mark.parametrize("dim", [1, 8, 12, 64])
    def test_binary(self, dim):
        handler = get_type_handler(DataType.BINARY_VECTOR)
        for _ in range(20):
            bits = rng.integers(0, 2, size=dim).tolist()
            wire = encode_vector(DataType.BINARY_VECTOR, dim, bits)
            assert len(wire) == (dim + 7) // 8
            assert handler.to_bits(decode_vector(DataType.BINARY_VECTOR, dim, wire), dim) == bits

    def test_sparse(self):
        for _ in range(20):
            nnz = int(rng.integers(0, 30))
            indices = rng.choice(10_000, size=nnz, replace=False).tolist()
            values = rng.standard_normal(nnz).astype(np.float32).tolist()
            row = dict(zip(indices, values))
            wire = encode_vector(DataType.SPARSE_FLOAT_VECTOR, 0, row)
            assert decode_vector(DataType.SPARSE_FLOAT_VECTOR, 0, wire) == row
