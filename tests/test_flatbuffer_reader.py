import struct

import pytest

from shapetrack.flatbuffer_builder import FlatBufferBuilder, ScalarType, field_index_to_offset
from shapetrack.flatbuffer_reader import (
    Table,
    Vector,
    Verifier,
    buffer_has_identifier,
    get_root,
    lookup_enum,
    read_scalar,
)

F0 = field_index_to_offset(0)
F1 = field_index_to_offset(1)
F2 = field_index_to_offset(2)


def _scalar_table(value=42, ratio=1.5, identifier=None):
    b = FlatBufferBuilder()
    start = b.start_table()
    b.add_scalar(F0, ScalarType.INT32, value, 0)
    b.add_scalar(F1, ScalarType.FLOAT32, ratio, 0.0)
    root = b.end_table(start, 2)
    b.finish(root, identifier)
    return b.output()


def _string_table(text="hi"):
    b = FlatBufferBuilder()
    s = b.create_string(text)
    start = b.start_table()
    b.add_scalar(F0, ScalarType.INT32, 7, 0)
    b.add_offset(F1, s)
    root = b.end_table(start, 2)
    b.finish(root)
    return b.output()


def test_read_scalar_little_endian():
    buf = struct.pack("<Ih", 258, -3)
    assert read_scalar(ScalarType.UINT32, buf, 0) == 258
    assert read_scalar(ScalarType.INT16, buf, 4) == -3


def test_scalar_fields_round_trip():
    root = get_root(_scalar_table())
    assert root.get_field(F0, ScalarType.INT32, 0) == 42
    assert root.get_field(F1, ScalarType.FLOAT32, 0.0) == 1.5


def test_default_field_is_absent():
    root = get_root(_scalar_table(value=0))
    assert not root.check_field(F0)
    assert root.get_field(F0, ScalarType.INT32, 99) == 99
    assert root.check_field(F1)


def test_field_beyond_vtable_reads_default():
    root = get_root(_scalar_table())
    far = field_index_to_offset(10)
    assert root.optional_field_offset(far) == 0
    assert root.get_field(far, ScalarType.INT32, -5) == -5


def test_string_field():
    root = get_root(_string_table("hello"))
    assert root.get_string(F1) == b"hello"
    assert root.get_string(F2) is None


def test_scalar_vector():
    b = FlatBufferBuilder()
    vec = b.create_vector(ScalarType.INT16, [1, -2, 3])
    start = b.start_table()
    b.add_offset(F0, vec)
    b.finish(b.end_table(start, 1))
    root = get_root(b.output())
    v = root.get_vector(F0, ScalarType.INT16)
    assert len(v) == 3
    assert list(v) == [1, -2, 3]
    assert v[-1] == 3
    assert v[0:2] == [1, -2]
    with pytest.raises(IndexError):
        v[3]
    assert root.get_vector(F1, ScalarType.INT16) is None


def test_vector_over_raw_bytes_and_mutate():
    buf = bytearray(struct.pack("<IIII", 3, 10, 20, 30))
    v = Vector(buf, 0, ScalarType.UINT32)
    assert list(v) == [10, 20, 30]
    v.mutate(1, 77)
    assert list(Vector(buf, 0, ScalarType.UINT32)) == [10, 77, 30]
    with pytest.raises(IndexError):
        v.mutate(5, 1)


def test_set_field_present_and_absent():
    buf = bytearray(_scalar_table())
    root = get_root(buf)
    assert root.set_field(F0, ScalarType.INT32, 1000) is True
    assert get_root(buf).get_field(F0, ScalarType.INT32, 0) == 1000
    assert root.set_field(F2, ScalarType.INT32, 1) is False


def test_nested_table():
    b = FlatBufferBuilder()
    start = b.start_table()
    b.add_scalar(F0, ScalarType.UINT8, 5, 0)
    child = b.end_table(start, 1)
    start = b.start_table()
    b.add_offset(F0, child)
    b.finish(b.end_table(start, 1))
    root = get_root(b.output())
    inner = root.get_table(F0)
    assert inner.get_field(F0, ScalarType.UINT8, 0) == 5
    assert root.get_table(F1) is None


def test_table_and_string_vectors():
    b = FlatBufferBuilder()
    strings = [b.create_string(t) for t in ("a", "bc", "def")]
    children = []
    for value in (1, 2):
        start = b.start_table()
        b.add_scalar(F0, ScalarType.INT64, value, 0)
        children.append(b.end_table(start, 1))
    svec = b.create_offset_vector(strings)
    tvec = b.create_offset_vector(children)
    start = b.start_table()
    b.add_offset(F0, svec)
    b.add_offset(F1, tvec)
    b.finish(b.end_table(start, 2))
    root = get_root(b.output())
    assert root.get_string_vector(F0) == [b"a", b"bc", b"def"]
    tables = root.get_table_vector(F1)
    assert [t.get_field(F0, ScalarType.INT64, 0) for t in tables] == [1, 2]
    assert root.get_table_vector(F2) is None


def test_struct_field():
    b = FlatBufferBuilder()
    start = b.start_table()
    b.add_struct(F0, struct.pack("<ff", 1.0, 2.5), 4)
    b.finish(b.end_table(start, 1))
    buf = b.output()
    root = get_root(buf)
    pos = root.get_struct(F0)
    assert read_scalar(ScalarType.FLOAT32, buf, pos) == 1.0
    assert read_scalar(ScalarType.FLOAT32, buf, pos + 4) == 2.5
    assert root.get_struct(F1) is None


def test_buffer_identifier():
    buf = _scalar_table(identifier="ABCD")
    assert buffer_has_identifier(buf, "ABCD")
    assert buffer_has_identifier(buf, b"ABCD")
    assert not buffer_has_identifier(buf, "ABCE")
    assert get_root(buf).get_field(F0, ScalarType.INT32, 0) == 42


def test_lookup_enum():
    names = ["Red", "Green", "Blue"]
    assert lookup_enum(names, "Green") == 1
    with pytest.raises(KeyError):
        lookup_enum(names, "Purple")


def _verify_string_table(table, verifier):
    if not table.verify_table_start(verifier):
        return False
    if not table.verify_field(verifier, F0, 4):
        return False
    if not table.verify_field_required(verifier, F1, 4):
        return False
    field_pos = table.pos + table.optional_field_offset(F1)
    string_pos = field_pos + read_scalar(ScalarType.UINT32, table.buf, field_pos)
    return verifier.verify_string(string_pos) and verifier.end_table()


def test_verify_valid_buffer():
    buf = _string_table("hi")
    assert Verifier(buf).verify_buffer(_verify_string_table)


def test_verify_truncated_buffer_fails():
    buf = _string_table("hi")
    assert not Verifier(buf[:-8]).verify_buffer(_verify_string_table)
    assert not Verifier(buf[:2]).verify_buffer(_verify_string_table)


def test_verify_depth_limit():
    buf = _string_table("hi")
    assert not Verifier(buf, max_depth=0).verify_buffer(_verify_string_table)


def test_verify_table_limit():
    v = Verifier(bytes(8), max_tables=1)
    assert v.verify_complexity()
    assert v.end_table()
    assert not v.verify_complexity()


def test_verify_range():
    v = Verifier(bytes(8))
    assert v.verify(0, 8)
    assert v.verify(4, 4)
    assert not v.verify(1, 8)
    assert not v.verify(-1, 1)
    assert not v.verify(0, 9)


def test_verify_string_terminator():
    assert Verifier(b"\x02\x00\x00\x00ab\x00").verify_string(0)
    assert not Verifier(b"\x02\x00\x00\x00ab").verify_string(0)
    assert not Verifier(b"\x02\x00\x00\x00abc").verify_string(0)
    assert Verifier(b"").verify_string(None)


def test_verify_vector_length():
    good = struct.pack("<IHH", 2, 1, 2)
    assert Verifier(good).verify_vector(0, 2)
    assert not Verifier(good).verify_vector(0, 4)
    assert Verifier(good).verify_vector(None, 2)


def test_verify_vector_of_strings():
    b = FlatBufferBuilder()
    strings = [b.create_string(t) for t in ("x", "yz")]
    vec = b.create_offset_vector(strings)
    start = b.start_table()
    b.add_offset(F0, vec)
    b.finish(b.end_table(start, 1))
    buf = b.output()
    root = get_root(buf)
    field_pos = root.pos + root.optional_field_offset(F0)
    vec_pos = field_pos + read_scalar(ScalarType.UINT32, buf, field_pos)
    assert Verifier(buf).verify_vector_of_strings(vec_pos)
    assert not Verifier(buf[: vec_pos + 6]).verify_vector_of_strings(vec_pos)


def test_required_field_missing_fails_verification():
    b = FlatBufferBuilder()
    start = b.start_table()
    b.add_scalar(F0, ScalarType.INT32, 3, 0)
    b.finish(b.end_table(start, 2))
    buf = b.output()
    root = get_root(buf)
    v = Verifier(buf)
    assert root.verify_table_start(v)
    assert root.verify_field(v, F1, 4)
    assert not root.verify_field_required(v, F1, 4)
    assert root.verify_field_required(v, F0, 4)


def test_table_view_over_raw_bytes():
    # vtable: size 6, object size 8, field 0 at offset 4; table: soffset 6, value.
    buf = struct.pack("<HHHxxiI", 6, 8, 4, 8, 11)
    table = Table(buf, 8)
    assert table.vtable_position() == 0
    assert table.get_field(F0, ScalarType.UINT32, 0) == 11
    assert not table.check_field(F1)
    with pytest.raises(struct.error):
        get_root(b"\x01")