"""Reading and verifying FlatBuffers-format binary buffers.

Positions are absolute byte indices into the buffer. Tables and vectors are
light views over the buffer; nothing is copied until a value is read.
"""

from __future__ import annotations

import struct
from collections.abc import Callable, Iterator, Sequence

from shapetrack.flatbuffer_builder import ScalarType

_UOFFSET_SIZE = 4
_SOFFSET_SIZE = 4
_VOFFSET_SIZE = 2
_FILE_IDENTIFIER_LENGTH = 4


def read_scalar(kind: ScalarType, buf, pos: int):
    """Read a little-endian scalar of the given kind at `pos`."""
    return struct.unpack_from(kind.format, buf, pos)[0]


def _indirect(buf, pos: int) -> int:
    """Follow the unsigned offset stored at `pos`."""
    return pos + read_scalar(ScalarType.UINT32, buf, pos)


def get_root(buf) -> Table:
    """Return the root table of a finished buffer."""
    return Table(buf, _indirect(buf, 0))


def buffer_has_identifier(buf, identifier: str | bytes) -> bool:
    """Whether the buffer carries the given four-character file identifier."""
    ident = identifier.encode("ascii") if isinstance(identifier, str) else bytes(identifier)
    # Compare like a bounded C string comparison: stop after a terminator.
    target = (ident[:_FILE_IDENTIFIER_LENGTH] + b"\0")[:_FILE_IDENTIFIER_LENGTH]
    if b"\0" in target:
        target = target[: target.index(b"\0") + 1]
    start = _UOFFSET_SIZE
    return bytes(buf[start:start + len(target)]) == target


def lookup_enum(names: Sequence[str], name: str) -> int:
    """Return the index of `name` among enum `names`; KeyError if absent."""
    for index, candidate in enumerate(names):
        if candidate == name:
            return index
    raise KeyError(name)


class Vector(Sequence):
    """A view of a vector of scalars stored in a buffer."""

    def __init__(self, buf, pos: int, kind: ScalarType) -> None:
        self.buf = buf
        self.pos = pos
        self.kind = kind
        self._length = read_scalar(ScalarType.UINT32, buf, pos)
        self._data = pos + _UOFFSET_SIZE

    def __len__(self) -> int:
        return self._length

    def _element_pos(self, index: int) -> int:
        if index < 0:
            index += self._length
        if not 0 <= index < self._length:
            raise IndexError("vector index out of range")
        return self._data + index * self.kind.size

    def __getitem__(self, index):
        if isinstance(index, slice):
            return [self[i] for i in range(*index.indices(self._length))]
        return read_scalar(self.kind, self.buf, self._element_pos(index))

    def __iter__(self) -> Iterator:
        stride = self.kind.size
        for i in range(self._length):
            yield read_scalar(self.kind, self.buf, self._data + i * stride)

    def mutate(self, index: int, value) -> None:
        """Overwrite an element in place; the buffer must be writable."""
        struct.pack_into(self.kind.format, self.buf, self._element_pos(index), value)


def _read_string(buf, pos: int) -> bytes:
    length = read_scalar(ScalarType.UINT32, buf, pos)
    start = pos + _UOFFSET_SIZE
    return bytes(buf[start:start + length])


class Table:
    """A view of a table: fields are located through its vtable."""

    def __init__(self, buf, pos: int) -> None:
        self.buf = buf
        self.pos = pos

    def vtable_position(self) -> int:
        return self.pos - read_scalar(ScalarType.INT32, self.buf, self.pos)

    def optional_field_offset(self, field: int) -> int:
        """Offset of the field inside the table, or 0 if it is not present."""
        vtable = self.vtable_position()
        vtsize = read_scalar(ScalarType.UINT16, self.buf, vtable)
        if field < vtsize:
            return read_scalar(ScalarType.UINT16, self.buf, vtable + field)
        return 0

    def check_field(self, field: int) -> bool:
        return self.optional_field_offset(field) != 0

    def get_field(self, field: int, kind: ScalarType, default):
        offset = self.optional_field_offset(field)
        return read_scalar(kind, self.buf, self.pos + offset) if offset else default

    def set_field(self, field: int, kind: ScalarType, value) -> bool:
        """Overwrite a present field in place; False if the field is absent."""
        offset = self.optional_field_offset(field)
        if not offset:
            return False
        struct.pack_into(kind.format, self.buf, self.pos + offset, value)
        return True

    def _reference(self, field: int) -> int | None:
        offset = self.optional_field_offset(field)
        return _indirect(self.buf, self.pos + offset) if offset else None

    def get_table(self, field: int) -> Table | None:
        pos = self._reference(field)
        return None if pos is None else Table(self.buf, pos)

    def get_struct(self, field: int) -> int | None:
        """Absolute position of an inline struct field, or None."""
        offset = self.optional_field_offset(field)
        return self.pos + offset if offset else None

    def get_string(self, field: int) -> bytes | None:
        pos = self._reference(field)
        return None if pos is None else _read_string(self.buf, pos)

    def get_vector(self, field: int, kind: ScalarType) -> Vector | None:
        pos = self._reference(field)
        return None if pos is None else Vector(self.buf, pos, kind)

    def _reference_positions(self, field: int) -> list[int] | None:
        pos = self._reference(field)
        if pos is None:
            return None
        length = read_scalar(ScalarType.UINT32, self.buf, pos)
        data = pos + _UOFFSET_SIZE
        return [_indirect(self.buf, data + i * _UOFFSET_SIZE) for i in range(length)]

    def get_table_vector(self, field: int) -> list[Table] | None:
        positions = self._reference_positions(field)
        return None if positions is None else [Table(self.buf, p) for p in positions]

    def get_string_vector(self, field: int) -> list[bytes] | None:
        positions = self._reference_positions(field)
        return None if positions is None else [_read_string(self.buf, p) for p in positions]

    def verify_table_start(self, verifier: Verifier) -> bool:
        """Check the vtable reference and the vtable itself lie in the buffer."""
        if not verifier.verify(self.pos, _SOFFSET_SIZE):
            return False
        vtable = self.vtable_position()
        return (
            verifier.verify_complexity()
            and verifier.verify(vtable, _VOFFSET_SIZE)
            and verifier.verify(vtable, read_scalar(ScalarType.UINT16, self.buf, vtable))
        )

    def verify_field(self, verifier: Verifier, field: int, size: int) -> bool:
        offset = self.optional_field_offset(field)
        return not offset or verifier.verify(self.pos + offset, size)

    def verify_field_required(self, verifier: Verifier, field: int, size: int) -> bool:
        offset = self.optional_field_offset(field)
        return offset != 0 and verifier.verify(self.pos + offset, size)


class Verifier:
    """Checks that the references in a buffer stay inside it."""

    def __init__(self, buf, max_depth: int = 64, max_tables: int = 1000000) -> None:
        self.buf = buf
        self.max_depth = max_depth
        self.max_tables = max_tables
        self._depth = 0
        self._num_tables = 0

    def verify(self, pos: int, length: int) -> bool:
        """Whether `length` bytes starting at `pos` lie within the buffer."""
        end = len(self.buf)
        return 0 <= length <= end and 0 <= pos <= end - length

    def _vector_end(self, pos: int, elem_size: int) -> int | None:
        if not self.verify(pos, _UOFFSET_SIZE):
            return None
        count = read_scalar(ScalarType.UINT32, self.buf, pos)
        byte_size = _UOFFSET_SIZE + elem_size * count
        return pos + byte_size if self.verify(pos, byte_size) else None

    def verify_vector(self, pos: int | None, elem_size: int) -> bool:
        return pos is None or self._vector_end(pos, elem_size) is not None

    def verify_string(self, pos: int | None) -> bool:
        """Check a string fits in the buffer and is zero-terminated."""
        if pos is None:
            return True
        end = self._vector_end(pos, 1)
        return end is not None and self.verify(end, 1) and self.buf[end] == 0

    def verify_vector_of_strings(self, pos: int | None) -> bool:
        if pos is None:
            return True
        if not self.verify_vector(pos, _UOFFSET_SIZE):
            return False
        count = read_scalar(ScalarType.UINT32, self.buf, pos)
        data = pos + _UOFFSET_SIZE
        return all(
            self.verify_string(_indirect(self.buf, data + i * _UOFFSET_SIZE))
            for i in range(count)
        )

    def verify_buffer(self, verify_root: Callable[[Table, Verifier], bool]) -> bool:
        """Verify the whole buffer, checking the root with `verify_root`."""
        return self.verify(0, _UOFFSET_SIZE) and verify_root(
            Table(self.buf, _indirect(self.buf, 0)), self
        )

    def verify_complexity(self) -> bool:
        """Count a table entered; False once depth or table limits are hit."""
        self._depth += 1
        self._num_tables += 1
        return self._depth <= self.max_depth and self._num_tables <= self.max_tables

    def end_table(self) -> bool:
        self._depth -= 1
        return True