"""Construction of FlatBuffers-format binary buffers.

The buffer grows downwards: every new object is placed in front of the
objects already written, and offsets handed out by the builder count bytes
from the end of the buffer.
"""

from __future__ import annotations

import enum
import struct

_LARGEST_SCALAR = 8
_UOFFSET_SIZE = 4
_VOFFSET_SIZE = 2
_FILE_IDENTIFIER_LENGTH = 4
_MAX_BUFFER_SIZE = (1 << 31) - 1


class ScalarType(enum.Enum):
    """Scalar kinds that can be stored in a buffer, by struct format code."""

    BOOL = "?"
    INT8 = "b"
    UINT8 = "B"
    INT16 = "h"
    UINT16 = "H"
    INT32 = "i"
    UINT32 = "I"
    INT64 = "q"
    UINT64 = "Q"
    FLOAT32 = "f"
    FLOAT64 = "d"

    @property
    def format(self) -> str:
        """Little-endian struct format for this scalar."""
        return "<" + self.value

    @property
    def size(self) -> int:
        """Size of the scalar in bytes."""
        return struct.calcsize(self.format)

    def pack(self, value) -> bytes:
        try:
            return struct.pack(self.format, value)
        except struct.error as exc:
            raise BuilderError(f"cannot store {value!r} as {self.name}: {exc}") from exc


class BuilderError(Exception):
    """Raised when the builder is used in a way the format does not allow."""


def field_index_to_offset(field_id: int) -> int:
    """Convert a field id to its byte offset inside a vtable."""
    fixed_fields = 2  # vtable size and object size
    return (field_id + fixed_fields) * _VOFFSET_SIZE


def padding_bytes(buf_size: int, scalar_size: int) -> int:
    """Bytes of padding needed to write a scalar after `buf_size` bytes."""
    return (-buf_size) & (scalar_size - 1)


class FlatBufferBuilder:
    """Builds a FlatBuffer depth first, from the leaves towards the root."""

    def __init__(self, initial_size: int = 1024) -> None:
        if initial_size < 0 or initial_size % _LARGEST_SCALAR:
            raise ValueError(
                f"initial size must be a non-negative multiple of {_LARGEST_SCALAR}"
            )
        self._space = bytearray(initial_size)
        self._head = initial_size
        self._field_locs: list[tuple[int, int]] = []
        self._vtables: list[int] = []
        self._nested = False
        self._finished = False
        self._minalign = 1
        self.force_defaults = False

    # -- buffer primitives -------------------------------------------------

    def _make_space(self, length: int) -> int:
        if length > self._head:
            old_size = self.size()
            reserved = len(self._space)
            reserved += max(length, (reserved // 2) & ~(_LARGEST_SCALAR - 1))
            reserved = (reserved + _LARGEST_SCALAR - 1) & ~(_LARGEST_SCALAR - 1)
            grown = bytearray(reserved)
            grown[reserved - old_size:] = self._space[self._head:]
            self._space = grown
            self._head = reserved - old_size
        self._head -= length
        if self.size() >= _MAX_BUFFER_SIZE:
            raise BuilderError("buffers of 2GB or more are not supported")
        return self._head

    def _fill(self, count: int) -> None:
        start = self._make_space(count)
        self._space[start:start + count] = bytes(count)

    def _data_at(self, offset: int) -> int:
        return len(self._space) - offset

    def _not_nested(self) -> None:
        if self._nested:
            raise BuilderError(
                "cannot create a table, vector or string while another object "
                "is under construction"
            )

    # -- public interface --------------------------------------------------

    def clear(self) -> None:
        """Reset the builder so that it can construct another buffer."""
        self._head = len(self._space)
        self._field_locs.clear()
        self._vtables.clear()
        self._nested = False
        self._finished = False
        self._minalign = 1

    def size(self) -> int:
        """Current size of the serialized data, counting from the end."""
        return len(self._space) - self._head

    def output(self) -> bytes:
        """The finished buffer."""
        if not self._finished:
            raise BuilderError("the buffer has not been finished")
        return bytes(self._space[self._head:])

    def current_bytes(self) -> bytes:
        """The bytes written so far, finished or not."""
        return bytes(self._space[self._head:])

    def pad(self, num_bytes: int) -> None:
        self._fill(num_bytes)

    def align(self, elem_size: int) -> None:
        """Pad so that a value of `elem_size` bytes can be written aligned."""
        if elem_size > self._minalign:
            self._minalign = elem_size
        self._fill(padding_bytes(self.size(), elem_size))

    def push_flatbuffer(self, data: bytes) -> None:
        """Push a complete buffer and mark the builder finished."""
        self.push_bytes(data)
        self._finished = True

    def push_bytes(self, data: bytes) -> None:
        start = self._make_space(len(data))
        self._space[start:start + len(data)] = data

    def pop_bytes(self, amount: int) -> None:
        self._head += amount

    def push_scalar(self, kind: ScalarType, value) -> int:
        """Write an aligned scalar and return its offset from the end."""
        packed = kind.pack(value)
        self.align(kind.size)
        self.push_bytes(packed)
        return self.size()

    def push_offset(self, offset: int) -> int:
        """Write a reference to an object already in the buffer."""
        return self.push_scalar(ScalarType.UINT32, self.refer_to(offset))

    def track_field(self, field: int, offset: int) -> None:
        self._field_locs.append((offset, field))

    def add_scalar(self, field: int, kind: ScalarType, value, default) -> None:
        """Add a scalar table field unless it equals its default."""
        if value == default and not self.force_defaults:
            return
        self.track_field(field, self.push_scalar(kind, value))

    def add_offset(self, field: int, offset: int) -> None:
        """Add a reference field; an offset of 0 means the field is absent."""
        if not offset:
            return
        self.add_scalar(field, ScalarType.UINT32, self.refer_to(offset), 0)

    def add_struct(self, field: int, data: bytes | None, alignment: int) -> None:
        """Store struct bytes inline in the table being built."""
        if data is None:
            return
        self.align(alignment)
        self.push_bytes(data)
        self.track_field(field, self.size())

    def add_struct_offset(self, field: int, offset: int) -> None:
        self.track_field(field, offset)

    def refer_to(self, offset: int) -> int:
        """Turn an end-relative offset into one relative to the write position."""
        self.align(_UOFFSET_SIZE)
        if not offset or offset > self.size():
            raise BuilderError(f"offset {offset} does not refer to data in the buffer")
        return self.size() - offset + _UOFFSET_SIZE

    def start_table(self) -> int:
        self._not_nested()
        self._nested = True
        return self.size()

    def end_table(self, start: int, numfields: int) -> int:
        """Write the vtable for the current table and return the table offset."""
        if not self._nested:
            raise BuilderError("end_table called without start_table")
        vtable_offset_loc = self.push_scalar(ScalarType.INT32, 0)
        self._fill(numfields * _VOFFSET_SIZE)
        table_object_size = vtable_offset_loc - start
        if table_object_size >= 0x10000:
            raise BuilderError("table too large for 16-bit vtable offsets")
        self.push_scalar(ScalarType.UINT16, table_object_size)
        vtable_size = field_index_to_offset(numfields)
        self.push_scalar(ScalarType.UINT16, vtable_size)

        for offset, field in self._field_locs:
            if field + _VOFFSET_SIZE > vtable_size:
                raise BuilderError(f"field offset {field} lies outside the vtable")
            slot = self._head + field
            (existing,) = struct.unpack_from("<H", self._space, slot)
            if existing:
                raise BuilderError(f"field at vtable offset {field} set twice")
            struct.pack_into("<H", self._space, slot, vtable_offset_loc - offset)
        self._field_locs.clear()

        vt1_size = struct.unpack_from("<H", self._space, self._head)[0]
        vt1 = bytes(self._space[self._head:self._head + vt1_size])
        vt_use = self.size()
        for candidate in self._vtables:
            pos = self._data_at(candidate)
            vt2_size = struct.unpack_from("<H", self._space, pos)[0]
            if vt2_size == vt1_size and self._space[pos:pos + vt2_size] == vt1:
                vt_use = candidate
                self.pop_bytes(self.size() - vtable_offset_loc)
                break
        if vt_use == self.size():
            self._vtables.append(vt_use)

        struct.pack_into(
            "<i",
            self._space,
            self._data_at(vtable_offset_loc),
            vt_use - vtable_offset_loc,
        )
        self._nested = False
        return vtable_offset_loc

    def required(self, table: int, field: int) -> None:
        """Raise if the given field of a just-built table is not set."""
        table_pos = self._data_at(table)
        vtable_pos = table_pos - struct.unpack_from("<i", self._space, table_pos)[0]
        vtable_size = struct.unpack_from("<H", self._space, vtable_pos)[0]
        present = (
            field < vtable_size
            and struct.unpack_from("<H", self._space, vtable_pos + field)[0] != 0
        )
        if not present:
            raise BuilderError(f"required field at vtable offset {field} is not set")

    def start_struct(self, alignment: int) -> int:
        self.align(alignment)
        return self.size()

    def end_struct(self) -> int:
        return self.size()

    def clear_offsets(self) -> None:
        self._field_locs.clear()

    def pre_align(self, length: int, alignment: int) -> None:
        """Pad so that after `length` more bytes the buffer is aligned."""
        self._fill(padding_bytes(self.size() + length, alignment))

    def create_string(self, text: str | bytes) -> int:
        """Store a zero-terminated string and return its offset."""
        data = text.encode("utf-8") if isinstance(text, str) else bytes(text)
        self._not_nested()
        self.pre_align(len(data) + 1, _UOFFSET_SIZE)
        self._fill(1)
        self.push_bytes(data)
        self.push_scalar(ScalarType.UINT32, len(data))
        return self.size()

    def start_vector(self, length: int, elem_size: int) -> None:
        self._not_nested()
        self._nested = True
        self.pre_align(length * elem_size, _UOFFSET_SIZE)
        self.pre_align(length * elem_size, elem_size)

    def end_vector(self, length: int) -> int:
        if not self._nested:
            raise BuilderError("end_vector called without start_vector")
        self._nested = False
        return self.push_scalar(ScalarType.UINT32, length)

    def create_vector(self, kind: ScalarType, values) -> int:
        """Store a vector of scalars and return its offset."""
        items = list(values)
        self.start_vector(len(items), kind.size)
        for value in reversed(items):
            self.push_scalar(kind, value)
        return self.end_vector(len(items))

    def create_offset_vector(self, offsets) -> int:
        """Store a vector of references to tables or strings."""
        items = list(offsets)
        self.start_vector(len(items), _UOFFSET_SIZE)
        for offset in reversed(items):
            self.push_offset(offset)
        return self.end_vector(len(items))

    def create_vector_of_structs(self, data: bytes, count: int, alignment: int) -> int:
        """Store `count` packed structs given as one block of bytes."""
        if count and len(data) % count:
            raise ValueError("struct data length is not a multiple of the count")
        self.start_vector(len(data) // alignment, alignment)
        self.push_bytes(data)
        return self.end_vector(count)

    def create_byte_vector(self, data: bytes) -> int:
        """Store a vector of raw bytes."""
        self.start_vector(len(data), 1)
        self.push_bytes(data)
        return self.end_vector(len(data))

    def finish(self, root: int, file_identifier: str | bytes | None = None) -> None:
        """Write the root offset (and optional identifier), completing the buffer."""
        self._not_nested()
        ident = None
        if file_identifier is not None:
            ident = (
                file_identifier.encode("ascii")
                if isinstance(file_identifier, str)
                else bytes(file_identifier)
            )
            if len(ident) != _FILE_IDENTIFIER_LENGTH:
                raise ValueError(
                    f"file identifier must be {_FILE_IDENTIFIER_LENGTH} bytes long"
                )
        extra = _FILE_IDENTIFIER_LENGTH if ident is not None else 0
        self.pre_align(_UOFFSET_SIZE + extra, self._minalign)
        if ident is not None:
            self.push_bytes(ident)
        self.push_offset(root)
        self._finished = True