import struct
from typing import Tuple, Union

from ..exceptions import TruncatedDataError

Buffer = Union[bytes, bytearray, memoryview]


class ByteReader:
    """
    Endian-aware cursor over a byte buffer.

    Position 0 is the start of the wrapped buffer. Every read or seek outside
    the buffer raises TruncatedDataError instead of returning short data.
    """

    def __init__(self, buffer: Buffer, little_endian: bool = False):
        self._buf = memoryview(buffer).cast('B')
        self._pos = 0
        self.little_endian = little_endian

    @property
    def endian(self) -> str:
        return '<' if self.little_endian else '>'

    @property
    def position(self) -> int:
        return self._pos

    @property
    def size(self) -> int:
        return len(self._buf)

    def remaining(self) -> int:
        return len(self._buf) - self._pos

    def set_byte_order_marker(self, marker: bytes) -> None:
        """Sets byte order from a TIFF header marker ('II' or 'MM')."""
        if marker == b'II':
            self.little_endian = True
        elif marker == b'MM':
            self.little_endian = False
        else:
            raise ValueError(f"Invalid byte order marker: {bytes(marker)!r}")

    def seek(self, offset: int) -> None:
        if offset < 0 or offset > len(self._buf):
            raise TruncatedDataError(f"Seek to {offset} outside buffer of {len(self._buf)} bytes")
        self._pos = offset

    def skip(self, n: int) -> None:
        self.seek(self._pos + n)

    def read_bytes(self, n: int) -> bytes:
        if n < 0 or self._pos + n > len(self._buf):
            raise TruncatedDataError(
                f"Read of {n} bytes at {self._pos} runs past buffer of {len(self._buf)} bytes"
            )
        data = self._buf[self._pos:self._pos + n].tobytes()
        self._pos += n
        return data

    def _unpack(self, fmt: str, size: int):
        return struct.unpack(self.endian + fmt, self.read_bytes(size))

    def read_u8(self) -> int:
        return self._unpack('B', 1)[0]

    def read_i8(self) -> int:
        return self._unpack('b', 1)[0]

    def read_u16(self) -> int:
        return self._unpack('H', 2)[0]

    def read_i16(self) -> int:
        return self._unpack('h', 2)[0]

    def read_u32(self) -> int:
        return self._unpack('I', 4)[0]

    def read_i32(self) -> int:
        return self._unpack('i', 4)[0]

    def read_u64(self) -> int:
        return self._unpack('Q', 8)[0]

    def read_float(self) -> float:
        return self._unpack('f', 4)[0]

    def read_double(self) -> float:
        return self._unpack('d', 8)[0]

    def read_rational(self) -> Tuple[int, int]:
        return self._unpack('II', 8)

    def read_srational(self) -> Tuple[int, int]:
        return self._unpack('ii', 8)

    def read_array(self, code: str, count: int) -> tuple:
        """Reads `count` consecutive values of a struct format code."""
        size = struct.calcsize('<' + code) * count
        return struct.unpack(f'{self.endian}{count}{code}', self.read_bytes(size))

    def read_uint(self, size: int) -> int:
        """Reads an unsigned integer of 0, 1, 2, 4 or 8 bytes (0 reads nothing)."""
        if size == 0:
            return 0
        if size == 1:
            return self.read_u8()
        if size == 2:
            return self.read_u16()
        if size == 4:
            return self.read_u32()
        if size == 8:
            return self.read_u64()
        raise ValueError(f"Unsupported integer width: {size}")
