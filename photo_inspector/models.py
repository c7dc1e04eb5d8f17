from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Optional, Union

# Directory labels, in traversal order
IFD0 = 'IFD0'
EXIF_IFD = 'Exif'
GPS_IFD = 'GPS'
INTEROP_IFD = 'Interop'
IFD1 = 'IFD1'


class FieldType(IntEnum):
    """TIFF field types"""
    BYTE = 1
    ASCII = 2
    SHORT = 3
    LONG = 4
    RATIONAL = 5
    SBYTE = 6
    UNDEFINED = 7
    SSHORT = 8
    SLONG = 9
    SRATIONAL = 10
    FLOAT = 11
    DOUBLE = 12


# Field sizes in bytes
FIELD_SIZES = {
    FieldType.BYTE: 1,
    FieldType.ASCII: 1,
    FieldType.SHORT: 2,
    FieldType.LONG: 4,
    FieldType.RATIONAL: 8,
    FieldType.SBYTE: 1,
    FieldType.UNDEFINED: 1,
    FieldType.SSHORT: 2,
    FieldType.SLONG: 4,
    FieldType.SRATIONAL: 8,
    FieldType.FLOAT: 4,
    FieldType.DOUBLE: 8,
}


class ContainerKind(Enum):
    JPEG = 'jpeg'
    TIFF = 'tiff'
    PNG = 'png'
    WEBP = 'webp'
    HEIF = 'heif'
    AVIF = 'avif'
    BMP = 'bmp'


@dataclass(frozen=True)
class TiffBlock:
    """
    Location of a TIFF structure inside a container.

    Offsets inside the TIFF structure are relative to `start` within `buffer`.
    """
    kind: ContainerKind
    buffer: Union[bytes, bytearray, memoryview]
    start: int
    end: int


@dataclass(frozen=True)
class TiffHeader:
    little_endian: bool
    ifd0_offset: int    # relative to the TIFF base


@dataclass(frozen=True)
class IfdEntry:
    tag_id: int
    field_type: FieldType
    count: int
    value_or_offset: int
    value_position: int     # where the 4-byte value field sits (TIFF-relative)

    @property
    def byte_size(self) -> int:
        return FIELD_SIZES[self.field_type] * self.count

    @property
    def is_inline(self) -> bool:
        return self.byte_size <= 4


@dataclass(frozen=True)
class RawField:
    """
    A decoded but not yet formatted tag value.

    `value` is bytes for ASCII/UNDEFINED, a tuple of (num, den) pairs for
    rationals and a tuple of numbers for everything else.
    """
    ifd: str
    tag_id: int
    field_type: FieldType
    count: int
    value: Any


@dataclass(frozen=True)
class ExifField:
    tag: str
    ifd: str
    value: str


@dataclass(frozen=True)
class AestheticMatch:
    path: str       # absolute, OS-native separators
    score: float


@dataclass(frozen=True)
class CommandResult:
    """
    Outcome of one backend command. Exactly one of value/error is meaningful.
    """
    value: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
