"""
Tag name resolution and value formatting.

Names and enumerated value maps come from the tables that ship with ExifRead.
Both functions are pure: an unknown tag or an odd value still yields a display
string, never an exception.

ExifRead keeps baseline TIFF and Exif tags in one mapping, and IFD0, IFD1 and
the Exif IFD all resolve through it. An Exif tag stored in IFD0 (common in
TIFF-based raw files) therefore gets its Exif name, not the hex fallback.
"""
import re
from types import MappingProxyType
from typing import Callable, Dict, Optional, Tuple

from exifread.tags.exif import EXIF_TAGS, GPS_TAGS, INTEROP_TAGS

from .. import config
from ..models import EXIF_IFD, GPS_IFD, IFD0, IFD1, INTEROP_IFD, FieldType, RawField

# IFD0, IFD1 and Exif share the combined table
TAG_TABLES = MappingProxyType({
    IFD0: MappingProxyType(EXIF_TAGS),
    IFD1: MappingProxyType(EXIF_TAGS),
    EXIF_IFD: MappingProxyType(EXIF_TAGS),
    GPS_IFD: MappingProxyType(GPS_TAGS),
    INTEROP_IFD: MappingProxyType(INTEROP_TAGS),
})

EXIF_DATE_RE = re.compile(r'^\d{4}:\d{2}:\d{2}( \d{2}:\d{2}:\d{2}.*)?$')

# UserComment character code prefixes
CHARSET_ASCII = b'ASCII\x00\x00\x00'
CHARSET_UNICODE = b'UNICODE\x00'
CHARSET_UNDEFINED = b'\x00' * 8


def resolve_tag_name(ifd: str, tag_id: int) -> str:
    """Returns the tag's name in the directory's namespace, or '0xXXXX'."""
    table = TAG_TABLES.get(ifd)
    entry = table.get(tag_id) if table is not None else None
    if entry and isinstance(entry[0], str):
        return entry[0]
    return f"0x{tag_id:04X}"


def format_field(raw: RawField) -> Tuple[str, str]:
    return (
        resolve_tag_name(raw.ifd, raw.tag_id),
        format_value(raw.ifd, raw.tag_id, raw.field_type, raw.value),
    )


def format_value(ifd: str, tag_id: int, field_type: FieldType, value) -> str:
    special = SPECIAL_FORMATTERS.get((ifd, tag_id))
    if special is not None:
        text = special(field_type, value)
        if text is not None:
            return text

    if field_type == FieldType.ASCII:
        text = decode_ascii(value)
        if tag_id in config.DATE_TAGS.get(ifd, ()):
            text = format_exif_date(text)
        return text

    if field_type == FieldType.UNDEFINED:
        return hex_dump(value)

    if field_type in (FieldType.RATIONAL, FieldType.SRATIONAL):
        return ", ".join(format_rational(num, den) for num, den in value)

    if field_type in (FieldType.FLOAT, FieldType.DOUBLE):
        return ", ".join(f"{v:g}" for v in value)

    if len(value) == 1:
        name = _enum_name(ifd, tag_id, value[0])
        if name is not None:
            return name
    return ", ".join(str(v) for v in value)


# --- Building blocks ---

def format_rational(num: int, den: int) -> str:
    if den == 0:
        return "undefined"
    return f"{num}/{den}"


def decode_ascii(data: bytes) -> str:
    """NUL-trims and decodes; several NUL-separated strings are comma-joined."""
    parts = data.rstrip(b'\x00').split(b'\x00')
    return ", ".join(p.decode('utf-8', errors='replace').strip() for p in parts if p)


def format_exif_date(text: str) -> str:
    """'2023:01:02 03:04:05' -> '2023-01-02 03:04:05'; anything else unchanged."""
    if EXIF_DATE_RE.match(text):
        return text.replace(':', '-', 2)
    return text


def hex_dump(data: bytes) -> str:
    limit = config.HEX_DUMP_LIMIT
    text = data[:limit].hex(' ')
    if len(data) > limit:
        text += f" ... ({len(data)} bytes)"
    return text


def _enum_name(ifd: str, tag_id: int, number) -> Optional[str]:
    table = TAG_TABLES.get(ifd)
    entry = table.get(tag_id) if table is not None else None
    if entry and len(entry) > 1 and isinstance(entry[1], dict):
        name = entry[1].get(number)
        if isinstance(name, str):
            return name
    return None


def _single_rational(value) -> Optional[Tuple[int, int]]:
    if isinstance(value, tuple) and len(value) == 1 and isinstance(value[0], tuple):
        return value[0]
    return None


# --- Tag-specific display rules ---
# Each returns None to fall back to the generic rendering.

def _format_version(field_type, value):
    if field_type != FieldType.UNDEFINED or len(value) != 4 or not value.isdigit():
        return None
    text = value.decode('ascii')
    return f"{int(text[:2])}.{text[2:]}"


def _format_user_comment(field_type, value):
    if field_type != FieldType.UNDEFINED or len(value) < 8:
        return None
    code, body = value[:8], value[8:]
    if code in (CHARSET_ASCII, CHARSET_UNDEFINED):
        return decode_ascii(body)
    if code == CHARSET_UNICODE:
        encoding = 'utf-16-be' if body[:1] == b'\x00' else 'utf-16-le'
        return body.decode(encoding, errors='replace').rstrip('\x00').strip()
    return None


def _with_unit(unit: str, prefix: bool = False, decimal: bool = True):
    def formatter(field_type, value):
        pair = _single_rational(value)
        if pair is None:
            return None
        num, den = pair
        if den == 0:
            return "undefined"
        number = f"{num / den:g}" if decimal else f"{num}/{den}"
        return f"{unit}{number}" if prefix else f"{number} {unit}"
    return formatter


def _format_gps_time(field_type, value):
    if field_type != FieldType.RATIONAL or len(value) != 3 or any(den == 0 for _, den in value):
        return None
    hours, minutes, seconds = (num / den for num, den in value)
    seconds_text = f"{int(seconds):02d}" if seconds == int(seconds) else f"{seconds:06.3f}"
    return f"{int(hours):02d}:{int(minutes):02d}:{seconds_text}"


SPECIAL_FORMATTERS: Dict[Tuple[str, int], Callable] = {
    (EXIF_IFD, 0x829A): _with_unit('s', decimal=False),     # ExposureTime
    (EXIF_IFD, 0x829D): _with_unit('f/', prefix=True),      # FNumber
    (EXIF_IFD, 0x920A): _with_unit('mm'),                   # FocalLength
    (EXIF_IFD, 0x9000): _format_version,                    # ExifVersion
    (EXIF_IFD, 0xA000): _format_version,                    # FlashpixVersion
    (EXIF_IFD, 0x9286): _format_user_comment,               # UserComment
    (INTEROP_IFD, 0x0002): _format_version,                 # InteroperabilityVersion
    (GPS_IFD, 0x0006): _with_unit('m'),                     # GPSAltitude
    (GPS_IFD, 0x0007): _format_gps_time,                    # GPSTimeStamp
}
