"""
Container sniffing.

Identifies the outer image format from magic bytes, locates the embedded
TIFF structure that carries EXIF data, and checks that a container is
structurally sound. Every container produces the same TiffBlock so a single
IFD decoder handles all of them.
"""
import logging
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from ..exceptions import (
    MalformedDirectoryError,
    NoMetadataFoundError,
    TruncatedDataError,
    UnsupportedFormatError,
)
from ..models import ContainerKind, TiffBlock
from .reader import Buffer, ByteReader

EXIF_PREFIX = b'Exif\x00\x00'
PNG_SIGNATURE = b'\x89PNG\r\n\x1a\n'
TIFF_SIGNATURES = (b'II*\x00', b'MM\x00*')

# ISO-BMFF brands (ftyp major or compatible)
HEIF_BRANDS = {b'heic', b'heix', b'hevc', b'hevx', b'heim', b'heis', b'mif1', b'msf1'}
AVIF_BRANDS = {b'avif', b'avis'}

# Chunks a WebP file may open with
WEBP_IMAGE_CHUNKS = {b'VP8 ', b'VP8L', b'VP8X'}

# BITMAPINFOHEADER and friends
BMP_DIB_HEADER_SIZES = {12, 40, 52, 56, 64, 108, 124}

# JPEG markers
SOI = 0xD8
EOI = 0xD9
SOS = 0xDA
APP1 = 0xE1
# Markers without a length field
STANDALONE_MARKERS = {0x01, SOI} | set(range(0xD0, 0xD8))


def detect_format(data: Buffer) -> ContainerKind:
    """
    Identifies the container from its signature.

    Raises:
        UnsupportedFormatError: if no supported signature matches.
    """
    head = bytes(data[:32])
    if head[:3] == b'\xff\xd8\xff':
        return ContainerKind.JPEG
    if head[:4] in TIFF_SIGNATURES:
        return ContainerKind.TIFF
    if head[:8] == PNG_SIGNATURE:
        return ContainerKind.PNG
    if head[:4] == b'RIFF' and head[8:12] == b'WEBP':
        return ContainerKind.WEBP
    if head[4:8] == b'ftyp':
        kind = _detect_isobmff_brand(data)
        if kind is not None:
            return kind
    if head[:2] == b'BM' and len(head) >= 18:
        dib_size = int.from_bytes(head[14:18], 'little')
        if dib_size in BMP_DIB_HEADER_SIZES:
            return ContainerKind.BMP
    raise UnsupportedFormatError("Unsupported or unrecognized image format")


def _detect_isobmff_brand(data: Buffer) -> Optional[ContainerKind]:
    box_size = int.from_bytes(bytes(data[0:4]), 'big')
    box_end = min(box_size, len(data)) if box_size >= 16 else 16
    brands = [bytes(data[8:12])]
    for pos in range(16, box_end - 3, 4):
        brands.append(bytes(data[pos:pos + 4]))

    for brand in brands:
        if brand in AVIF_BRANDS:
            return ContainerKind.AVIF
        if brand in HEIF_BRANDS:
            return ContainerKind.HEIF
    return None


def locate_tiff_block(data: Buffer, kind: Optional[ContainerKind] = None) -> TiffBlock:
    """
    Finds the TIFF structure inside `data`.

    Raises:
        UnsupportedFormatError: if `kind` is not given and cannot be detected.
        NoMetadataFoundError: if the container has no EXIF block, or its
            structure ends before one is found.
    """
    if kind is None:
        kind = detect_format(data)

    locator = _LOCATORS[kind]
    try:
        block = locator(data, kind)
    except (TruncatedDataError, MalformedDirectoryError) as e:
        logging.debug(f"{kind.value} structure unreadable before EXIF block: {e}")
        raise NoMetadataFoundError(f"No readable EXIF block in {kind.value} file") from e

    if block is None:
        raise NoMetadataFoundError(f"No EXIF block in {kind.value} file")
    return block


def validate_container(data: Buffer, kind: Optional[ContainerKind] = None) -> ContainerKind:
    """
    Walks the container's top-level structure to confirm `data` is a genuine
    image rather than a matching signature followed by garbage.

    Unlike locate_tiff_block, structural damage is reported, not absorbed.

    Raises:
        UnsupportedFormatError: if no supported signature matches.
        TruncatedDataError: if the structure runs past the end of the data.
        MalformedDirectoryError: if the structure is inconsistent.
    """
    if kind is None:
        kind = detect_format(data)
    _VALIDATORS[kind](data)
    return kind


# --- Per-container locators ---

def _block_from_payload(kind: ContainerKind, data: Buffer, start: int, end: int) -> TiffBlock:
    """Builds a block from a chunk payload, tolerating a leading 'Exif\\0\\0'."""
    if bytes(data[start:start + 6]) == EXIF_PREFIX:
        start += 6
    return TiffBlock(kind=kind, buffer=data, start=start, end=end)


def _locate_tiff(data: Buffer, kind: ContainerKind) -> TiffBlock:
    return TiffBlock(kind=kind, buffer=data, start=0, end=len(data))


def _locate_jpeg(data: Buffer, kind: ContainerKind) -> Optional[TiffBlock]:
    reader = ByteReader(data)
    reader.seek(2)  # SOI

    while True:
        if reader.read_u8() != 0xFF:
            logging.debug(f"Lost JPEG marker sync at offset {reader.position - 1}")
            return None

        marker = reader.read_u8()
        while marker == 0xFF:  # fill bytes
            marker = reader.read_u8()

        if marker in STANDALONE_MARKERS:
            continue
        if marker in (SOS, EOI):
            # Metadata segments precede the scan data
            return None

        length = reader.read_u16()
        if length < 2:
            raise MalformedDirectoryError(f"JPEG segment 0x{marker:02X} has invalid length {length}")

        segment_start = reader.position
        segment_end = segment_start + length - 2

        if marker == APP1 and bytes(data[segment_start:segment_start + 6]) == EXIF_PREFIX:
            # A truncated segment still yields whatever directories survive
            return TiffBlock(
                kind=kind,
                buffer=data,
                start=segment_start + 6,
                end=min(segment_end, len(data)),
            )

        reader.seek(segment_end)


def _locate_png(data: Buffer, kind: ContainerKind) -> Optional[TiffBlock]:
    reader = ByteReader(data)
    reader.seek(len(PNG_SIGNATURE))

    while reader.remaining() >= 8:
        length = reader.read_u32()
        chunk_type = reader.read_bytes(4)
        payload = reader.position

        if chunk_type == b'eXIf':
            reader.seek(payload + length)  # bounds check
            return _block_from_payload(kind, data, payload, payload + length)
        if chunk_type == b'IEND':
            return None

        reader.seek(payload + length + 4)  # payload + CRC
    return None


def _locate_webp(data: Buffer, kind: ContainerKind) -> Optional[TiffBlock]:
    reader = ByteReader(data, little_endian=True)
    reader.seek(12)  # 'RIFF' size 'WEBP'

    while reader.remaining() >= 8:
        chunk_type = reader.read_bytes(4)
        length = reader.read_u32()
        payload = reader.position

        if chunk_type == b'EXIF':
            reader.seek(payload + length)
            return _block_from_payload(kind, data, payload, payload + length)

        # Chunks are padded to even sizes
        reader.seek(payload + length + (length & 1))
    return None


def _iter_boxes(reader: ByteReader, start: int, end: int) -> Iterator[Tuple[bytes, int, int]]:
    """Yields (type, payload_start, box_end) for ISO-BMFF boxes in [start, end)."""
    pos = start
    while pos + 8 <= end:
        reader.seek(pos)
        size = reader.read_u32()
        box_type = reader.read_bytes(4)
        header = 8
        if size == 1:
            size = reader.read_u64()
            header = 16
        elif size == 0:
            size = end - pos

        if size < header or pos + size > end:
            raise TruncatedDataError(f"Box {box_type!r} at {pos} overruns its parent")

        yield box_type, pos + header, pos + size
        pos += size


def _locate_isobmff(data: Buffer, kind: ContainerKind) -> Optional[TiffBlock]:
    reader = ByteReader(data)
    for box_type, payload, box_end in _iter_boxes(reader, 0, len(data)):
        if box_type == b'meta':
            # meta is a FullBox: skip version and flags
            return _locate_heif_exif(data, reader, kind, payload + 4, box_end)
    return None


def _locate_heif_exif(data: Buffer,
                      reader: ByteReader,
                      kind: ContainerKind,
                      start: int,
                      end: int) -> Optional[TiffBlock]:
    exif_item = None
    locations: Dict[int, Tuple[int, int, List[Tuple[int, int]]]] = {}
    idat_start = None
    idat_end = None

    for box_type, payload, box_end in _iter_boxes(reader, start, end):
        if box_type == b'iinf':
            exif_item = _parse_iinf(reader, payload, box_end)
        elif box_type == b'iloc':
            locations = _parse_iloc(reader, payload)
        elif box_type == b'idat':
            idat_start, idat_end = payload, box_end

    if exif_item is None or exif_item not in locations:
        return None

    construction_method, base_offset, extents = locations[exif_item]
    if construction_method == 0:
        origin, limit = 0, len(data)
    elif construction_method == 1 and idat_start is not None:
        origin, limit = idat_start, idat_end
    else:
        logging.debug(f"Unsupported iloc construction method {construction_method} for Exif item")
        return None

    spans = []
    for extent_offset, extent_length in extents:
        span_start = origin + base_offset + extent_offset
        span_end = limit if extent_length == 0 else span_start + extent_length
        if span_start > limit or span_end > limit:
            raise TruncatedDataError(f"Exif item extent {span_start}-{span_end} outside file")
        spans.append((span_start, span_end))

    if not spans:
        return None
    if len(spans) == 1:
        item_buffer = data
        item_start, item_end = spans[0]
    else:
        item_buffer = b''.join(bytes(data[s:e]) for s, e in spans)
        item_start, item_end = 0, len(item_buffer)

    # Item payload: u32 offset to the TIFF header, then the header itself
    item_reader = ByteReader(item_buffer)
    item_reader.seek(item_start)
    tiff_offset = item_reader.read_u32()
    tiff_start = item_start + 4 + tiff_offset
    if tiff_start >= item_end:
        raise TruncatedDataError(f"Exif item TIFF offset {tiff_offset} outside item")
    return TiffBlock(kind=kind, buffer=item_buffer, start=tiff_start, end=item_end)


def _parse_iinf(reader: ByteReader, start: int, end: int) -> Optional[int]:
    """Returns the item id whose type is 'Exif', if any."""
    reader.seek(start)
    version = reader.read_u8()
    reader.skip(3)
    reader.skip(2 if version == 0 else 4)  # entry count
    entries_start = reader.position

    for box_type, payload, _ in _iter_boxes(reader, entries_start, end):
        if box_type != b'infe':
            continue
        reader.seek(payload)
        infe_version = reader.read_u8()
        reader.skip(3)
        if infe_version < 2:
            # Versions 0 and 1 carry no item type
            continue
        item_id = reader.read_u16() if infe_version == 2 else reader.read_u32()
        reader.skip(2)  # protection index
        if reader.read_bytes(4) == b'Exif':
            return item_id
    return None


def _parse_iloc(reader: ByteReader, start: int) -> Dict[int, Tuple[int, int, List[Tuple[int, int]]]]:
    """Returns {item_id: (construction_method, base_offset, [(offset, length), ...])}."""
    reader.seek(start)
    version = reader.read_u8()
    reader.skip(3)

    sizes = reader.read_u8()
    offset_size, length_size = sizes >> 4, sizes & 0x0F
    sizes = reader.read_u8()
    base_offset_size = sizes >> 4
    index_size = sizes & 0x0F if version in (1, 2) else 0

    for width in (offset_size, length_size, base_offset_size, index_size):
        if width not in (0, 4, 8):
            raise MalformedDirectoryError(f"Invalid iloc field width {width}")

    item_count = reader.read_u16() if version < 2 else reader.read_u32()
    locations = {}
    for _ in range(item_count):
        item_id = reader.read_u16() if version < 2 else reader.read_u32()
        construction_method = 0
        if version in (1, 2):
            construction_method = reader.read_u16() & 0x0F
        reader.skip(2)  # data reference index
        base_offset = reader.read_uint(base_offset_size)

        extents = []
        for _ in range(reader.read_u16()):
            if index_size:
                reader.read_uint(index_size)
            extents.append((reader.read_uint(offset_size), reader.read_uint(length_size)))
        locations[item_id] = (construction_method, base_offset, extents)
    return locations


def _locate_bmp(data: Buffer, kind: ContainerKind) -> Optional[TiffBlock]:
    return None


# --- Structure validators ---

def _validate_jpeg(data: Buffer) -> None:
    reader = ByteReader(data)
    reader.seek(2)  # SOI

    while True:
        if reader.read_u8() != 0xFF:
            raise MalformedDirectoryError(f"JPEG marker expected at offset {reader.position - 1}")

        marker = reader.read_u8()
        while marker == 0xFF:
            marker = reader.read_u8()

        if marker in STANDALONE_MARKERS:
            continue
        if marker == EOI:
            raise MalformedDirectoryError("JPEG ends before any scan data")
        if marker < 0xC0:
            raise MalformedDirectoryError(f"Reserved JPEG marker 0x{marker:02X} at offset {reader.position - 1}")

        length = reader.read_u16()
        if length < 2:
            raise MalformedDirectoryError(f"JPEG segment 0x{marker:02X} has invalid length {length}")
        reader.skip(length - 2)

        if marker == SOS:
            if reader.remaining() == 0:
                raise TruncatedDataError("JPEG has no entropy-coded data after SOS")
            return


def _validate_png(data: Buffer) -> None:
    reader = ByteReader(data)
    reader.seek(len(PNG_SIGNATURE))

    length = reader.read_u32()
    if reader.read_bytes(4) != b'IHDR' or length != 13:
        raise MalformedDirectoryError("PNG does not start with an IHDR chunk")
    reader.skip(length + 4)

    has_image_data = False
    while True:
        length = reader.read_u32()
        chunk_type = reader.read_bytes(4)
        reader.skip(length + 4)  # payload + CRC
        if chunk_type == b'IDAT':
            has_image_data = True
        elif chunk_type == b'IEND':
            break

    if not has_image_data:
        raise MalformedDirectoryError("PNG has no IDAT chunk")


def _validate_webp(data: Buffer) -> None:
    reader = ByteReader(data, little_endian=True)
    reader.seek(4)
    riff_end = 8 + reader.read_u32()
    if riff_end > len(data):
        raise TruncatedDataError(f"RIFF declares {riff_end} bytes, file has {len(data)}")

    reader.seek(12)  # 'RIFF' size 'WEBP'
    chunk_count = 0
    while reader.position + 8 <= riff_end:
        chunk_type = reader.read_bytes(4)
        length = reader.read_u32()
        if chunk_count == 0 and chunk_type not in WEBP_IMAGE_CHUNKS:
            raise MalformedDirectoryError(f"WebP starts with {chunk_type!r} instead of an image chunk")
        if reader.position + length > riff_end:
            raise TruncatedDataError(f"WebP chunk {chunk_type!r} overruns the RIFF container")
        # Padding may be missing after the last chunk
        reader.seek(min(reader.position + length + (length & 1), riff_end))
        chunk_count += 1

    if chunk_count == 0:
        raise MalformedDirectoryError("WebP has no chunks")


def _validate_tiff(data: Buffer) -> None:
    reader = ByteReader(data)
    reader.set_byte_order_marker(reader.read_bytes(2))
    reader.skip(2)  # magic, checked by detect_format
    ifd0_offset = reader.read_u32()
    if ifd0_offset < 8:
        raise MalformedDirectoryError(f"TIFF IFD0 offset {ifd0_offset} overlaps the header")

    reader.seek(ifd0_offset)
    count = reader.read_u16()
    if count == 0:
        raise MalformedDirectoryError("TIFF IFD0 has no entries")
    reader.skip(count * 12)
    reader.read_u32()  # next IFD offset


def _validate_isobmff(data: Buffer) -> None:
    reader = ByteReader(data)
    box_types = [box_type for box_type, _, _ in _iter_boxes(reader, 0, len(data))]
    if not box_types or box_types[0] != b'ftyp':
        raise MalformedDirectoryError("ISO-BMFF file does not start with an ftyp box")
    if b'meta' not in box_types:
        raise MalformedDirectoryError("HEIF/AVIF file has no meta box")


def _validate_bmp(data: Buffer) -> None:
    reader = ByteReader(data, little_endian=True)
    reader.seek(10)  # 'BM', file size, reserved
    pixel_offset = reader.read_u32()
    dib_size = reader.read_u32()
    if 14 + dib_size > pixel_offset:
        raise MalformedDirectoryError(f"BMP pixel data offset {pixel_offset} overlaps the headers")
    if pixel_offset >= len(data):
        raise TruncatedDataError(f"BMP pixel data offset {pixel_offset} past end of file")


_VALIDATORS: Dict[ContainerKind, Callable[[Buffer], None]] = {
    ContainerKind.JPEG: _validate_jpeg,
    ContainerKind.TIFF: _validate_tiff,
    ContainerKind.PNG: _validate_png,
    ContainerKind.WEBP: _validate_webp,
    ContainerKind.HEIF: _validate_isobmff,
    ContainerKind.AVIF: _validate_isobmff,
    ContainerKind.BMP: _validate_bmp,
}

_LOCATORS: Dict[ContainerKind, Callable[[Buffer, ContainerKind], Optional[TiffBlock]]] = {
    ContainerKind.JPEG: _locate_jpeg,
    ContainerKind.TIFF: _locate_tiff,
    ContainerKind.PNG: _locate_png,
    ContainerKind.WEBP: _locate_webp,
    ContainerKind.HEIF: _locate_isobmff,
    ContainerKind.AVIF: _locate_isobmff,
    ContainerKind.BMP: _locate_bmp,
}
