import struct
import zlib
from types import SimpleNamespace

import pytest

TYPE_CODES = {1: 'B', 3: 'H', 4: 'I', 6: 'b', 8: 'h', 9: 'i', 11: 'f', 12: 'd'}
TYPE_SIZES = {1: 1, 2: 1, 3: 2, 4: 4, 5: 8, 6: 1, 7: 1, 8: 2, 9: 4, 10: 8, 11: 4, 12: 8}

# Placeholder value for pointer entries the builder fills in itself
POINTER = [None]
POINTER_TARGETS = {0x8769: 'Exif', 0x8825: 'GPS', 0xA005: 'Interop'}


class TiffBuilder:
    """
    Assembles TIFF/EXIF blobs from (tag, type, values) entries.

    ASCII/UNDEFINED values are bytes, rationals are lists of (num, den) pairs,
    everything else a list of numbers. Pointer tags to the Exif/GPS/Interop
    directories are added automatically when those directories are given.
    """

    def __init__(self, little_endian=True):
        self.little_endian = little_endian
        self.e = '<' if little_endian else '>'

    def pack_value(self, type_id, values):
        if type_id in (2, 7):
            return bytes(values)
        if type_id in (5, 10):
            flat = [x for pair in values for x in pair]
            code = 'I' if type_id == 5 else 'i'
            return struct.pack(f'{self.e}{len(flat)}{code}', *flat)
        return struct.pack(f'{self.e}{len(values)}{TYPE_CODES[type_id]}', *values)

    def build(self, ifd0, exif=None, gps=None, interop=None, ifd1=None, ifd0_next=None):
        ifd0 = list(ifd0)
        exif = list(exif) if exif is not None else None
        if exif is not None:
            ifd0.append((0x8769, 4, POINTER))
        if gps is not None:
            ifd0.append((0x8825, 4, POINTER))
        if interop is not None:
            (exif if exif is not None else ifd0).append((0xA005, 4, POINTER))

        dirs = [('IFD0', ifd0)]
        for label, entries in (('Exif', exif), ('GPS', gps), ('Interop', interop), ('IFD1', ifd1)):
            if entries is not None:
                dirs.append((label, list(entries)))

        # Pass 1: layout
        offsets = {}
        pos = 8
        for label, entries in dirs:
            offsets[label] = pos
            pos += 2 + 12 * len(entries) + 4
            for _, type_id, values in entries:
                size = TYPE_SIZES[type_id] * len(values)
                if size > 4:
                    pos += size + (size & 1)

        # Pass 2: serialize
        e = self.e
        out = bytearray(b'II' if self.little_endian else b'MM')
        out += struct.pack(e + 'HI', 42, 8)
        for label, entries in dirs:
            data_pos = offsets[label] + 2 + 12 * len(entries) + 4
            table = bytearray(struct.pack(e + 'H', len(entries)))
            data = bytearray()
            for tag, type_id, values in entries:
                if values is POINTER:
                    values = [offsets[POINTER_TARGETS[tag]]]
                payload = self.pack_value(type_id, values)
                if len(payload) <= 4:
                    field = payload.ljust(4, b'\x00')
                else:
                    field = struct.pack(e + 'I', data_pos + len(data))
                    data += payload + (b'\x00' if len(payload) & 1 else b'')
                table += struct.pack(e + 'HHI', tag, type_id, len(values)) + field

            next_offset = 0
            if label == 'IFD0':
                next_offset = ifd0_next if ifd0_next is not None else offsets.get('IFD1', 0)
            table += struct.pack(e + 'I', next_offset)
            out += table + data
        return bytes(out)


# --- Container wrappers ---

def wrap_jpeg(tiff):
    app0 = b'\xff\xe0' + struct.pack('>H', 16) + b'JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00'
    payload = b'Exif\x00\x00' + tiff
    app1 = b'\xff\xe1' + struct.pack('>H', len(payload) + 2) + payload
    sos = b'\xff\xda' + struct.pack('>H', 8) + b'\x01\x01\x00\x00\x3f\x00'
    return b'\xff\xd8' + app0 + app1 + sos + b'\x00' * 16 + b'\xff\xd9'


def _png_chunk(chunk_type, data):
    crc = zlib.crc32(chunk_type + data) & 0xFFFFFFFF
    return struct.pack('>I', len(data)) + chunk_type + data + struct.pack('>I', crc)


def wrap_png(tiff):
    ihdr = struct.pack('>IIBBBBB', 1, 1, 8, 2, 0, 0, 0)
    return (b'\x89PNG\r\n\x1a\n' + _png_chunk(b'IHDR', ihdr) + _png_chunk(b'eXIf', tiff)
            + _png_chunk(b'IEND', b''))


def _riff_chunk(chunk_type, data):
    return chunk_type + struct.pack('<I', len(data)) + data + (b'\x00' if len(data) & 1 else b'')


def wrap_webp(tiff, exif_prefix=False):
    payload = (b'Exif\x00\x00' + tiff) if exif_prefix else tiff
    body = b'WEBP' + _riff_chunk(b'VP8X', b'\x08' + b'\x00' * 9) + _riff_chunk(b'EXIF', payload)
    return b'RIFF' + struct.pack('<I', len(body)) + body


def _box(box_type, payload):
    return struct.pack('>I', 8 + len(payload)) + box_type + payload


def _full_box(box_type, version, payload):
    return _box(box_type, bytes([version, 0, 0, 0]) + payload)


def wrap_heif(tiff, brand=b'heic'):
    ftyp = _box(b'ftyp', brand + b'\x00\x00\x00\x00' + b'mif1' + brand)
    hdlr = _full_box(b'hdlr', 0, b'\x00' * 4 + b'pict' + b'\x00' * 12 + b'\x00')
    infe = _full_box(b'infe', 2, struct.pack('>HH', 1, 0) + b'Exif' + b'\x00')
    iinf = _full_box(b'iinf', 0, struct.pack('>H', 1) + infe)
    item = struct.pack('>I', 0) + tiff

    def build_meta(item_offset):
        iloc = _full_box(
            b'iloc', 1,
            bytes([0x44, 0x00]) + struct.pack('>H', 1)
            + struct.pack('>HHH', 1, 0, 0)        # item id, construction method, data ref
            + struct.pack('>H', 1)                # extent count
            + struct.pack('>II', item_offset, len(item)),
        )
        return _full_box(b'meta', 0, hdlr + iinf + iloc)

    item_offset = len(ftyp) + len(build_meta(0)) + 8
    return ftyp + build_meta(item_offset) + _box(b'mdat', item)


def minimal_bmp():
    header = b'BM' + struct.pack('<IHHI', 58, 0, 0, 54)
    dib = struct.pack('<IiiHHIIiiII', 40, 1, 1, 1, 24, 0, 4, 2835, 2835, 0, 0)
    return header + dib + b'\x00\x00\xff\x00'


@pytest.fixture
def tiff_le():
    return TiffBuilder(little_endian=True)


@pytest.fixture
def tiff_be():
    return TiffBuilder(little_endian=False)


@pytest.fixture(params=[True, False], ids=["little-endian", "big-endian"])
def tiff_builder(request):
    return TiffBuilder(little_endian=request.param)


@pytest.fixture
def containers():
    return SimpleNamespace(
        jpeg=wrap_jpeg,
        png=wrap_png,
        webp=wrap_webp,
        heif=wrap_heif,
        bmp=minimal_bmp,
    )


@pytest.fixture
def sample_exif():
    """Entries for a typical camera file and the fields read_exif should report."""
    entries = dict(
        ifd0=[
            (0x010F, 2, b'TestCam\x00'),
            (0x0110, 2, b'Model X100\x00'),
            (0x0132, 2, b'2023:01:02 03:04:05\x00'),
        ],
        exif=[
            (0x829A, 5, [(1, 250)]),
            (0x829D, 5, [(28, 10)]),
            (0x9003, 2, b'2023:01:02 03:04:05\x00'),
        ],
        gps=[
            (0x0001, 2, b'N\x00'),
            (0x0002, 5, [(51, 1), (30, 1), (0, 1)]),
        ],
        interop=[
            (0x0001, 2, b'R98\x00'),
        ],
        ifd1=[
            (0x011A, 5, [(72, 1)]),
        ],
    )
    expected = [
        ('IFD0', 'Make', 'TestCam'),
        ('IFD0', 'Model', 'Model X100'),
        ('IFD0', 'DateTime', '2023-01-02 03:04:05'),
        ('Exif', 'ExposureTime', '1/250 s'),
        ('Exif', 'FNumber', 'f/2.8'),
        ('Exif', 'DateTimeOriginal', '2023-01-02 03:04:05'),
        ('GPS', 'GPSLatitudeRef', 'N'),
        ('GPS', 'GPSLatitude', '51/1, 30/1, 0/1'),
        ('Interop', 'InteroperabilityIndex', 'R98'),
        ('IFD1', 'XResolution', '72/1'),
    ]
    return entries, expected
