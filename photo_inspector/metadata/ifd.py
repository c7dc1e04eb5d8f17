"""
IFD (Image File Directory) decoding.

Walks IFD0, the Exif/GPS/Interop sub-directories and IFD1, producing raw
typed values in traversal order. Hostile input never aborts the whole decode:
a bad directory is dropped and whatever was already decoded is kept.
"""
import logging
from typing import Dict, List, Optional, Set, Tuple

from .. import config
from ..exceptions import MalformedDirectoryError, TruncatedDataError
from ..models import (
    EXIF_IFD,
    GPS_IFD,
    IFD0,
    IFD1,
    INTEROP_IFD,
    FieldType,
    IfdEntry,
    RawField,
    TiffBlock,
    TiffHeader,
)
from .reader import ByteReader

TIFF_MAGIC = 42
TIFF_HEADER_SIZE = 8
ENTRY_SIZE = 12

# Tags whose value is the offset of a sub-directory
POINTER_TAGS = {
    0x8769: EXIF_IFD,       # ExifIFDPointer
    0x8825: GPS_IFD,        # GPSInfoIFDPointer
    0xA005: INTEROP_IFD,    # InteroperabilityIFDPointer
}
# Directories whose pointer tags are followed
POINTER_SOURCES = {IFD0, EXIF_IFD}
# TIFF type IFD (13); a LONG alias used by some writers for sub-IFD pointers
IFD_POINTER_TYPE = 13

# struct codes for scalar field types
SCALAR_CODES = {
    FieldType.BYTE: 'B',
    FieldType.SBYTE: 'b',
    FieldType.SHORT: 'H',
    FieldType.SSHORT: 'h',
    FieldType.LONG: 'I',
    FieldType.SLONG: 'i',
    FieldType.FLOAT: 'f',
    FieldType.DOUBLE: 'd',
}


class IfdDecoder:
    """
    Decodes the IFD tree of one TIFF block.

    A decoder instance is single-use: it tracks visited directory offsets so
    cyclic or repeated chains terminate.
    """

    def __init__(self, block: TiffBlock, max_directories: int = config.MAX_DIRECTORIES):
        self.block = block
        self.reader = ByteReader(memoryview(block.buffer)[block.start:block.end])
        self.max_directories = max_directories
        self._visited: Set[int] = set()

    def read_header(self) -> TiffHeader:
        """
        Parses the 8-byte TIFF header and fixes the reader's byte order.

        Raises:
            MalformedDirectoryError: on a bad byte order marker or magic number.
            TruncatedDataError: if the block is shorter than a header.
        """
        self.reader.seek(0)
        marker = self.reader.read_bytes(2)
        try:
            self.reader.set_byte_order_marker(marker)
        except ValueError as e:
            raise MalformedDirectoryError(str(e)) from e

        magic = self.reader.read_u16()
        if magic != TIFF_MAGIC:
            raise MalformedDirectoryError(f"Bad TIFF magic number {magic}")
        return TiffHeader(little_endian=self.reader.little_endian, ifd0_offset=self.reader.read_u32())

    def decode(self) -> List[RawField]:
        """
        Returns raw fields in order IFD0, Exif, GPS, Interop, IFD1.
        """
        try:
            header = self.read_header()
        except (TruncatedDataError, MalformedDirectoryError) as e:
            logging.warning(f"Unreadable TIFF header: {e}")
            return []

        fields: List[RawField] = []
        pointers: Dict[str, int] = {}

        next_offset = self._follow(IFD0, header.ifd0_offset, fields, pointers)
        for label in (EXIF_IFD, GPS_IFD, INTEROP_IFD):
            # The Exif IFD may add the Interop pointer before it is reached
            if label in pointers:
                self._follow(label, pointers[label], fields, pointers)

        # IFD1 is reached through IFD0's next link only; its own link is ignored
        if next_offset:
            self._follow(IFD1, next_offset, fields, pointers)

        return fields

    def _follow(self, label: str, offset: int, fields: List[RawField], pointers: Dict[str, int]) -> int:
        """Decodes one directory into `fields`; returns its next-IFD offset (0 on failure)."""
        try:
            found, found_pointers, next_offset = self._read_directory(label, offset)
        except MalformedDirectoryError as e:
            logging.warning(f"Skipping {label} directory: {e}")
            return 0

        fields.extend(found)
        for target, target_offset in found_pointers.items():
            pointers.setdefault(target, target_offset)
        return next_offset

    def _claim(self, label: str, offset: int) -> None:
        if len(self._visited) >= self.max_directories:
            raise MalformedDirectoryError(f"{label} at {offset}: directory limit of {self.max_directories} reached")
        if offset in self._visited:
            raise MalformedDirectoryError(f"{label} at {offset}: offset already visited")
        if offset < TIFF_HEADER_SIZE or offset + 2 > self.reader.size:
            raise MalformedDirectoryError(f"{label} at {offset}: offset outside TIFF block of {self.reader.size} bytes")
        self._visited.add(offset)

    def _read_directory(self, label: str, offset: int) -> Tuple[List[RawField], Dict[str, int], int]:
        self._claim(label, offset)

        fields: List[RawField] = []
        pointers: Dict[str, int] = {}
        seen_tags: Set[int] = set()
        next_offset = 0

        try:
            self.reader.seek(offset)
            count = self.reader.read_u16()
            if count > config.MAX_ENTRIES_PER_DIRECTORY:
                raise MalformedDirectoryError(f"{label} at {offset}: implausible entry count {count}")

            for index in range(count):
                entry = self._read_entry(offset + 2 + index * ENTRY_SIZE)
                if entry is None:
                    continue

                # Hostile files may repeat tag ids; the first occurrence wins
                if entry.tag_id in seen_tags:
                    logging.debug(f"{label}: duplicate tag 0x{entry.tag_id:04X} ignored")
                    continue
                seen_tags.add(entry.tag_id)

                if label in POINTER_SOURCES and entry.tag_id in POINTER_TAGS:
                    if entry.field_type == FieldType.LONG and entry.count == 1:
                        pointers[POINTER_TAGS[entry.tag_id]] = entry.value_or_offset
                    else:
                        logging.debug(f"{label}: pointer tag 0x{entry.tag_id:04X} has bad type/count")
                    continue

                raw = self._read_value(label, entry)
                if raw is not None:
                    fields.append(raw)

            self.reader.seek(offset + 2 + count * ENTRY_SIZE)
            next_offset = self.reader.read_u32()
        except TruncatedDataError as e:
            logging.warning(f"{label} at {offset} truncated after {len(fields)} fields: {e}")

        return fields, pointers, next_offset

    def _read_entry(self, position: int) -> Optional[IfdEntry]:
        reader = self.reader
        reader.seek(position)
        tag_id = reader.read_u16()
        type_id = reader.read_u16()
        count = reader.read_u32()
        value_position = reader.position
        value_or_offset = reader.read_u32()

        if type_id == IFD_POINTER_TYPE and tag_id in POINTER_TAGS:
            type_id = FieldType.LONG

        try:
            field_type = FieldType(type_id)
        except ValueError:
            logging.debug(f"Tag 0x{tag_id:04X} has unknown type {type_id}; skipped")
            return None

        return IfdEntry(
            tag_id=tag_id,
            field_type=field_type,
            count=count,
            value_or_offset=value_or_offset,
            value_position=value_position,
        )

    def _read_value(self, label: str, entry: IfdEntry) -> Optional[RawField]:
        """Resolves inline vs. offset storage; None if the value lies outside the block."""
        position = entry.value_position if entry.is_inline else entry.value_or_offset
        if position + entry.byte_size > self.reader.size:
            logging.debug(
                f"{label}: tag 0x{entry.tag_id:04X} value ({entry.byte_size} bytes at {position}) "
                f"outside TIFF block; skipped"
            )
            return None

        self.reader.seek(position)
        return RawField(
            ifd=label,
            tag_id=entry.tag_id,
            field_type=entry.field_type,
            count=entry.count,
            value=self._decode_values(entry.field_type, entry.count),
        )

    def _decode_values(self, field_type: FieldType, count: int):
        reader = self.reader
        if field_type in (FieldType.ASCII, FieldType.UNDEFINED):
            return reader.read_bytes(count)
        if field_type in (FieldType.RATIONAL, FieldType.SRATIONAL):
            flat = reader.read_array('I' if field_type == FieldType.RATIONAL else 'i', count * 2)
            return tuple(zip(flat[0::2], flat[1::2]))
        return reader.read_array(SCALAR_CODES[field_type], count)
