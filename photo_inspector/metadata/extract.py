import logging
from pathlib import Path
from typing import List, Union

from ..exceptions import InvalidPathError, NoMetadataFoundError, PermissionDeniedError
from ..models import ExifField
from .containers import detect_format, locate_tiff_block
from .ifd import IfdDecoder
from .tags import format_field


def read_file_bytes(path: Path) -> bytes:
    """
    Reads a whole file, mapping OS failures onto the path errors callers see.
    """
    try:
        return path.read_bytes()
    except PermissionError as e:
        raise PermissionDeniedError(f"Permission denied: {path}") from e
    except IsADirectoryError as e:
        raise InvalidPathError(f"Not a file: {path}") from e
    except FileNotFoundError as e:
        raise InvalidPathError(f"File does not exist: {path}") from e


class ExifExtractor:
    """
    Reads EXIF fields from a single image file.

    Pipeline:
      - Sniff the container and locate its TIFF block.
      - Walk the IFD tree (IFD0 -> Exif -> GPS -> Interop -> IFD1).
      - Resolve tag names and format values for display.

    Only path problems and unrecognized containers are errors. A recognized
    image without EXIF, or with damaged directories, yields whatever fields
    could be decoded (possibly none).
    """

    def read_exif(self, path: Union[str, Path]) -> List[ExifField]:
        path = Path(path)
        if not path.exists():
            raise InvalidPathError(f"File does not exist: {path}")
        if not path.is_file():
            raise InvalidPathError(f"Not a file: {path}")

        data = read_file_bytes(path)
        return self.read_exif_bytes(data, source=str(path))

    def read_exif_bytes(self, data: bytes, source: str = "<bytes>") -> List[ExifField]:
        kind = detect_format(data)

        try:
            block = locate_tiff_block(data, kind)
        except NoMetadataFoundError as e:
            logging.debug(f"{source}: {e}")
            return []

        raw_fields = IfdDecoder(block).decode()
        fields = []
        seen = set()
        for raw in raw_fields:
            tag, value = format_field(raw)
            # Distinct ids can share a table name; keep one row per name
            if (raw.ifd, tag) in seen:
                continue
            seen.add((raw.ifd, tag))
            fields.append(ExifField(tag=tag, ifd=raw.ifd, value=value))

        logging.debug(f"{source}: {len(fields)} EXIF fields from {kind.value} container")
        return fields
