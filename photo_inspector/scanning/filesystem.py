import logging
import os
import stat
from pathlib import Path
from typing import Iterator, List

from .. import config

# Windows attribute bits (st_file_attributes is absent elsewhere)
HIDDEN_ATTRIBUTES = (
    getattr(stat, 'FILE_ATTRIBUTE_HIDDEN', 0x2) | getattr(stat, 'FILE_ATTRIBUTE_SYSTEM', 0x4)
)


def is_hidden_entry(entry: os.DirEntry) -> bool:
    """Dotfiles, AppleDouble files, hidden/system attributes, system folders."""
    name = entry.name
    if name.startswith('.'):    # also covers AppleDouble '._*'
        return True
    if name.lower() in config.SYSTEM_DIR_NAMES:
        return True
    try:
        attrs = getattr(entry.stat(follow_symlinks=False), 'st_file_attributes', 0)
    except OSError:
        return False
    return bool(attrs & HIDDEN_ATTRIBUTES)


def is_candidate_image(path: Path) -> bool:
    return path.suffix.lower() in config.IMAGE_EXTS


class DirectoryWalker:
    """
    Enumerates files under a root in a stable, depth-first order.

    Unreadable subdirectories are logged and skipped; symlinks are not
    followed.
    """

    def __init__(self, recursive: bool = True, include_hidden: bool = False):
        self.recursive = recursive
        self.include_hidden = include_hidden

    def iter_files(self, root: Path) -> Iterator[Path]:
        """Depth-first walker using os.scandir for speed."""
        stack = [root]
        while stack:
            current = stack.pop()

            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except PermissionError:
                logging.warning(f"Permission denied: {current}")
                continue
            except OSError as e:
                logging.warning(f"Cannot list {current}: {e}")
                continue

            # Sort for stable traversal order
            entries.sort(key=lambda e: e.name.lower())

            dirs = []
            files = []
            for e in entries:
                if not self.include_hidden and is_hidden_entry(e):
                    continue
                try:
                    if e.is_dir(follow_symlinks=False):
                        dirs.append(Path(e.path))
                    elif e.is_file(follow_symlinks=False):
                        files.append(Path(e.path))
                except OSError as err:
                    logging.debug(f"Cannot stat {e.path}: {err}")

            if self.recursive:
                # Push dirs to stack (reversed so we process A before Z)
                for d in reversed(dirs):
                    stack.append(d)

            for f in files:
                yield f

    def list_candidates(self, root: Path) -> List[Path]:
        """Single pass collecting files whose extension is on the image allow-list."""
        return [p for p in self.iter_files(root) if is_candidate_image(p)]
