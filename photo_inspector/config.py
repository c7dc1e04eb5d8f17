"""
Configuration constants for the photo inspector.
"""
import os

# --- File Type Definitions ---
# Candidate images for the aesthetic scan. The container is still sniffed
# before scoring; the extension only selects candidates.
IMAGE_EXTS = frozenset({
    '.jpg', '.jpeg', '.png', '.tif', '.tiff', '.webp',
    '.heic', '.heif', '.avif', '.bmp',
})

# Folders skipped during traversal unless hidden entries are requested
SYSTEM_DIR_NAMES = frozenset({
    '$recycle.bin', 'system volume information', '__macosx', '@eadir',
})

# --- Metadata Parsing ---
# Upper bound on directories visited per file (IFD0, Exif, GPS, Interop, IFD1
# plus slack for odd writers)
MAX_DIRECTORIES = 8

# Entry counts above this are treated as a corrupt directory header
MAX_ENTRIES_PER_DIRECTORY = 1024

# UNDEFINED values longer than this are truncated in the display string
HEX_DUMP_LIMIT = 32

# ASCII tags holding "YYYY:MM:DD HH:MM:SS" timestamps, by namespace
DATE_TAGS = {
    'IFD0': {0x0132},
    'IFD1': {0x0132},
    'Exif': {0x9003, 0x9004},
    'GPS': {0x001D},
}

# --- Scanning & Performance ---
# Default worker count for the aesthetic scan (bounded by available cores)
DEFAULT_SCAN_WORKERS = os.cpu_count() or 1

# Files per work item; directories larger than this are split
SCAN_BATCH_SIZE = 32

# Threads serving backend commands so the caller's thread never blocks
COMMAND_WORKERS = 2

# --- Scoring ---
# Longest side of the image handed to a Pillow-based scoring model
SCORER_MAX_SIDE = 512
