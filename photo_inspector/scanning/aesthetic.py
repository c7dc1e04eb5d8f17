import logging
import math
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, List, Optional, Union

from tqdm import tqdm

from .. import config
from ..exceptions import (
    InvalidPathError,
    InvalidThresholdError,
    PermissionDeniedError,
    PhotoInspectorError,
)
from ..metadata.containers import validate_container
from ..metadata.extract import read_file_bytes
from ..models import AestheticMatch
from ..scoring import AestheticScorer, validate_score
from .filesystem import DirectoryWalker


def parse_threshold(min_score) -> float:
    """
    Validates the minimum score before any I/O.

    Accepts real numbers and numeric strings; rejects booleans, NaN,
    infinities and negatives.
    """
    if isinstance(min_score, bool):
        raise InvalidThresholdError(f"Invalid minimum score: {min_score!r}")
    try:
        value = float(min_score)
    except (TypeError, ValueError) as e:
        raise InvalidThresholdError(f"Invalid minimum score: {min_score!r}") from e
    if not math.isfinite(value):
        raise InvalidThresholdError(f"Minimum score must be finite, got {min_score!r}")
    if value < 0:
        raise InvalidThresholdError(f"Minimum score must not be negative, got {min_score!r}")
    return value


class AestheticScanner:
    """
    Finds images under a folder whose aesthetic score meets a threshold.

    Enumeration is a single synchronous pass; decoding and scoring run on a
    bounded thread pool. Each work item is a batch of files from one
    directory and returns its own match list, merged as batches complete.
    A file that cannot be read, is not a genuine image, or makes the scorer
    fail is logged and skipped.
    """

    def __init__(self,
                 scorer: AestheticScorer,
                 max_workers: Optional[int] = None,
                 recursive: bool = True,
                 include_hidden: bool = False,
                 show_progress: bool = False):
        self.scorer = scorer
        self.max_workers = max_workers or config.DEFAULT_SCAN_WORKERS
        self.walker = DirectoryWalker(recursive=recursive, include_hidden=include_hidden)
        self.show_progress = show_progress

    def find(self, root: Union[str, Path], min_score) -> List[AestheticMatch]:
        threshold = parse_threshold(min_score)
        root = self._check_root(root)

        candidates = self.walker.list_candidates(root)
        batches = self._make_batches(candidates)
        logging.info(
            f"Aesthetic scan of {root}: {len(candidates)} candidates in {len(batches)} batches, "
            f"threshold {threshold}"
        )

        matches: List[AestheticMatch] = []
        if batches:
            workers = max(1, min(self.max_workers, len(batches)))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                future_to_dir = {
                    executor.submit(self._process_batch, batch, threshold): batch[0].parent
                    for batch in batches
                }
                for future in tqdm(as_completed(future_to_dir),
                                   total=len(future_to_dir),
                                   desc="Scoring",
                                   disable=not self.show_progress):
                    directory = future_to_dir[future]
                    try:
                        matches.extend(future.result())
                    except Exception as e:
                        logging.error(f"Failed to process batch in {directory}: {e}")

        # Deterministic order: best first, ties by path
        matches.sort(key=lambda m: (-m.score, m.path))
        logging.info(f"Aesthetic scan complete: {len(matches)} of {len(candidates)} images matched")
        return matches

    def _check_root(self, root: Union[str, Path]) -> Path:
        path = Path(root)
        if not path.exists():
            raise InvalidPathError(f"Directory does not exist: {path}")
        if not path.is_dir():
            raise InvalidPathError(f"Not a directory: {path}")
        if not os.access(path, os.R_OK | os.X_OK):
            raise PermissionDeniedError(f"Permission denied: {path}")
        return path.resolve()

    def _make_batches(self, candidates: List[Path]) -> List[List[Path]]:
        """Groups files by directory, splitting large directories."""
        by_dir: Dict[Path, List[Path]] = {}
        for path in candidates:
            by_dir.setdefault(path.parent, []).append(path)

        size = config.SCAN_BATCH_SIZE
        batches = []
        for files in by_dir.values():
            for start in range(0, len(files), size):
                batches.append(files[start:start + size])
        return batches

    def _process_batch(self, files: List[Path], threshold: float) -> List[AestheticMatch]:
        """Scores a batch sequentially; the returned list is owned by this call."""
        local_matches = []
        for path in files:
            match = self._process_single_file(path, threshold)
            if match is not None:
                local_matches.append(match)
        return local_matches

    def _process_single_file(self, path: Path, threshold: float) -> Optional[AestheticMatch]:
        try:
            data = read_file_bytes(path)
            validate_container(data)
            score = validate_score(self.scorer.score(data))
        except PhotoInspectorError as e:
            logging.warning(f"Skipping {path}: {e}")
            return None
        except OSError as e:
            logging.warning(f"Skipping {path}: cannot read file: {e}")
            return None
        except Exception as e:
            logging.warning(f"Skipping {path}: scoring failed: {e}")
            return None

        if score >= threshold:
            return AestheticMatch(path=str(path), score=score)
        return None
