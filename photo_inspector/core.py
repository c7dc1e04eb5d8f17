import logging
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, List, Optional

from . import config
from .exceptions import PhotoInspectorError, ScoringError
from .metadata.extract import ExifExtractor
from .models import AestheticMatch, CommandResult, ExifField
from .scanning.aesthetic import AestheticScanner
from .scoring import AestheticScorer


class PhotoInspectorApp:
    """
    Backend commands for the desktop shell.

    Each command runs off the caller's thread and resolves its Future exactly
    once with a CommandResult: the value on success, or a human-readable
    error string. Runs share no state beyond read-only configuration.
    """

    def __init__(self,
                 scorer: Optional[AestheticScorer] = None,
                 max_workers: Optional[int] = None,
                 recursive: bool = True,
                 include_hidden: bool = False,
                 show_progress: bool = False):
        self.extractor = ExifExtractor()
        self.scorer = scorer
        self.max_workers = max_workers
        self.recursive = recursive
        self.include_hidden = include_hidden
        self.show_progress = show_progress
        self._executor = ThreadPoolExecutor(max_workers=config.COMMAND_WORKERS,
                                            thread_name_prefix="photo-inspector")
        self._commands = {
            "read_exif": self.read_exif,
            "find_aesthetic_images": self.find_aesthetic_images,
        }

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        self._executor.shutdown(wait=True)

    # --- Commands ---

    def read_exif(self, path: str) -> "Future[CommandResult]":
        return self._submit("read_exif", self._read_exif, path)

    def find_aesthetic_images(self, path: str, min_score) -> "Future[CommandResult]":
        return self._submit("find_aesthetic_images", self._find_aesthetic_images, path, min_score)

    def invoke(self, command: str, **kwargs) -> "Future[CommandResult]":
        """Dispatches a command by name, e.g. invoke("read_exif", path=...)."""
        handler = self._commands.get(command)
        if handler is None:
            future: Future = Future()
            future.set_result(CommandResult(error=f"Unknown command: {command}"))
            return future
        try:
            return handler(**kwargs)
        except TypeError as e:
            future = Future()
            future.set_result(CommandResult(error=f"Invalid arguments for {command}: {e}"))
            return future

    # --- Implementations (run on the executor) ---

    def _read_exif(self, path: str) -> List[ExifField]:
        return self.extractor.read_exif(Path(path))

    def _find_aesthetic_images(self, path: str, min_score) -> List[AestheticMatch]:
        if self.scorer is None:
            raise ScoringError("No aesthetic scorer configured")
        scanner = AestheticScanner(
            self.scorer,
            max_workers=self.max_workers,
            recursive=self.recursive,
            include_hidden=self.include_hidden,
            show_progress=self.show_progress,
        )
        return scanner.find(path, min_score)

    def _submit(self, name: str, func: Callable, *args) -> "Future[CommandResult]":
        return self._executor.submit(self._run, name, func, *args)

    def _run(self, name: str, func: Callable, *args) -> CommandResult:
        try:
            return CommandResult(value=func(*args))
        except PhotoInspectorError as e:
            logging.warning(f"{name} failed: {e}")
            return CommandResult(error=str(e))
        except OSError as e:
            logging.warning(f"{name} failed: {e}")
            return CommandResult(error=str(e))
        except Exception as e:
            logging.exception(f"Unexpected error in {name}")
            return CommandResult(error=f"Unexpected error: {e}")
