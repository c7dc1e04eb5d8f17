"""
Aesthetic scoring capability.

The scoring model itself lives outside this package. A scorer is anything
with `score(image_bytes) -> float` returning a value in [0, 1].
`PillowScorer` adapts a model that works on decoded images instead of bytes.
"""
import importlib
import io
import math
from typing import Callable, Protocol

from PIL import Image, ImageOps
from pillow_heif import register_heif_opener

from . import config
from .exceptions import ScoringError

# Lets Image.open decode HEIC/HEIF files from the extension allow-list
register_heif_opener()


class AestheticScorer(Protocol):
    def score(self, image_bytes: bytes) -> float: ...


class PillowScorer:
    """
    Decodes image bytes with Pillow and hands an upright RGB thumbnail
    (longest side `max_side`) to `model`.
    """

    def __init__(self, model: Callable[[Image.Image], float], max_side: int = config.SCORER_MAX_SIDE):
        self.model = model
        self.max_side = max_side

    def score(self, image_bytes: bytes) -> float:
        with Image.open(io.BytesIO(image_bytes)) as im:
            upright = ImageOps.exif_transpose(im)
            rgb = upright.convert('RGB')
            rgb.thumbnail((self.max_side, self.max_side))
            return float(self.model(rgb))


def validate_score(value) -> float:
    """
    Checks scorer output.

    Raises:
        ScoringError: if the value is not a finite number in [0, 1].
    """
    try:
        score = float(value)
    except (TypeError, ValueError) as e:
        raise ScoringError(f"Scorer returned a non-numeric value: {value!r}") from e
    if not math.isfinite(score) or not 0.0 <= score <= 1.0:
        raise ScoringError(f"Scorer returned {score}, expected a value in [0, 1]")
    return score


def load_scorer(spec: str) -> AestheticScorer:
    """
    Loads a scorer from 'package.module:attribute'.

    The attribute may be a scorer object, a scorer class (instantiated with no
    arguments), or a plain callable taking a PIL image (wrapped in
    PillowScorer).
    """
    module_name, sep, attr_name = spec.partition(':')
    if not sep or not module_name or not attr_name:
        raise ScoringError(f"Scorer must be given as 'module:attribute', got {spec!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ScoringError(f"Cannot import scorer module {module_name!r}: {e}") from e

    target = getattr(module, attr_name, None)
    if target is None:
        raise ScoringError(f"Module {module_name!r} has no attribute {attr_name!r}")

    if hasattr(target, 'score') and not isinstance(target, type):
        return target
    if isinstance(target, type) and hasattr(target, 'score'):
        return target()
    if callable(target):
        return PillowScorer(target)
    raise ScoringError(f"{spec!r} is neither a scorer nor a callable")
