import io
import textwrap

import pytest
from PIL import Image

from photo_inspector.exceptions import ScoringError
from photo_inspector.metadata.containers import validate_container
from photo_inspector.models import ContainerKind
from photo_inspector.scoring import PillowScorer, load_scorer, validate_score


def _png_bytes(size=(40, 20), color="red"):
    buf = io.BytesIO()
    with Image.new("RGB", size, color=color) as im:
        im.save(buf, format="PNG")
    return buf.getvalue()


@pytest.mark.parametrize("value,expected", [(0, 0.0), (1, 1.0), (0.5, 0.5), ("0.25", 0.25)])
def test_validate_score_accepts_unit_interval(value, expected):
    assert validate_score(value) == expected


@pytest.mark.parametrize("value", [-0.01, 1.01, float("nan"), float("inf"), None, "high"])
def test_validate_score_rejects_out_of_range(value):
    with pytest.raises(ScoringError):
        validate_score(value)


def test_pillow_scorer_passes_rgb_thumbnail():
    seen = {}

    def model(image):
        seen["mode"] = image.mode
        seen["size"] = image.size
        return 0.42

    scorer = PillowScorer(model, max_side=10)
    assert scorer.score(_png_bytes()) == pytest.approx(0.42)
    assert seen["mode"] == "RGB"
    assert max(seen["size"]) <= 10


def test_pillow_scorer_rejects_undecodable_bytes():
    scorer = PillowScorer(lambda image: 0.5)
    with pytest.raises(OSError):
        scorer.score(b"\xff\xd8\xff\xe0 broken")


@pytest.fixture
def scorer_module(tmp_path, monkeypatch):
    source = textwrap.dedent(
        """
        class ConstantScorer:
            def score(self, image_bytes):
                return 0.75


        instance = ConstantScorer()


        def brightness(image):
            return image.convert("L").getpixel((0, 0)) / 255


        not_callable = 42
        """
    )
    (tmp_path / "my_scorers.py").write_text(source)
    monkeypatch.syspath_prepend(str(tmp_path))
    return "my_scorers"


def test_load_scorer_instance(scorer_module):
    scorer = load_scorer(f"{scorer_module}:instance")
    assert scorer.score(b"anything") == 0.75


def test_load_scorer_class_is_instantiated(scorer_module):
    scorer = load_scorer(f"{scorer_module}:ConstantScorer")
    assert scorer.score(b"anything") == 0.75


def test_load_scorer_wraps_plain_callable(scorer_module):
    scorer = load_scorer(f"{scorer_module}:brightness")
    assert isinstance(scorer, PillowScorer)
    assert scorer.score(_png_bytes(color="white")) == pytest.approx(1.0)
    assert scorer.score(_png_bytes(color="black")) == pytest.approx(0.0)


@pytest.mark.parametrize(
    "spec",
    [
        "no_colon_here",
        ":missing_module",
        "my_scorers:",
        "definitely_not_a_module_xyz:thing",
        "my_scorers:does_not_exist",
        "my_scorers:not_callable",
    ],
)
def test_load_scorer_errors(scorer_module, spec):
    with pytest.raises(ScoringError):
        load_scorer(spec)


def test_pillow_scorer_decodes_heif():
    buf = io.BytesIO()
    with Image.new("RGB", (32, 32), color="white") as im:
        im.save(buf, format="HEIF")
    data = buf.getvalue()
    assert validate_container(data) == ContainerKind.HEIF

    scorer = PillowScorer(lambda image: image.convert("L").getpixel((16, 16)) / 255)
    assert scorer.score(data) == pytest.approx(1.0, abs=0.05)
