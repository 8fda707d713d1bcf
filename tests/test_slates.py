import xml.etree.ElementTree as ET

import pytest

import slates

SVG_NS = "{http://www.w3.org/2000/svg}"


def _title_lines(svg: bytes) -> list[str]:
    root = ET.fromstring(svg)
    title = [el for el in root.iter(f"{SVG_NS}text") if el.get("class") == "title"][0]
    return [t.text or "" for t in title.iter(f"{SVG_NS}tspan")]


def test_generate_is_deterministic():
    a = slates.generate("Fractions, part 2", "chalk")
    b = slates.generate("Fractions, part 2", "chalk")
    assert a == b
    assert a != slates.generate("Fractions, part 2", "paper")
    assert a != slates.generate("Fractions, part 3", "chalk")


def test_canvas_and_palette():
    svg = slates.generate("lesson1", "paper")
    root = ET.fromstring(svg)
    assert root.get("width") == "640" and root.get("height") == "360"
    assert root.get("viewBox") == "0 0 640 360"
    text = svg.decode("utf-8")
    assert slates.THEMES["paper"]["bg_a"] in text
    assert slates.THEMES["paper"]["bg_b"] in text
    assert ">Roniz<" in text
    assert _title_lines(svg) == ["lesson1"]


def test_unknown_theme_falls_back_to_default():
    assert slates.normalize_theme("neon") == "midnight"
    assert slates.normalize_theme(None) == "midnight"
    assert slates.normalize_theme(" CHALK ") == "chalk"
    assert slates.generate("x", "neon") == slates.generate("x", "midnight")


def test_title_sanitized_and_markup_stays_valid():
    svg = slates.generate('<script>alert("x")</script> & friends', "midnight")
    # Parses as XML, so nothing leaked into the markup
    lines = _title_lines(svg)
    joined = " ".join(lines)
    assert "<" not in joined and ">" not in joined and "&" not in joined
    assert "scriptalert" in joined.replace(" ", "")


def test_blank_title_uses_default():
    assert slates.sanitize_title("   ") == slates.DEFAULT_TITLE
    assert slates.sanitize_title(None) == slates.DEFAULT_TITLE
    assert _title_lines(slates.generate("", "midnight")) == [slates.DEFAULT_TITLE]


def test_long_title_wraps_inside_region():
    title = "Introduction to differential equations with worked examples and exercises for revision week"
    lines = slates.wrap_title(title)
    assert 1 < len(lines) <= slates.TITLE_MAX_LINES
    assert all(len(line) <= slates.TITLE_MAX_CHARS for line in lines)
    assert lines[-1].endswith("…")


def test_wrap_splits_overlong_words():
    lines = slates.wrap_title("x" * 60)
    assert lines[0] == "x" * slates.TITLE_MAX_CHARS
    assert len(lines) == 3


def test_write_slate_leaves_no_temp_file(tmp_path):
    out = tmp_path / "v.mp4.svg"
    slates.write_slate(out, "hello", "chalk")
    assert out.read_bytes() == slates.generate("hello", "chalk")
    assert [p.name for p in tmp_path.iterdir()] == ["v.mp4.svg"]


def test_brand_that_sanitizes_to_nothing_uses_default_brand():
    text = slates.generate("x", brand="<>").decode("utf-8")
    assert ">Roniz<" in text
    assert slates.DEFAULT_TITLE not in text
    assert ">Math Club<" in slates.generate("x", brand="Math <Club>").decode("utf-8")


def test_failed_slate_write_removes_its_temp_file(tmp_path):
    missing = tmp_path / "gone" / "v.mp4.svg"
    with pytest.raises(FileNotFoundError):
        slates.write_slate(missing, "hello")
    assert list(tmp_path.iterdir()) == []
