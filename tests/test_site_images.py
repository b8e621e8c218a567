"""Tests for the responsive image shortcode."""

from __future__ import annotations

from pathlib import Path

import pytest
from bs4 import BeautifulSoup
from PIL import Image

from site_images import (
    generate_html,
    generate_variants,
    image_shortcode,
    supported_formats,
    variant_widths,
)


@pytest.fixture
def photo(tmp_path: Path) -> Path:
    path = tmp_path / "cat.png"
    Image.new("RGB", (800, 600), "red").save(path)
    return path


class TestVariantWidths:
    def test_drops_widths_larger_than_source(self) -> None:
        assert variant_widths(800, [320, 640, 960, 1200]) == [320, 640]

    def test_small_source_keeps_its_own_width(self) -> None:
        assert variant_widths(100, [320, 640]) == [100]

    def test_sorted_and_unique(self) -> None:
        assert variant_widths(2000, [960, 320, 960]) == [320, 960]


class TestSupportedFormats:
    def test_unknown_format_skipped(self, capsys) -> None:
        assert supported_formats(["bogus", "jpeg"]) == ["jpeg"]
        assert "bogus" in capsys.readouterr().err


class TestGenerateVariants:
    def test_writes_files_and_metadata(self, photo: Path, tmp_path: Path) -> None:
        out = tmp_path / "out"
        metadata = generate_variants(
            str(photo), [320, 640, 960], ["webp", "jpeg"],
            url_path="/img", output_dir=out,
        )

        assert list(metadata) == ["webp", "jpeg"]
        jpeg = metadata["jpeg"]
        assert [v["width"] for v in jpeg] == [320, 640]
        assert [v["height"] for v in jpeg] == [240, 480]
        assert jpeg[0]["url"] == "/img/cat-320w.jpeg"
        assert jpeg[0]["srcset"] == "/img/cat-320w.jpeg 320w"
        assert jpeg[0]["source_type"] == "image/jpeg"

        for name in ("cat-320w.webp", "cat-640w.webp", "cat-320w.jpeg", "cat-640w.jpeg"):
            assert (out / name).is_file()
        with Image.open(out / "cat-640w.webp") as img:
            assert img.size == (640, 480)

    def test_transparent_png_to_jpeg(self, tmp_path: Path) -> None:
        src = tmp_path / "logo.png"
        Image.new("RGBA", (400, 200), (0, 0, 0, 0)).save(src)
        metadata = generate_variants(str(src), [320], ["jpeg"], output_dir=tmp_path / "out")
        assert metadata["jpeg"][0]["width"] == 320
        assert (tmp_path / "out" / "logo-320w.jpeg").is_file()

    def test_no_usable_formats(self, photo: Path, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            generate_variants(str(photo), [320], ["bogus"], output_dir=tmp_path)


class TestGenerateHtml:
    metadata = {
        "webp": [
            {"width": 320, "height": 240, "url": "/i/a-320w.webp",
             "source_type": "image/webp", "srcset": "/i/a-320w.webp 320w"},
            {"width": 640, "height": 480, "url": "/i/a-640w.webp",
             "source_type": "image/webp", "srcset": "/i/a-640w.webp 640w"},
        ],
        "jpeg": [
            {"width": 320, "height": 240, "url": "/i/a-320w.jpeg",
             "source_type": "image/jpeg", "srcset": "/i/a-320w.jpeg 320w"},
            {"width": 640, "height": 480, "url": "/i/a-640w.jpeg",
             "source_type": "image/jpeg", "srcset": "/i/a-640w.jpeg 640w"},
        ],
    }

    def test_picture(self) -> None:
        out = generate_html(self.metadata, {"alt": 'A "cat"', "sizes": "100vw", "loading": "lazy"})
        soup = BeautifulSoup(out, "html.parser")

        source = soup.picture.source
        assert source["type"] == "image/webp"
        assert source["srcset"] == "/i/a-320w.webp 320w, /i/a-640w.webp 640w"
        assert source["sizes"] == "100vw"

        img = soup.picture.img
        assert img["src"] == "/i/a-320w.jpeg"
        assert img["width"] == "640"
        assert img["height"] == "480"
        assert img["alt"] == 'A "cat"'
        assert img["loading"] == "lazy"

    def test_single_format_is_bare_img(self) -> None:
        out = generate_html({"jpeg": self.metadata["jpeg"]}, {"alt": "x", "sizes": "50vw"})
        assert out.startswith("<img ")
        assert "<picture>" not in out


class TestImageShortcode:
    def test_missing_alt(self, photo: Path) -> None:
        with pytest.raises(ValueError, match="Missing `alt` on image from"):
            image_shortcode(str(photo))

    def test_remote_image_is_linked(self) -> None:
        out = image_shortcode("https://example.com/a.png", "Remote")
        assert out == (
            '<img src="https://example.com/a.png" alt="Remote" loading="lazy" decoding="async" />'
        )

    def test_empty_alt_allowed(self) -> None:
        assert 'alt=""' in image_shortcode("http://example.com/a.png", "")

    def test_local_image(self, photo: Path, tmp_path: Path) -> None:
        out = image_shortcode(
            "cat.png", "A cat", "50vw",
            widths=[320], formats=["webp", "jpeg"],
            output_dir=tmp_path / "out", base_dir=photo.parent,
        )
        soup = BeautifulSoup(str(out), "html.parser")
        img = soup.find("img")
        assert img["alt"] == "A cat"
        assert img["src"] == "/assets/images/cat-320w.jpeg"
        assert img["decoding"] == "async"
        assert soup.find("source")["type"] == "image/webp"
        assert (tmp_path / "out" / "cat-320w.webp").is_file()
