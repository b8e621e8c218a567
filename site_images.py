"""
Responsive images: resize a local image to a few widths, transcode it to
modern formats and emit the matching <picture> markup.
"""
import html
import sys
from pathlib import Path

from jinja2 import Undefined
from markupsafe import Markup
from PIL import Image  # pip install pillow

DEFAULT_WIDTHS = [320, 640, 960, 1200]
DEFAULT_FORMATS = ["avif", "webp", "jpeg"]
DEFAULT_URL_PATH = "/assets/images/"
DEFAULT_OUTPUT_DIR = "_site/assets/images/"

# format name -> (Pillow encoder, mime type)
FORMATS = {
    "avif": ("AVIF", "image/avif"),
    "webp": ("WEBP", "image/webp"),
    "jpeg": ("JPEG", "image/jpeg"),
    "png": ("PNG", "image/png"),
}


def supported_formats(formats):
    """Keep only the formats this Pillow build can encode, in order."""
    Image.init()
    usable = []
    for fmt in formats:
        encoder = FORMATS.get(fmt)
        if encoder is None or encoder[0] not in Image.SAVE:
            print(f"WARNING: image format '{fmt}' is not supported, skipping", file=sys.stderr)
            continue
        usable.append(fmt)
    return usable


def variant_widths(original_width: int, widths) -> list:
    """Requested widths that don't upscale; the original width if none fit."""
    fitting = sorted({w for w in widths if w <= original_width})
    return fitting or [original_width]


def variant_filename(src: str, width: int, fmt: str) -> str:
    return f"{Path(src).stem}-{width}w.{fmt}"


def generate_variants(src: str, widths=None, formats=None, *,
                      url_path: str = DEFAULT_URL_PATH,
                      output_dir=DEFAULT_OUTPUT_DIR) -> dict:
    """
    Write resized copies of `src` and return their metadata:

      {
        "webp": [{"width": 320, "height": 213, "url": "/assets/images/a-320w.webp",
                  "source_type": "image/webp", "srcset": "/assets/images/a-320w.webp 320w"}, ...],
        "jpeg": [...],
      }

    Each list is ordered by width, smallest first.
    """
    widths = widths or DEFAULT_WIDTHS
    formats = supported_formats(formats or DEFAULT_FORMATS)
    if not formats:
        raise ValueError(f"No usable image formats for {src}")

    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    if not url_path.endswith("/"):
        url_path += "/"

    metadata = {}
    with Image.open(src) as img:
        orig_w, orig_h = img.size
        for fmt in formats:
            encoder, mime = FORMATS[fmt]
            entries = []
            for width in variant_widths(orig_w, widths):
                height = max(1, round(orig_h * width / orig_w))
                resized = img.resize((width, height), Image.Resampling.LANCZOS)
                if encoder == "JPEG" and resized.mode not in ("RGB", "L"):
                    resized = resized.convert("RGB")

                filename = variant_filename(src, width, fmt)
                resized.save(out_dir / filename, encoder)

                url = f"{url_path}{filename}"
                entries.append(
                    {
                        "width": width,
                        "height": height,
                        "url": url,
                        "source_type": mime,
                        "srcset": f"{url} {width}w",
                    }
                )
            metadata[fmt] = entries
            print(f"Wrote {len(entries)} {fmt} variant(s) of {src}")

    return metadata


def _attrs(attributes: dict) -> str:
    return " ".join(f'{k}="{html.escape(str(v), quote=True)}"' for k, v in attributes.items())


def generate_html(metadata: dict, attributes: dict) -> str:
    """
    Build <picture> markup from generate_variants() output.

    The last format is the <img> fallback; every other format becomes a
    <source>. The fallback's src is its smallest variant and its
    width/height are the largest one's.
    """
    formats = list(metadata)
    fallback = metadata[formats[-1]]
    sizes = attributes.get("sizes")

    img_attrs = dict(attributes)
    img_attrs["src"] = fallback[0]["url"]
    img_attrs["width"] = fallback[-1]["width"]
    img_attrs["height"] = fallback[-1]["height"]
    if len(fallback) > 1:
        img_attrs["srcset"] = ", ".join(v["srcset"] for v in fallback)
    else:
        img_attrs.pop("sizes", None)
    img_tag = f"<img {_attrs(img_attrs)}>"

    if len(formats) == 1:
        return img_tag

    sources = []
    for fmt in formats[:-1]:
        variants = metadata[fmt]
        source_attrs = {
            "type": variants[0]["source_type"],
            "srcset": ", ".join(v["srcset"] for v in variants),
        }
        if sizes and len(variants) > 1:
            source_attrs["sizes"] = sizes
        sources.append(f"<source {_attrs(source_attrs)}>")

    return f"<picture>{''.join(sources)}{img_tag}</picture>"


def image_shortcode(src, alt=None, sizes="100vw", *, widths=None, formats=None,
                    url_path=DEFAULT_URL_PATH, output_dir=DEFAULT_OUTPUT_DIR, base_dir=None):
    """
    {{ image("src/assets/images/cat.jpg", "A cat") }}

    Remote images are linked as-is; local ones are resized and transcoded.
    `alt` is required (an empty string is fine for decorative images).
    Relative local paths are taken from `base_dir` (default: cwd).
    """
    if alt is None or isinstance(alt, Undefined):
        raise ValueError(f"Missing `alt` on image from: {src}")

    src = str(src)
    if src.startswith("http://") or src.startswith("https://"):
        return Markup(
            f'<img src="{html.escape(src)}" alt="{html.escape(alt)}" loading="lazy" decoding="async" />'
        )

    if base_dir is not None and not Path(src).is_absolute():
        src = str(Path(base_dir) / src)

    metadata = generate_variants(
        src,
        widths,
        formats,
        url_path=url_path,
        output_dir=output_dir,
    )
    attributes = {
        "alt": alt,
        "sizes": sizes,
        "loading": "lazy",
        "decoding": "async",
    }
    return Markup(generate_html(metadata, attributes))
