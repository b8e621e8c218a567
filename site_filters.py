"""Template filters, shortcodes and the markdown renderer."""
from datetime import date, datetime, timezone

import markdown       # pip install markdown
from bs4 import BeautifulSoup  # pip install beautifulsoup4
from markdown.extensions.toc import TocExtension
from markupsafe import Markup
from slugify import slugify  # pip install python-slugify

CALLOUT_STYLES = {
    "info": "background: #e6f3ff; border-left: 4px solid #0066cc; color: #003d7a;",
    "warning": "background: #fff3cd; border-left: 4px solid #ffc107; color: #856404;",
    "success": "background: #d1eddd; border-left: 4px solid #28a745; color: #155724;",
    "error": "background: #f8d7da; border-left: 4px solid #dc3545; color: #721c24;",
}


# -----------------------
# Dates
# -----------------------

def _as_utc(value) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    raise TypeError(f"Expected a date or datetime, got {type(value).__name__}")


def readable_date(value) -> str:
    """Format a date like '05 Mar 2024' (UTC)."""
    return _as_utc(value).strftime("%d %b %Y")


def slugify_filter(value) -> str:
    return slugify(str(value), lowercase=True)


# -----------------------
# Shortcodes
# -----------------------

def callout(kind="info", caller=None):
    """
    Paired shortcode used as a Jinja call block:

      {% call callout("warning") %}Careful!{% endcall %}

    Unknown types fall back to the info colours but keep their own class.
    """
    content = caller() if caller is not None else ""
    style = CALLOUT_STYLES.get(kind, CALLOUT_STYLES["info"])
    return Markup(
        f'<div class="callout callout--{Markup.escape(kind)}" '
        f'style="{style} padding: 1rem; margin: 1rem 0;" role="note">\n'
        f'      <div class="callout__content">{content}</div>\n'
        f"    </div>"
    )


def year() -> str:
    return str(datetime.now().year)


def build_time() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


# -----------------------
# Markdown
# -----------------------

def slugify_heading(value: str, separator: str) -> str:
    return slugify(value, separator=separator, lowercase=True)


def _markdown_extensions():
    return [
        "extra",
        "nl2br",
        "smarty",
        "codehilite",
        TocExtension(
            permalink="#",
            permalink_class="header-anchor",
            slugify=slugify_heading,
            toc_depth="1-4",
        ),
    ]


def render_markdown(text: str) -> str:
    """
    Convert Markdown to HTML.

    Raw HTML passes through; newlines become <br>; quotes and dashes are
    typographic; fenced code is highlighted with Pygments. h1-h4 get an id
    and a trailing '#' permalink that screen readers skip.
    """
    raw_html = markdown.markdown(text, extensions=_markdown_extensions())
    soup = BeautifulSoup(raw_html, "html.parser")
    deep_headings = soup.find_all(["h5", "h6"])
    anchors = soup.find_all("a", class_="header-anchor")
    if not anchors and not deep_headings:
        return raw_html

    # anchors stop at h4
    for heading in deep_headings:
        for a in heading.find_all("a", class_="header-anchor"):
            a.decompose()
        if "id" in heading.attrs:
            del heading["id"]

    for a in soup.find_all("a", class_="header-anchor"):
        a["aria-hidden"] = "true"
        if "title" in a.attrs:
            del a["title"]
    return str(soup)
