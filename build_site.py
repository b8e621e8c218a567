#!/usr/bin/env python3
import fnmatch
import json
import os
import re
import shutil
import sys
from datetime import date, datetime, timezone
from functools import partial
from pathlib import Path

import yaml           # pip install pyyaml
from bs4 import BeautifulSoup  # pip install beautifulsoup4
from jinja2 import Environment, FileSystemLoader, TemplateError, Undefined, pass_context  # pip install jinja2
from markupsafe import Markup

import site_filters
import site_images
from site_collections import ContentItem, next_item, posts_collection, previous_item, tag_list

DEFAULT_CONFIG_NAME = "config.yml"

# "---\n<yaml>\n---\n" at the very top of a file
FRONT_MATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.S)

DATA_SUFFIXES = (".yml", ".yaml", ".json")
JS_SCRIPT_TYPES = ("", "text/javascript", "application/javascript", "module")


# -----------------------
# Config
# -----------------------

def get_config_path_from_args(argv) -> Path:
    """
    Determine which config file to use.

    - If a path is passed as first argument, use that.
    - Otherwise, config.yml in the current directory.
    """
    if argv:
        return Path(argv[0]).resolve()
    return (Path.cwd() / DEFAULT_CONFIG_NAME).resolve()


def _as_list(value, default):
    # a single value or a list of values
    if value is None:
        return list(default)
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(x) for x in value]
    return list(default)


def load_config(config_path: Path) -> dict:
    """Load YAML config and apply defaults."""
    if not config_path.exists():
        print(f"Config file not found: {config_path}", file=sys.stderr)
        sys.exit(1)

    data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}

    input_dir = data.get("input_dir", "src")
    cfg = {
        "root": config_path.resolve().parent,
        "site_title": data.get("site_title", "Blog"),
        "site_url": data.get("site_url", ""),
        "input_dir": input_dir,
        "includes_dir": data.get("includes_dir", "_includes"),  # relative to input_dir
        "data_dir": data.get("data_dir", "_data"),              # relative to input_dir
        "output_dir": data.get("output_dir", "_site"),
        "posts_glob": data.get("posts_glob", "blog/posts/*.md"),  # relative to input_dir
        "template_formats": _as_list(data.get("template_formats"), ["md", "njk", "html"]),
        "passthrough": _as_list(
            data.get("passthrough"),
            [
                f"{input_dir}/assets/images",
                f"{input_dir}/assets/css",
                f"{input_dir}/assets/js",
                f"{input_dir}/robots.txt",
                f"{input_dir}/favicon.ico",
            ],
        ),
        # Images
        "image_widths": [int(w) for w in data.get("image_widths", site_images.DEFAULT_WIDTHS)],
        "image_formats": _as_list(data.get("image_formats"), site_images.DEFAULT_FORMATS),
        "image_url_path": data.get("image_url_path", site_images.DEFAULT_URL_PATH),
        "image_output_dir": data.get("image_output_dir", site_images.DEFAULT_OUTPUT_DIR),
        # SITE_ENV wins over the file
        "environment": os.environ.get("SITE_ENV") or data.get("environment", "development"),
    }
    return cfg


def site_path(cfg: dict, *parts) -> Path:
    return (cfg["root"] / Path(*parts)).resolve()


def input_root(cfg: dict) -> Path:
    return site_path(cfg, cfg["input_dir"])


# -----------------------
# Content discovery
# -----------------------

def parse_front_matter(text: str, source="<string>"):
    """
    Split a document into (front matter dict, body).

    Documents without front matter get an empty dict and the whole text.
    """
    m = FRONT_MATTER_RE.match(text)
    if not m:
        return {}, text

    try:
        data = yaml.safe_load(m.group(1)) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid front matter in {source}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Front matter in {source} must be a mapping")

    return data, text[m.end():]


def load_global_data(data_dir: Path) -> dict:
    """
    Load every YAML/JSON file in the data directory, keyed by file stem:
    _data/site.yml -> {"site": {...}}
    """
    global_data = {}
    if not data_dir.is_dir():
        return global_data

    for path in sorted(data_dir.iterdir()):
        if path.suffix not in DATA_SUFFIXES:
            continue
        text = path.read_text(encoding="utf-8")
        try:
            if path.suffix == ".json":
                global_data[path.stem] = json.loads(text)
            else:
                global_data[path.stem] = yaml.safe_load(text)
        except (ValueError, yaml.YAMLError) as e:
            raise ValueError(f"Could not load data file {path}: {e}") from e
    return global_data


def normalize_date(value, source="<string>") -> datetime:
    """Front matter date (date, datetime or ISO string) as an aware UTC datetime."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip())
        except ValueError as e:
            raise ValueError(f"Invalid date {value!r} in {source}") from e

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    raise ValueError(f"Invalid date {value!r} in {source}")


def default_url(rel_path: Path) -> str:
    """
    src/index.md         -> /
    src/about.md         -> /about/
    src/blog/index.njk   -> /blog/
    src/blog/posts/a.md  -> /blog/posts/a/
    """
    parent = rel_path.parent.as_posix()
    parts = [] if parent == "." else [parent]
    if rel_path.stem != "index":
        parts.append(rel_path.stem)
    if not parts:
        return "/"
    return "/" + "/".join(parts) + "/"


def url_to_output_path(url: str, output_dir: Path) -> Path:
    rel = url.lstrip("/")
    if rel == "" or rel.endswith("/"):
        rel += "index.html"
    return output_dir / rel


def output_path_to_url(url: str) -> str:
    """Clean URL for a permalink: '/tags/go/index.html' -> '/tags/go/'."""
    if not url.startswith("/"):
        url = "/" + url
    if url.endswith("/index.html"):
        return url[: -len("index.html")]
    return url


def _is_under(path: Path, roots) -> bool:
    return any(path == root or root in path.parents for root in roots)


def discover_content(cfg: dict) -> list:
    """
    Walk the input directory and return one ContentItem per template,
    sorted by (date, input path).
    """
    root = cfg["root"].resolve()
    in_dir = input_root(cfg)
    if not in_dir.is_dir():
        print(f"Input directory not found: {in_dir}", file=sys.stderr)
        return []

    skip = [in_dir / cfg["includes_dir"], in_dir / cfg["data_dir"]]
    skip += [site_path(cfg, p) for p in cfg["passthrough"]]
    skip.append(site_path(cfg, cfg["output_dir"]))
    suffixes = {f".{fmt}" for fmt in cfg["template_formats"]}

    items = []
    for path in sorted(in_dir.rglob("*")):
        if not path.is_file() or path.suffix not in suffixes:
            continue
        if _is_under(path, skip):
            continue

        source = path.relative_to(root).as_posix()
        data, body = parse_front_matter(path.read_text(encoding="utf-8"), source)

        if "date" in data:
            item_date = normalize_date(data["date"], source)
        else:
            item_date = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)

        items.append(
            ContentItem(
                input_path=f"./{source}",
                data=data,
                content=body,
                date=item_date,
            )
        )

    items.sort(key=lambda x: (x.date, x.input_path))
    return items


def relative_to_input(item: ContentItem, cfg: dict) -> Path:
    return Path(item.input_path[2:]).relative_to(cfg["input_dir"])


def glob_match(rel_path: str, pattern: str) -> bool:
    """
    Path glob where '*' stays inside one segment and '**' spans any number:

      blog/posts/*.md   matches blog/posts/a.md, not blog/posts/drafts/a.md
      blog/**/*.md      matches both
    """
    return _match_parts(rel_path.split("/"), pattern.split("/"))


def _match_parts(parts, patterns) -> bool:
    if not patterns:
        return not parts
    if patterns[0] == "**":
        return any(_match_parts(parts[i:], patterns[1:]) for i in range(len(parts) + 1))
    if not parts:
        return False
    return fnmatch.fnmatchcase(parts[0], patterns[0]) and _match_parts(parts[1:], patterns[1:])


def is_paginated(item: ContentItem) -> bool:
    return isinstance((item.data or {}).get("pagination"), dict)


def excluded_from_collections(item: ContentItem) -> bool:
    data = item.data or {}
    if data.get("exclude_from_collections"):
        return True
    return is_paginated(item)


def build_collections(items, cfg: dict) -> dict:
    """
    Named collections available to every template:

      all      every item, oldest first
      <tag>    every item carrying that tag, oldest first
      posts    published posts matching posts_glob, newest first
      tagList  sorted user-facing tags
    """
    members = [i for i in items if not excluded_from_collections(i)]

    collections = {"all": list(members)}
    for item in members:
        for tag in item.tags:
            # "all" already holds every item
            if tag == "all":
                continue
            collections.setdefault(tag, []).append(item)

    post_items = [
        i for i in members
        if glob_match(relative_to_input(i, cfg).as_posix(), cfg["posts_glob"])
    ]
    collections["posts"] = posts_collection(post_items)
    collections["tagList"] = tag_list(members)
    return collections


# -----------------------
# Templates
# -----------------------

def _resolve_collection(context, collection):
    if isinstance(collection, Undefined):
        return None
    if isinstance(collection, str):
        return (context.get("collections") or {}).get(collection)
    return collection


def _resolve_page(context, page):
    if page is None:
        page = context.get("page")
    if isinstance(page, Undefined):
        return None
    return page


@pass_context
def get_previous_collection_item(context, collection, page=None):
    """{% set prev = collections.posts | get_previous_collection_item(page) %}"""
    return previous_item(_resolve_collection(context, collection), _resolve_page(context, page))


@pass_context
def get_next_collection_item(context, collection, page=None):
    return next_item(_resolve_collection(context, collection), _resolve_page(context, page))


def create_environment(cfg: dict) -> Environment:
    in_dir = input_root(cfg)
    env = Environment(
        loader=FileSystemLoader([str(in_dir / cfg["includes_dir"]), str(in_dir)]),
        autoescape=True,
    )

    env.filters["readable_date"] = site_filters.readable_date
    env.filters["slugify"] = site_filters.slugify_filter
    env.filters["get_previous_collection_item"] = get_previous_collection_item
    env.filters["get_next_collection_item"] = get_next_collection_item

    env.globals["image"] = partial(
        site_images.image_shortcode,
        widths=cfg["image_widths"],
        formats=cfg["image_formats"],
        url_path=cfg["image_url_path"],
        output_dir=site_path(cfg, cfg["image_output_dir"]),
        base_dir=cfg["root"],
    )
    env.globals["callout"] = site_filters.callout
    env.globals["year"] = site_filters.year
    env.globals["build_time"] = site_filters.build_time
    return env


def page_context(global_data: dict, collections: dict, item: ContentItem) -> dict:
    context = dict(global_data)
    context.update(item.data or {})
    context["collections"] = collections
    context["page"] = item
    return context


def resolve_permalink(env: Environment, item: ContentItem, context: dict, cfg: dict):
    """
    Work out (url, output_path) for an item. `permalink: false` pages
    get (None, None) and are never written.
    """
    permalink = (item.data or {}).get("permalink")
    if permalink is False:
        return None, None

    if permalink:
        rendered = env.from_string(str(permalink)).render(context).strip()
        if not rendered.startswith("/"):
            rendered = "/" + rendered
        url = output_path_to_url(rendered)
        out = url_to_output_path(rendered, site_path(cfg, cfg["output_dir"]))
    else:
        url = default_url(relative_to_input(item, cfg))
        out = url_to_output_path(url, site_path(cfg, cfg["output_dir"]))
    return url, str(out)


def find_layout(cfg: dict, name: str) -> Path:
    includes = input_root(cfg) / cfg["includes_dir"]
    for candidate in (name, f"{name}.njk", f"{name}.html"):
        path = includes / candidate
        if path.is_file():
            return path
    raise ValueError(f"Layout not found: {name} (looked in {includes})")


def apply_layouts(env: Environment, layout, html: str, context: dict, cfg: dict) -> str:
    """Wrap rendered page content in its layout chain, innermost first."""
    seen = set()
    while layout:
        if layout in seen:
            raise ValueError(f"Layout loop detected at {layout}")
        seen.add(layout)

        path = find_layout(cfg, layout)
        layout_data, body = parse_front_matter(path.read_text(encoding="utf-8"), str(path))

        # page values win over layout defaults
        layout_context = dict(layout_data)
        layout_context.update(context)
        layout_context["content"] = Markup(html)

        html = env.from_string(body).render(layout_context)
        layout = layout_data.get("layout")
    return html


def render_item(env: Environment, item: ContentItem, context: dict, cfg: dict) -> str:
    """Template body -> (markdown) -> layouts."""
    html = env.from_string(item.content).render(context)
    if item.input_path.endswith(".md"):
        html = site_filters.render_markdown(html)
    return apply_layouts(env, (item.data or {}).get("layout"), html, context, cfg)


def lookup(context: dict, dotted: str):
    """Resolve 'collections.tagList' against the template context."""
    value = context
    for key in dotted.split("."):
        if isinstance(value, dict):
            value = value.get(key)
        else:
            value = getattr(value, key, None)
        if value is None:
            return None
    return value


def paginate(item: ContentItem, context: dict):
    """
    Expand a paginated template into (page item, page context) pairs.

      pagination:
        data: collections.tagList
        size: 1
        alias: tag
    """
    settings = item.data["pagination"]
    if not item.data.get("permalink"):
        raise ValueError(f"Paginated template {item.input_path} needs a permalink")

    # dicts paginate over their keys
    source = list(lookup(context, str(settings.get("data", ""))) or [])

    size = max(1, int(settings.get("size", 1)))
    alias = settings.get("alias")
    chunks = [source[i:i + size] for i in range(0, len(source), size)]

    for number, chunk in enumerate(chunks):
        page = ContentItem(
            input_path=item.input_path,
            data=item.data,
            content=item.content,
            date=item.date,
        )
        page_ctx = dict(context)
        page_ctx["page"] = page
        page_ctx["pagination"] = {
            "items": chunk,
            "page_number": number,
            "total_pages": len(chunks),
        }
        if alias:
            page_ctx[alias] = chunk[0] if size == 1 else chunk
        yield page, page_ctx


# -----------------------
# Output
# -----------------------

def minify_html(content: str) -> str:
    """Collapse whitespace, drop comments, minify inline CSS and JS."""
    import htmlmin  # pip install htmlmin
    import rcssmin  # pip install rcssmin
    import rjsmin   # pip install rjsmin

    soup = BeautifulSoup(content, "html.parser")
    for style in soup.find_all("style"):
        if style.string:
            style.string = rcssmin.cssmin(style.string)
    for script in soup.find_all("script"):
        if script.get("src") or script.get("type", "") not in JS_SCRIPT_TYPES:
            continue
        if script.string:
            script.string = rjsmin.jsmin(script.string)

    return htmlmin.minify(
        str(soup),
        remove_comments=True,
        remove_empty_space=True,
        reduce_boolean_attributes=True,
        keep_pre=True,
    )


def transform_output(content: str, output_path: str, cfg: dict) -> str:
    if cfg["environment"] == "production" and output_path and output_path.endswith(".html"):
        return minify_html(content)
    return content


def write_page(content: str, output_path: str, cfg: dict):
    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(transform_output(content, output_path, cfg), encoding="utf-8")
    print(f"Wrote {out}")


def copy_passthrough(cfg: dict, output_dir: Path):
    """
    Copy static files verbatim. Paths are relative to the project root;
    the input_dir prefix is dropped in the output (src/assets/css ->
    _site/assets/css).
    """
    for entry in cfg["passthrough"]:
        src = site_path(cfg, entry)
        if not src.exists():
            print(f"WARNING: passthrough path not found: {src}", file=sys.stderr)
            continue

        rel = Path(entry)
        if rel.parts and rel.parts[0] == cfg["input_dir"]:
            rel = Path(*rel.parts[1:])
        dest = output_dir / rel

        if src.is_dir():
            shutil.copytree(src, dest, dirs_exist_ok=True)
        else:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dest)
        print(f"Copied {src} to {dest}")


# -----------------------
# Build
# -----------------------

def build(cfg: dict) -> list:
    """Run one full build. Returns the output paths written."""
    output_dir = site_path(cfg, cfg["output_dir"])
    output_dir.mkdir(parents=True, exist_ok=True)

    items = discover_content(cfg)
    if not items:
        raise ValueError(f"No content found in {input_root(cfg)}")

    global_data = {"site": {"title": cfg["site_title"], "url": cfg["site_url"]}}
    global_data.update(load_global_data(input_root(cfg) / cfg["data_dir"]))

    env = create_environment(cfg)

    # URLs first: collections are used for links on every page
    for item in items:
        if not is_paginated(item):
            context = page_context(global_data, {}, item)
            item.url, item.output_path = resolve_permalink(env, item, context, cfg)

    collections = build_collections(items, cfg)

    pages = []
    for item in items:
        context = page_context(global_data, collections, item)
        if is_paginated(item):
            for page, page_ctx in paginate(item, context):
                page.url, page.output_path = resolve_permalink(env, page, page_ctx, cfg)
                pages.append((page, page_ctx))
        elif item.output_path:
            pages.append((item, context))

    written = []
    seen = {}
    for page, context in pages:
        if page.output_path in seen:
            raise ValueError(
                f"Output conflict: {page.input_path} and {seen[page.output_path]} "
                f"both write {page.output_path}"
            )
        seen[page.output_path] = page.input_path

        write_page(render_item(env, page, context, cfg), page.output_path, cfg)
        written.append(page.output_path)

    copy_passthrough(cfg, output_dir)
    return written


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    cfg = load_config(get_config_path_from_args(argv))

    try:
        written = build(cfg)
    except (ValueError, TypeError, OSError, TemplateError) as e:
        print(f"Build failed: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Built {len(written)} page(s) into {site_path(cfg, cfg['output_dir'])}")


if __name__ == "__main__":
    main()
