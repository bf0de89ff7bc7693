"""
Static HTML gallery for image search results.
"""

import html
import os
import tempfile
import webbrowser
from pathlib import Path
from typing import List, Optional, Sequence

from .logging_setup import get_logger
from .metadata_scanner import ImageRecord

logger = get_logger(__name__)

_PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>{title}</title>
<style>
body {{ font-family: sans-serif; background: #111; color: #eee; margin: 1em; }}
h1 {{ font-size: 1.4em; }}
.grid {{ display: flex; flex-wrap: wrap; gap: 12px; }}
figure {{ width: 260px; margin: 0; background: #222; padding: 6px; border-radius: 4px; }}
figure img {{ width: 100%; height: 200px; object-fit: cover; }}
figcaption {{ font-size: 0.8em; word-wrap: break-word; }}
.keywords {{ color: #9cf; }}
.people {{ color: #fc9; }}
</style>
</head>
<body>
<h1>{title}</h1>
<p>{count} images</p>
<div class="grid">
{items}
</div>
</body>
</html>
"""

_ITEM_TEMPLATE = """<figure>
<a href="{uri}" target="_blank"><img src="{uri}" alt="{alt}" loading="lazy"></a>
<figcaption>
<div>{caption}</div>
<div class="keywords">{keywords}</div>
<div class="people">{people}</div>
</figcaption>
</figure>"""


def _render_item(record: ImageRecord) -> str:
    description = record.description or {}
    caption = description.get("short_description") or os.path.basename(record.path)
    return _ITEM_TEMPLATE.format(
        uri=html.escape(Path(record.path).resolve().as_uri(), quote=True),
        alt=html.escape(os.path.basename(record.path), quote=True),
        caption=html.escape(str(caption)),
        keywords=html.escape(", ".join(record.keywords)),
        people=html.escape(", ".join(record.people))
    )


def render_gallery_html(records: Sequence[ImageRecord], title: str = "Images") -> str:
    """HTML page showing the records as a thumbnail grid."""
    items: List[str] = [_render_item(record) for record in records]
    return _PAGE_TEMPLATE.format(
        title=html.escape(title),
        count=len(records),
        items="\n".join(items)
    )


def write_gallery(records: Sequence[ImageRecord], title: str = "Images",
                  output_path: Optional[str] = None) -> str:
    """
    Write the gallery page to disk.

    Args:
        records: Images to show
        title: Page title
        output_path: Target file; a temporary file when omitted

    Returns:
        Path of the written file
    """
    if output_path is None:
        fd, output_path = tempfile.mkstemp(prefix="lmstudio_ai_gallery_", suffix=".html")
        os.close(fd)

    with open(output_path, "w", encoding="utf-8") as f:
        f.write(render_gallery_html(records, title))

    logger.info(f"Gallery with {len(records)} images written to {output_path}")
    return output_path


def show_gallery(records: Sequence[ImageRecord], title: str = "Images",
                 output_path: Optional[str] = None, open_browser: bool = True) -> str:
    """Write the gallery and open it in the default web browser."""
    path = write_gallery(records, title, output_path)
    if open_browser:
        if not webbrowser.open(Path(path).resolve().as_uri()):
            logger.warning(f"Could not open a web browser, gallery is at {path}")
    return path
