from __future__ import annotations

import json
import zipfile
from html import escape
from pathlib import Path
from typing import Any, Mapping

CONTAINER_XML = """<?xml version="1.0"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

STYLESHEET = "ruby rt { font-size: 0.6em; }\n"


def chapter_xhtml(*paragraphs: str) -> str:
    """Wrap plain paragraphs in a minimal XHTML chapter document."""
    body = "".join(f"<p>{escape(text, quote=False)}</p>" for text in paragraphs)
    return (
        "<html xmlns='http://www.w3.org/1999/xhtml'><head><title>Chapter</title></head>"
        f"<body>{body}</body></html>"
    )


def write_minimal_epub(
    path: Path, chapters: list[str], include_spine: bool = True
) -> None:
    """Create a minimal EPUB with the given XHTML chapters and one stylesheet."""
    manifest_items = [
        '<item id="css" href="style.css" media-type="text/css"/>',
    ]
    spine_items = []
    chapter_files = []
    for idx, chapter in enumerate(chapters, start=1):
        href = f"text/chapter{idx}.xhtml"
        manifest_items.append(
            f'<item id="chap{idx}" href="{href}" media-type="application/xhtml+xml"/>'
        )
        spine_items.append(f'<itemref idref="chap{idx}"/>')
        chapter_files.append((f"OEBPS/{href}", chapter))
    spine_block = (
        "<spine>" + "".join(spine_items) + "</spine>" if include_spine else "<spine/>"
    )
    opf = f"""<?xml version="1.0" encoding="utf-8"?>
<package version="3.0" xmlns="http://www.idpf.org/2007/opf">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
    <dc:title>Test</dc:title>
  </metadata>
  <manifest>
    {''.join(manifest_items)}
  </manifest>
  {spine_block}
</package>
"""
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr(
            "mimetype", "application/epub+zip", compress_type=zipfile.ZIP_STORED
        )
        zf.writestr("META-INF/container.xml", CONTAINER_XML)
        zf.writestr("OEBPS/content.opf", opf)
        zf.writestr("OEBPS/style.css", STYLESHEET)
        for file_path, body in chapter_files:
            zf.writestr(file_path, body)


def write_static_responses(path: Path, responses: Mapping[str, Mapping[str, Any]]) -> Path:
    """Write a canned-responses file for the static provider."""
    path.write_text(json.dumps(responses, ensure_ascii=False), encoding="utf-8")
    return path
