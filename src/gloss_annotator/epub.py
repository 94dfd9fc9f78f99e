from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Mapping

logger = logging.getLogger(__name__)


class EPUBParseError(RuntimeError):
    """Raised when an EPUB archive cannot be parsed."""


@dataclass(slots=True)
class EpubChapter:
    """One readable spine document inside an EPUB archive."""

    path: str
    markup: str


def read_epub_chapters(epub_path: Path) -> list[EpubChapter]:
    """Return the readable chapters of an EPUB in spine order."""
    if not epub_path.exists():
        raise EPUBParseError(f"EPUB file not found: {epub_path}")

    try:
        with zipfile.ZipFile(epub_path, "r") as zf:
            opf_path = _locate_opf(zf)
            spine_paths = _spine_items(zf, opf_path)
            if not spine_paths:
                spine_paths = _fallback_text_items(zf)
            chapters: list[EpubChapter] = []
            for rel_path in spine_paths:
                try:
                    raw_html = zf.read(rel_path).decode("utf-8", errors="ignore")
                except KeyError:
                    logger.warning("Spine item %s missing from %s", rel_path, epub_path)
                    continue
                chapters.append(EpubChapter(path=rel_path, markup=raw_html))
            return chapters
    except zipfile.BadZipFile as exc:
        raise EPUBParseError(f"Invalid EPUB archive: {epub_path}") from exc


def write_epub_with_chapters(
    source_path: Path, output_path: Path, replacements: Mapping[str, str]
) -> None:
    """Copy an EPUB, swapping in new markup for the given archive members."""
    if source_path.resolve() == output_path.resolve():
        raise ValueError("Output EPUB must differ from the source EPUB.")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with zipfile.ZipFile(source_path, "r") as src, zipfile.ZipFile(
            output_path, "w", zipfile.ZIP_DEFLATED
        ) as dst:
            for info in src.infolist():
                if info.filename == "mimetype":
                    # The mimetype entry must stay first and uncompressed.
                    dst.writestr(info, src.read(info), compress_type=zipfile.ZIP_STORED)
                elif info.filename in replacements:
                    dst.writestr(info, replacements[info.filename].encode("utf-8"))
                else:
                    dst.writestr(info, src.read(info))
    except zipfile.BadZipFile as exc:
        raise EPUBParseError(f"Invalid EPUB archive: {source_path}") from exc


def _locate_opf(zf: zipfile.ZipFile) -> str:
    try:
        container_xml = zf.read("META-INF/container.xml")
    except KeyError as exc:
        raise EPUBParseError("EPUB missing META-INF/container.xml") from exc
    try:
        root = ET.fromstring(container_xml)
    except ET.ParseError as exc:
        raise EPUBParseError("Unable to parse container.xml") from exc
    rootfile = root.find(".//{*}rootfile")
    if rootfile is None:
        raise EPUBParseError("container.xml missing rootfile element")
    opf_path = rootfile.attrib.get("full-path")
    if not opf_path:
        raise EPUBParseError("rootfile missing full-path attribute")
    return opf_path


def _spine_items(zf: zipfile.ZipFile, opf_path: str) -> list[str]:
    try:
        root = ET.fromstring(zf.read(opf_path))
    except (KeyError, ET.ParseError):
        return []
    manifest: dict[str, tuple[str, str]] = {}
    manifest_el = root.find(".//{*}manifest")
    if manifest_el is not None:
        for item in manifest_el.findall("{*}item"):
            item_id = item.attrib.get("id")
            href = item.attrib.get("href")
            if item_id and href:
                manifest[item_id] = (href, item.attrib.get("media-type", "").lower())

    spine_paths: list[str] = []
    spine_el = root.find(".//{*}spine")
    if spine_el is None:
        return spine_paths
    for itemref in spine_el.findall("{*}itemref"):
        entry = manifest.get(itemref.attrib.get("idref", ""))
        if entry is None or not _is_markup_media(entry[1]):
            continue
        spine_paths.append(_resolve_href(opf_path, entry[0]))
    return spine_paths


def _fallback_text_items(zf: zipfile.ZipFile) -> list[str]:
    markup_suffixes = {".xhtml", ".html", ".htm"}
    return [
        name
        for name in zf.namelist()
        if PurePosixPath(name).suffix.lower() in markup_suffixes
    ]


def _resolve_href(opf_path: str, href: str) -> str:
    base = PurePosixPath(opf_path).parent
    if str(base) in ("", "."):
        return PurePosixPath(href).as_posix()
    return (base / PurePosixPath(href)).as_posix()


def _is_markup_media(media_type: str) -> bool:
    return media_type.startswith(("application/xhtml", "text/html"))
