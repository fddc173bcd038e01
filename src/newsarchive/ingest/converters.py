"""Document converters — one class per file type.

Each converter turns raw document bytes into plain text and, where the
format allows it, HTML markup.
"""

from __future__ import annotations

import base64
import html
import io
from collections.abc import Mapping
from pathlib import PurePosixPath
from typing import Protocol

from newsarchive.models import Conversion

W = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
A = "http://schemas.openxmlformats.org/drawingml/2006/main"
R = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
NS = {"w": W, "a": A, "r": R}

_PLAIN_STYLES = {"Normal", "Default Paragraph Font", "Body Text", "No Spacing"}


class DocumentConverter(Protocol):
    """Turns document bytes into text and optional markup."""

    def extract_text(self, data: bytes) -> str:
        ...

    def extract_markup(
        self,
        data: bytes,
        *,
        style_map: Mapping[str, str] | None = None,
        inline_images: bool = True,
    ) -> Conversion:
        ...


# ---------------------------------------------------------------------------
# DOCX
# ---------------------------------------------------------------------------

def _parse_style_target(target: str) -> tuple[str, str | None]:
    """'h2.subtitle' -> ('h2', 'subtitle')."""
    tag, _, cls = target.partition(".")
    return tag or "p", cls or None


def _is_on(rpr, name: str) -> bool:
    if rpr is None:
        return False
    el = rpr.find(f"w:{name}", NS)
    if el is None:
        return False
    return el.get(f"{{{W}}}val", "true").lower() not in ("0", "false", "off")


class DocxConverter:
    """python-docx / lxml based .docx converter.

    The body XML is walked directly so paragraphs and tables come out in
    document order (python-docx iteration is paragraph-only or table-only).
    """

    def _open(self, data: bytes):
        from docx import Document as DocxDocument

        return DocxDocument(io.BytesIO(data))

    def extract_text(self, data: bytes) -> str:
        return self._text(self._open(data))

    def _text(self, doc) -> str:
        from lxml import etree

        parts: list[str] = []
        for child in doc.element.body:
            tag = etree.QName(child).localname
            if tag == "p":
                parts.append(self._paragraph_text(child))
            elif tag == "tbl":
                for row in child.findall("w:tr", NS):
                    cells = row.findall("w:tc", NS)
                    parts.append(" | ".join(self._cell_text(c) for c in cells))
        return "\n".join(parts)

    @staticmethod
    def _paragraph_text(p) -> str:
        out: list[str] = []
        for run in p.iter(f"{{{W}}}r"):
            for node in run:
                local = node.tag.rpartition("}")[2]
                if local == "t":
                    out.append(node.text or "")
                elif local == "tab":
                    out.append("\t")
                elif local in ("br", "cr"):
                    out.append("\n")
        return "".join(out)

    def _cell_text(self, tc) -> str:
        return " ".join(
            t for t in (self._paragraph_text(p) for p in tc.iter(f"{{{W}}}p")) if t
        )

    def extract_markup(
        self,
        data: bytes,
        *,
        style_map: Mapping[str, str] | None = None,
        inline_images: bool = True,
    ) -> Conversion:
        from lxml import etree

        doc = self._open(data)
        style_map = dict(style_map or {})
        style_names = {s.style_id: s.name for s in doc.styles}
        warnings: list[str] = []
        blocks: list[str] = []
        list_items: list[str] = []

        def _flush_list() -> None:
            if list_items:
                blocks.append("<ul>" + "".join(list_items) + "</ul>")
                list_items.clear()

        for child in doc.element.body:
            tag = etree.QName(child).localname
            if tag == "p":
                style_id = child.find("w:pPr/w:pStyle", NS)
                style = "Normal"
                if style_id is not None:
                    style = style_names.get(style_id.get(f"{{{W}}}val"), "Normal")
                inner = self._runs_html(child, doc.part, inline_images, warnings)
                is_list = child.find("w:pPr/w:numPr", NS) is not None or style.startswith("List")
                if is_list and style not in style_map:
                    list_items.append(f"<li>{inner}</li>")
                    continue
                if style in style_map and _parse_style_target(style_map[style])[0] == "li":
                    list_items.append(self._block(style, inner, style_map, warnings))
                    continue
                _flush_list()
                blocks.append(self._block(style, inner, style_map, warnings))
            elif tag == "tbl":
                _flush_list()
                blocks.append(self._table_html(child))
        _flush_list()

        return Conversion(
            text=self._text(doc),
            html="\n".join(blocks),
            warnings=warnings,
        )

    @staticmethod
    def _block(style: str, inner: str, style_map: dict, warnings: list[str]) -> str:
        if style in style_map:
            tag, cls = _parse_style_target(style_map[style])
        else:
            if style not in _PLAIN_STYLES:
                message = f"Unrecognised paragraph style: '{style}'"
                if message not in warnings:
                    warnings.append(message)
            tag, cls = "p", None
        attrs = f' class="{cls}"' if cls else ""
        return f"<{tag}{attrs}>{inner}</{tag}>"

    def _runs_html(self, p, part, inline_images: bool, warnings: list[str]) -> str:
        pieces: list[str] = []
        for run in p.iter(f"{{{W}}}r"):
            rpr = run.find("w:rPr", NS)
            text_parts: list[str] = []
            for node in run:
                local = node.tag.rpartition("}")[2]
                if local == "t":
                    text_parts.append(html.escape(node.text or "", quote=False))
                elif local == "tab":
                    text_parts.append("\t")
                elif local == "br":
                    text_parts.append("<br>")
                elif local == "drawing":
                    text_parts.extend(self._images(node, part, inline_images, warnings))
            text = "".join(text_parts)
            if not text:
                continue
            if _is_on(rpr, "b"):
                text = f"<strong>{text}</strong>"
            if _is_on(rpr, "i"):
                text = f"<em>{text}</em>"
            pieces.append(text)
        return "".join(pieces)

    @staticmethod
    def _images(drawing, part, inline_images: bool, warnings: list[str]) -> list[str]:
        out: list[str] = []
        for blip in drawing.iter(f"{{{A}}}blip"):
            rid = blip.get(f"{{{R}}}embed")
            image_part = part.related_parts.get(rid) if rid else None
            if image_part is None:
                warnings.append(f"Image relationship not found: {rid}")
                continue
            if not inline_images:
                warnings.append("Image omitted (inlining disabled)")
                continue
            encoded = base64.b64encode(image_part.blob).decode("ascii")
            out.append(f'<img src="data:{image_part.content_type};base64,{encoded}" alt="">')
        return out

    def _table_html(self, tbl) -> str:
        rows: list[str] = []
        for row in tbl.findall("w:tr", NS):
            cells = [
                "<td>" + html.escape(self._cell_text(c), quote=False) + "</td>"
                for c in row.findall("w:tc", NS)
            ]
            rows.append("<tr>" + "".join(cells) + "</tr>")
        return "<table>" + "".join(rows) + "</table>"


# ---------------------------------------------------------------------------
# Plain text (.txt, .md)
# ---------------------------------------------------------------------------

class PlainTextConverter:
    """Plain text has no markup; ``html`` stays None."""

    encoding = "utf-8"

    def extract_text(self, data: bytes) -> str:
        return data.decode(self.encoding, errors="replace")

    def extract_markup(
        self,
        data: bytes,
        *,
        style_map: Mapping[str, str] | None = None,
        inline_images: bool = True,
    ) -> Conversion:
        return Conversion(text=self.extract_text(data))


# ---------------------------------------------------------------------------
# Dispatch table
# ---------------------------------------------------------------------------

CONVERTERS: dict[str, DocumentConverter] = {
    ".docx": DocxConverter(),
    ".txt": PlainTextConverter(),
    ".md": PlainTextConverter(),
}


def get_converter(identifier: str) -> DocumentConverter | None:
    """Look up the converter for an identifier, or None if unsupported."""
    return CONVERTERS.get(PurePosixPath(identifier).suffix.lower())


def convert(
    converter: DocumentConverter,
    data: bytes,
    *,
    markup: bool = True,
    style_map: Mapping[str, str] | None = None,
    inline_images: bool = True,
) -> Conversion:
    """Text only, or text plus markup, depending on *markup*."""
    if markup:
        return converter.extract_markup(data, style_map=style_map, inline_images=inline_images)
    return Conversion(text=converter.extract_text(data))
