"""
Wine list rendering.

Turns an assembled DocumentModel into a standalone HTML page and an A4 PDF
(via WeasyPrint). Artifacts are named ``{date}_{prefix}_{venue}.{html|pdf}``.
"""

import re
from dataclasses import dataclass
from html import escape
from pathlib import Path
from typing import Optional

from winelist.models.schemas import CategoryDefinition, DocumentModel, WineSection
from winelist.utils.logger import get_logger

logger = get_logger(__name__)

PAGE_CSS = "@page { size: A4; margin: 20mm 12mm 18mm 12mm; }"

_UNSAFE_NAME_CHARS = re.compile(r"[^\w\-]+")

STYLE = """
body { font-family: Georgia, 'Times New Roman', serif; color: #2b1d16; margin: 0; }
.cover { text-align: center; page-break-after: always; padding-top: 60mm; }
.cover h1 { font-size: 28pt; letter-spacing: 2px; margin-bottom: 8mm; }
.cover img.logo { max-height: 40mm; }
.cover img.qr { max-height: 30mm; margin-top: 15mm; }
.category { page-break-before: always; }
.category:first-of-type { page-break-before: auto; }
.category h2 { font-size: 20pt; border-bottom: 1px solid #7a1f2b; color: #7a1f2b; }
.category .subtitle { font-style: italic; }
.category .note { font-size: 8pt; color: #6b5b53; }
h3.region { font-size: 14pt; margin: 8mm 0 2mm; text-transform: uppercase; }
h4.zone { font-size: 11pt; margin: 4mm 0 1mm; color: #6b5b53; }
.wine { display: flex; justify-content: space-between; padding: 1mm 0; }
.wine .details { font-size: 8pt; color: #6b5b53; }
.wine .price { white-space: nowrap; font-weight: bold; }
"""


def artifact_basename(day: str, prefix: str, venue_name: Optional[str]) -> str:
    """``{day}_{prefix}_{venue}`` with runs of unsafe characters in the venue replaced by ``_``."""
    venue = _UNSAFE_NAME_CHARS.sub("_", venue_name or "carta_vini")
    return f"{day}_{prefix}_{venue}"


def format_eur(value) -> str:
    """Italian-style euro amount: ``12.5`` -> ``€ 12,50``."""
    if value is None:
        return ""
    whole, cents = f"{float(value):,.2f}".split(".")
    return f"€ {whole.replace(',', '.')},{cents}"


@dataclass
class RenderedArtifacts:
    html_path: Path
    pdf_path: Optional[Path] = None


class WineListRenderer:
    """Renders the wine list document to HTML and PDF files."""

    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)

    # -------------------------------------------------------------------------
    # HTML
    # -------------------------------------------------------------------------

    def _render_cover(self, document: DocumentModel) -> str:
        cover = document.main_cover
        parts = ['<section class="cover">']
        if cover.logo:
            parts.append(f'<img class="logo" src="{escape(cover.logo)}" alt="logo">')
        parts.append(f"<h1>{escape(cover.venue_name or 'Carta dei Vini')}</h1>")
        parts.append(f'<p class="description">{escape(cover.description)}</p>')
        if cover.qr_code:
            parts.append(f'<img class="qr" src="{escape(cover.qr_code)}" alt="QR code">')
        if cover.digital_menu_url:
            url = escape(cover.digital_menu_url)
            parts.append(f'<p class="menu"><a href="{url}">{url}</a></p>')
        parts.append("</section>")
        return "\n".join(parts)

    def _render_wine(self, item: dict) -> str:
        details = [
            item.get(key)
            for key in ("grapes", "production_location", "aging", "abv")
            if item.get(key)
        ]
        producer = f' <span class="producer">{escape(item["producer"])}</span>' if item.get("producer") else ""
        detail_html = f'<div class="details">{escape(" · ".join(details))}</div>' if details else ""
        return (
            '<div class="wine"><div>'
            f'<span class="name">{escape(item.get("name", ""))}</span>{producer}{detail_html}'
            f'</div><span class="price">{escape(format_eur(item.get("price_eur")))}</span></div>'
        )

    def _render_category(self, category: CategoryDefinition, sections: list[WineSection]) -> str:
        parts = [f'<section class="category" id="{escape(category.id)}">']
        if category.icon_path:
            alt = category.icon_alt or f"{category.name} icon"
            parts.append(f'<img class="icon" src="{escape(category.icon_path)}" alt="{escape(alt)}">')
        parts.append(f"<h2>{escape(category.name)}</h2>")
        if category.subtitle:
            parts.append(f'<p class="subtitle">{escape(category.subtitle)}</p>')

        current_region = object()
        for section in sections:
            if section.region != current_region:
                current_region = section.region
                parts.append(f'<h3 class="region">{escape(section.region or "Altre regioni")}</h3>')
            if section.zone:
                parts.append(f'<h4 class="zone">{escape(section.zone)}</h4>')
            parts.extend(self._render_wine(item) for item in section.items)

        if category.note:
            parts.append(f'<p class="note">{escape(category.note)}</p>')
        parts.append("</section>")
        return "\n".join(parts)

    def render_html(self, document: DocumentModel) -> str:
        """Standalone HTML page: cover, then one section per category."""
        sections_by_category: dict[Optional[str], list[WineSection]] = {}
        for section in document.wines:
            sections_by_category.setdefault(section.category, []).append(section)

        body = [self._render_cover(document)]
        # Categories and sections are both built in first-seen category order.
        for category, sections in zip(document.categories, sections_by_category.values()):
            body.append(self._render_category(category, sections))

        title = escape(f"Carta dei Vini - {document.main_cover.venue_name or ''}".strip(" -"))
        return (
            "<!DOCTYPE html>\n"
            '<html lang="it">\n<head>\n<meta charset="UTF-8">\n'
            f"<title>{title}</title>\n<style>{STYLE}</style>\n</head>\n<body>\n"
            + "\n".join(body)
            + "\n</body>\n</html>\n"
        )

    # -------------------------------------------------------------------------
    # Files
    # -------------------------------------------------------------------------

    def write_html(self, document: DocumentModel, basename: str) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / f"{basename}.html"
        path.write_text(self.render_html(document), encoding="utf-8")
        logger.info("Saved HTML wine list", path=str(path))
        return path

    def write_pdf(self, html_path: Path, basename: str) -> Path:
        """Convert the HTML file to an A4 PDF next to it."""
        from weasyprint import CSS, HTML

        pdf_path = self.output_dir / f"{basename}.pdf"
        HTML(filename=str(html_path)).write_pdf(str(pdf_path), stylesheets=[CSS(string=PAGE_CSS)])
        logger.info("Saved PDF wine list", path=str(pdf_path))
        return pdf_path

    def render(self, document: DocumentModel, basename: str, html_only: bool = False) -> RenderedArtifacts:
        html_path = self.write_html(document, basename)
        if html_only:
            return RenderedArtifacts(html_path=html_path)
        return RenderedArtifacts(html_path=html_path, pdf_path=self.write_pdf(html_path, basename))
