from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from io import BytesIO
from typing import Dict, Iterable, List, Sequence, Tuple

from pypdf import PageObject, PdfReader, PdfWriter, Transformation
from reportlab.lib.colors import Color
from reportlab.lib.pagesizes import letter
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas

from signdesk.models.signing import StampOptions
from signdesk.services.layout import BlockLayout, compute_block_layout

logger = logging.getLogger(__name__)

STAMP_FONT = "Helvetica-Bold"
BACKGROUND = Color(1, 1, 1)
BACKGROUND_OPACITY = 0.85
ACCENT = Color(1, 0, 0)
TEXT_RISE = 2

LEDGER_KEY = "/SignStampLedger"


@dataclass
class StampLedger:
    """Signers stamped so far and the height already used at each corner.

    Stored as JSON in the document information dictionary so a later stamp
    can append its block beyond the earlier ones.
    """

    signers: List[str] = field(default_factory=list)
    offsets: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_metadata(cls, metadata) -> "StampLedger":
        raw = metadata.get(LEDGER_KEY) if metadata else None
        if not raw:
            return cls()
        try:
            data = json.loads(str(raw))
            signers = [str(name) for name in data.get("signers", [])]
            offsets = {str(k): float(v) for k, v in data.get("offsets", {}).items()}
        except (ValueError, TypeError, AttributeError):
            logger.warning("Ignoring unreadable stamp ledger")
            return cls()
        return cls(signers=signers, offsets=offsets)

    def to_json(self) -> str:
        return json.dumps({"signers": self.signers, "offsets": self.offsets}, ensure_ascii=False)


def read_stamp_ledger(document_bytes: bytes) -> StampLedger:
    reader = PdfReader(BytesIO(document_bytes))
    return StampLedger.from_metadata(reader.metadata)


def clean_signer_names(signer_names: Iterable[str] | str | None) -> List[str]:
    if signer_names is None:
        return []
    if isinstance(signer_names, str):
        signer_names = [signer_names]
    return [str(name).strip() for name in signer_names if str(name or "").strip()]


def build_block_lines(signer_names: Sequence[str], options: StampOptions) -> List[str]:
    """Header lines first, then one ``Signed by`` line per signer in the given order."""
    lines = [
        f"Date/Time: {options.date_time_text}",
        f"Certificate: {options.certificate_text}",
        f"Status: {options.status_text}",
    ]
    names = clean_signer_names(signer_names)
    if not names:
        lines.append("Signed by: ")
    lines.extend(f"Signed by: {name}" for name in names)
    return lines


class StampService:
    """Overlay the signer block on every page of a PDF."""

    def __init__(self, font_name: str = STAMP_FONT) -> None:
        self.font_name = font_name

    def measure(self, text: str, size: float) -> float:
        return pdfmetrics.stringWidth(text, self.font_name, size)

    def stamp(
        self,
        document_bytes: bytes,
        signer_names: Iterable[str] | str | None,
        options: StampOptions | None = None,
    ) -> Tuple[bytes, bool]:
        """Return ``(stamped_bytes, True)``, or ``(document_bytes, False)`` on any failure.

        A failed stamp is not fatal: callers sign the unstamped original.
        """
        options = options or StampOptions()
        names = clean_signer_names(signer_names)
        try:
            return self._stamp(document_bytes, names, options), True
        except Exception as exc:  # noqa: BLE001 - any pypdf or reportlab error
            logger.warning("Stamping failed, the original document will be signed instead: %s", exc)
            logger.debug("Stamping failure details", exc_info=True)
            return document_bytes, False

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _stamp(self, document_bytes: bytes, names: List[str], options: StampOptions) -> bytes:
        reader = PdfReader(BytesIO(document_bytes))
        ledger = StampLedger.from_metadata(reader.metadata)
        lines = build_block_lines(names, options)
        offset = ledger.offsets.get(options.anchor, 0.0)

        writer = PdfWriter()
        consumed = 0.0
        for page in reader.pages:
            box = page.mediabox
            width = float(box.width)
            height = float(box.height)
            layout = compute_block_layout(
                width,
                height,
                lines,
                self.measure,
                anchor=options.anchor,
                text_size=options.text_size,
                line_gap=options.line_gap,
                margin_x=options.margin_x,
                margin_y=options.margin_y,
                padding_x=options.padding_x,
                padding_y=options.padding_y,
                stack_offset=offset,
            )
            overlay = self._create_overlay_page(width, height, lines, layout, options.text_size)
            page.merge_transformed_page(
                overlay, Transformation().translate(float(box.left), float(box.bottom))
            )
            writer.add_page(page)
            consumed = layout.consumed_height

        ledger.signers.extend(names)
        ledger.offsets[options.anchor] = offset + consumed

        metadata = reader.metadata or {}
        info = {key: str(metadata[key]) for key in metadata if key != LEDGER_KEY}
        info[LEDGER_KEY] = ledger.to_json()
        writer.add_metadata(info)

        buffer = BytesIO()
        writer.write(buffer)
        return buffer.getvalue()

    def _create_overlay_page(
        self,
        width: float,
        height: float,
        lines: Sequence[str],
        layout: BlockLayout,
        text_size: float,
    ) -> PageObject:
        packet = BytesIO()
        page_size = (width, height) if width > 0 and height > 0 else letter
        c = canvas.Canvas(packet, pagesize=page_size)

        rect = layout.rect
        c.setFillColor(BACKGROUND)
        c.setFillAlpha(BACKGROUND_OPACITY)
        c.rect(rect.x, rect.y, rect.width, rect.height, stroke=0, fill=1)

        c.setFillAlpha(1)
        c.setFillColor(ACCENT)
        c.setFont(self.font_name, text_size)
        for text, (x, y) in zip(lines, layout.line_positions):
            c.drawString(x, y + TEXT_RISE, text)

        c.save()
        packet.seek(0)
        return PdfReader(packet).pages[0]
