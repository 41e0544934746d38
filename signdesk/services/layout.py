"""Geometry of the signer block.

Pure functions only: page size, lines and a font-metrics callable in, block
origin, bounding rectangle and per-line baselines out. PDF user space is
used throughout, so ``y`` grows upward from the bottom edge of the page.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Sequence, Tuple

ANCHORS = ("top-left", "top-right", "bottom-left", "bottom-right")
DEFAULT_ANCHOR = "bottom-left"

MeasureFn = Callable[[str, float], float]


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def top(self) -> float:
        return self.y + self.height


@dataclass(frozen=True)
class BlockLayout:
    origin: Tuple[float, float]
    rect: Rect
    line_positions: List[Tuple[float, float]]
    consumed_height: float


def resolve_anchor(value: str | None) -> str:
    anchor = str(value or "").strip().lower()
    return anchor if anchor in ANCHORS else DEFAULT_ANCHOR


def block_size(
    lines: Sequence[str],
    measure: MeasureFn,
    *,
    text_size: float,
    line_gap: float,
    padding_x: float,
    padding_y: float,
) -> Tuple[float, float, float]:
    """Return (longest line width, block width, block height)."""
    count = len(lines)
    longest = max((measure(line, text_size) for line in lines), default=0.0)
    width = longest + padding_x * 2
    height = count * text_size + max(count - 1, 0) * line_gap + padding_y * 2
    return longest, width, height


def compute_block_layout(
    page_width: float,
    page_height: float,
    lines: Sequence[str],
    measure: MeasureFn,
    *,
    anchor: str | None = DEFAULT_ANCHOR,
    text_size: float = 14,
    line_gap: float = 6,
    margin_x: float = 16,
    margin_y: float = 16,
    padding_x: float = 6,
    padding_y: float = 6,
    stack_offset: float = 0.0,
) -> BlockLayout:
    """Place ``lines`` as one block in the corner named by ``anchor``.

    ``stack_offset`` pushes the block away from its anchor edge so that it
    sits beyond blocks stamped earlier at the same corner. The push is capped
    so the block keeps the same clearance from the opposite edge that the
    unshifted block keeps from its own edge.
    """
    anchor = resolve_anchor(anchor)
    from_top = anchor.startswith("top")
    count = len(lines)
    step = text_size + line_gap

    longest, width, height = block_size(
        lines,
        measure,
        text_size=text_size,
        line_gap=line_gap,
        padding_x=padding_x,
        padding_y=padding_y,
    )

    start_x = margin_x
    if anchor.endswith("right"):
        start_x = max(margin_x, page_width - longest - margin_x)

    if from_top:
        start_y = page_height - text_size - margin_y
        rect_y = start_y - max(count - 1, 0) * step - padding_y
    else:
        start_y = margin_y
        rect_y = start_y - padding_y

    clearance = margin_y - padding_y
    if from_top:
        room = rect_y - clearance
    else:
        room = page_height - clearance - (rect_y + height)
    shift = min(max(stack_offset, 0.0), max(room, 0.0))

    if from_top:
        start_y -= shift
        rect_y -= shift
    else:
        start_y += shift
        rect_y += shift

    positions = [
        (start_x, start_y - index * step if from_top else start_y + index * step)
        for index in range(count)
    ]

    return BlockLayout(
        origin=(start_x, start_y),
        rect=Rect(start_x - padding_x, rect_y, width, height),
        line_positions=positions,
        consumed_height=height + line_gap,
    )
