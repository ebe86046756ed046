"""
Flowing-block page layout.

A cursor moves down the page as blocks are placed. When it drops below the
low-water mark the overflow callback runs (the renderer closes the page there)
and the cursor jumps back to the top of a fresh page.

No reflow and no repeated table header.
Coordinates are PDF points with the origin at the bottom-left corner.
"""

from __future__ import annotations

from typing import Callable, Optional, Sequence

PAGE_WIDTH = 595
PAGE_HEIGHT = 842
TOP_MARGIN = 50
LOW_WATER_MARK = 150
BOTTOM_MARGIN = 50
ROW_HEIGHT = 18

# Invoice table columns: worker, normal hours, +25%, +50%, +100%, amount.
COLUMN_X: Sequence[int] = (50, 200, 260, 320, 380, 460)


class FlowLayout:
    def __init__(
        self,
        page_height: float = PAGE_HEIGHT,
        top_margin: float = TOP_MARGIN,
        low_water_mark: float = LOW_WATER_MARK,
        on_overflow: Optional[Callable[[], None]] = None,
    ):
        self.top = page_height - top_margin
        self.low_water_mark = low_water_mark
        self.on_overflow = on_overflow
        self.y = self.top
        self.page_count = 1

    def place(self, height: float, draw: Optional[Callable[[float], None]] = None) -> float:
        """
        Draw a block at the cursor, move the cursor down by `height`.

        Returns the y the block was drawn at. Crossing the low-water mark
        starts a new page before the next block.
        """
        at = self.y
        if draw is not None:
            draw(at)
        self.y -= height
        if self.y < self.low_water_mark:
            self.new_page()
        return at

    def advance(self, height: float) -> None:
        """Move the cursor without drawing and without a page check."""
        self.y -= height

    def ensure(self, space: float, bottom: float = BOTTOM_MARGIN) -> None:
        """Start a new page unless `space` points fit above `bottom`."""
        if self.y - space < bottom:
            self.new_page()

    def new_page(self) -> None:
        if self.on_overflow is not None:
            self.on_overflow()
        self.page_count += 1
        self.y = self.top
