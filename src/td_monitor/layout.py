"""Panel layout, divider hit regions and divider dragging."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

from .config import MIN_PANE_RATIO
from .models import Panel

logger = logging.getLogger(__name__)

FOOTER_HEIGHT = 3
SEARCH_BAR_HEIGHT = 2
DIVIDER_HIT_HEIGHT = 3
MIN_WIDTH = 40
MIN_HEIGHT = 15
DEFAULT_VISIBLE_ROWS = 10  # Used before the first resize event

Ratios = tuple[float, float, float]


@dataclass(frozen=True)
class Rect:
    """A screen rectangle in cells."""

    x: int
    y: int
    w: int
    h: int

    def contains(self, x: int, y: int) -> bool:
        return self.x <= x < self.x + self.w and self.y <= y < self.y + self.h


@dataclass
class PanelLayout:
    """Computed bounds for the three panels and the two dividers."""

    width: int = 0
    height: int = 0
    available: int = 0  # Height shared by the panels
    search_bar_height: int = 0
    footer_height: int = FOOTER_HEIGHT
    panels: list[Rect] = field(default_factory=list)
    dividers: list[Rect] = field(default_factory=list)

    @property
    def is_known(self) -> bool:
        return self.width > 0 and self.height > 0

    @property
    def too_small(self) -> bool:
        return self.is_known and (self.width < MIN_WIDTH or self.height < MIN_HEIGHT)

    def panel_height(self, panel: Panel) -> int:
        if not self.panels:
            return 0
        return self.panels[panel].h

    def hit_panel(self, x: int, y: int) -> Panel | None:
        """Panel containing the point, or None."""
        for panel, rect in zip(Panel, self.panels):
            if rect.contains(x, y):
                return panel
        return None

    def hit_divider(self, x: int, y: int) -> int:
        """Divider index (0 or 1) under the point, or -1."""
        for i, rect in enumerate(self.dividers):
            if rect.contains(x, y):
                return i
        return -1


def compute_layout(
    width: int,
    height: int,
    ratios: Ratios,
    embedded: bool = False,
    search_visible: bool = False,
) -> PanelLayout:
    """Stack the three panels vertically below the optional search bar.

    Panels 0 and 1 get ``floor(available * ratio)`` rows; Activity absorbs the
    remainder. Each divider is a three-row band centred on its boundary.
    """
    search_bar_height = SEARCH_BAR_HEIGHT if search_visible else 0
    footer_height = 0 if embedded else FOOTER_HEIGHT
    available = max(0, height - footer_height - search_bar_height)

    h0 = math.floor(available * ratios[0])
    h1 = math.floor(available * ratios[1])
    h2 = available - h0 - h1

    y = search_bar_height
    panels = [Rect(0, y, width, h0)]
    y += h0
    dividers = [Rect(0, y - 1, width, DIVIDER_HIT_HEIGHT)]
    panels.append(Rect(0, y, width, h1))
    y += h1
    dividers.append(Rect(0, y - 1, width, DIVIDER_HIT_HEIGHT))
    panels.append(Rect(0, y, width, h2))

    return PanelLayout(
        width=width,
        height=height,
        available=available,
        search_bar_height=search_bar_height,
        footer_height=footer_height,
        panels=panels,
        dividers=dividers,
    )


def visible_rows(layout: PanelLayout, panel: Panel) -> int:
    """Number of data rows a panel can show.

    Every panel loses five lines to chrome: title, two borders and either
    two scroll indicator reservations or (Activity) the table header plus one
    indicator line.
    """
    if not layout.is_known:
        return DEFAULT_VISIBLE_ROWS
    return max(1, layout.panel_height(panel) - 5)


def content_capacity(layout: PanelLayout, panel: Panel) -> int:
    """Lines available inside a panel's border below the title line."""
    if not layout.is_known:
        return DEFAULT_VISIBLE_ROWS + 2
    return max(1, layout.panel_height(panel) - 3)


def content_top(layout: PanelLayout, panel: Panel) -> int:
    """Screen y of the first content line (below border and title)."""
    return layout.panels[panel].y + 2


def normalize_ratios(ratios: Ratios) -> Ratios:
    total = sum(ratios)
    return (ratios[0] / total, ratios[1] / total, ratios[2] / total)


@dataclass
class DividerDrag:
    """An in-progress divider drag.

    Motion is measured from the press point so repeated motion events don't
    accumulate rounding error.
    """

    divider: int  # 0: between panels 0/1, 1: between panels 1/2
    start_y: int
    start_ratios: Ratios

    def ratios_at(self, y: int, available: int) -> Ratios | None:
        """Pane ratios for the pointer at ``y``, or None to keep the current ones."""
        if available <= 0:
            return None

        delta = (y - self.start_y) / available
        new = list(self.start_ratios)
        first, second = self.divider, self.divider + 1
        new[first] = self.start_ratios[first] + delta
        new[second] = self.start_ratios[second] - delta

        # Clamp each affected pane and push the deficit into the other one
        for i, other in ((first, second), (second, first)):
            if new[i] < MIN_PANE_RATIO:
                deficit = MIN_PANE_RATIO - new[i]
                new[i] = MIN_PANE_RATIO
                new[other] -= deficit

        if new[first] < MIN_PANE_RATIO - 1e-9 or new[second] < MIN_PANE_RATIO - 1e-9:
            logger.debug(f"Divider {self.divider} drag to y={y} rejected: {new}")
            return None

        return normalize_ratios((new[0], new[1], new[2]))


MODAL_CONTENT_TOP = 3  # Border, title line, blank
MODAL_CHROME = 5  # Content top plus footer hint and bottom border


def modal_rect(width: int, height: int) -> Rect:
    """Centered issue modal: 80% of the screen, clamped to 40..100 by 15..40."""
    w = max(40, min(100, width * 80 // 100))
    h = max(15, min(40, height * 80 // 100))
    return Rect((width - w) // 2, (height - h) // 2, w, h)


def modal_visible_lines(rect: Rect) -> int:
    return max(1, rect.h - MODAL_CHROME)
