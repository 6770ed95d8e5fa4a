"""Per-panel cursor and scroll offset coordination.

One rule governs the independent-scroll flag: keyboard motion and clicks
clear it, the mouse wheel sets it, and nothing else touches it.
"""

from dataclasses import dataclass

from .lines import LineKind, PanelShape, ShapeKind

WHEEL_STEP = 3


@dataclass
class PanelScroll:
    """Cursor, scroll offset and independent-scroll flag for one panel."""

    cursor: int = 0
    offset: int = 0
    independent: bool = False  # Wheel scrolled away from the cursor
    selected_id: str = ""  # Issue under the cursor, for restore after refresh


def max_scroll_offset(shape: PanelShape) -> int:
    """Largest useful scroll offset for a panel.

    Flat panels use ``rows - visible``. Panels with header lines take the
    smallest offset whose remaining content fits in the visible rows.
    """
    count = shape.row_count
    visible = shape.visible_rows
    if count == 0:
        return 0
    if shape.kind in (ShapeKind.FLAT, ShapeKind.ACTIVITY):
        return max(0, count - visible)

    best = count - 1
    for offset in range(count - 1, -1, -1):
        tail = [line for line in shape.lines(offset, capacity=None) if line.kind != LineKind.UP]
        if len(tail) > visible:
            break
        best = offset
    return best


def clamp_cursor(state: PanelScroll, row_count: int) -> None:
    if row_count <= 0:
        state.cursor = 0
    else:
        state.cursor = max(0, min(state.cursor, row_count - 1))


def ensure_visible(state: PanelScroll, shape: PanelShape) -> None:
    """Scroll so the cursor row is on screen."""
    clamp_cursor(state, shape.row_count)
    if shape.row_count == 0:
        state.offset = 0
        return

    cursor, offset = state.cursor, state.offset
    effective = max(1, shape.visible_rows - shape.header_lines_between(offset, cursor))

    if cursor >= offset + effective:
        new_offset = cursor - effective + 1
        # The up indicator appearing costs a line
        if offset == 0 and new_offset > 0 and not shape.is_activity:
            new_offset += 1
        offset = new_offset
    if cursor < offset:
        offset = cursor

    # Header lines below the new offset can still push the cursor off screen
    while offset < cursor and cursor not in shape.rendered_rows(offset):
        offset += 1

    state.offset = max(0, min(offset, max_scroll_offset(shape)))


def move_cursor(state: PanelScroll, delta: int, shape: PanelShape) -> None:
    """Keyboard motion: move, take back control from the wheel, follow."""
    if shape.row_count == 0:
        state.cursor = 0
        state.offset = 0
        state.independent = False
        return
    state.cursor = max(0, min(state.cursor + delta, shape.row_count - 1))
    state.independent = False
    ensure_visible(state, shape)


def jump_cursor(state: PanelScroll, row: int, shape: PanelShape) -> None:
    """Put the cursor on ``row`` (top/bottom, clicks)."""
    state.cursor = row
    state.independent = False
    ensure_visible(state, shape)


def wheel(state: PanelScroll, delta: int, shape: PanelShape) -> bool:
    """Mouse wheel: scroll the viewport and drag the cursor into it.

    Returns False when there was nothing to scroll.
    """
    if shape.row_count == 0:
        return False
    state.offset = max(0, min(state.offset + delta, max_scroll_offset(shape)))
    state.independent = True

    rows = shape.rendered_rows(state.offset)
    if rows:
        if state.cursor < rows[0]:
            state.cursor = rows[0]
        elif state.cursor > rows[-1]:
            state.cursor = rows[-1]
    clamp_cursor(state, shape.row_count)
    return True


def refresh(state: PanelScroll, shape: PanelShape) -> None:
    """After new data or a resize: follow the cursor unless the wheel owns the view."""
    clamp_cursor(state, shape.row_count)
    if state.independent:
        state.offset = max(0, min(state.offset, max_scroll_offset(shape)))
    else:
        ensure_visible(state, shape)
