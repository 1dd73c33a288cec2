"""Interactive drawing engine for the chart annotation overlay.

The engine owns the committed drawings, the in-progress gesture and the
selection, and turns pointer and key events into create / select / drag /
delete operations according to the active tool.

States:
    idle      no gesture in progress
    drawing   pointer is down with a drawing tool, points are accumulating
    dragging  pointer went down on the already-selected drawing (select tool)

Handlers read the tool and gesture state straight from the engine's fields at
dispatch time, so a move handler always sees the state set by the preceding
down handler.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from .config import DEFAULT_TOOL_COLORS, FALLBACK_COLOR
from .coordinates import ChartView, anchor_to_pixel, pixel_to_anchor
from .events_bus import EventBus
from .hit_test import find_topmost_hit, project_points
from .models import (
    ALL_TOOLS,
    CALLOUT,
    FREEHAND,
    TEXT,
    TOOL_NONE,
    TOOL_SELECT,
    TWO_POINT_TYPES,
    Drawing,
    Point,
)
from .render import DrawCommand, DrawCommandList
from .shapes import shape_for

logger = logging.getLogger(__name__)

IDLE = "idle"
DRAWING = "drawing"
DRAGGING = "dragging"

DELETE_KEYS = ("Delete", "Backspace")
ESCAPE_KEY = "Escape"


@dataclass
class TextRequest:
    """An open request for label text from the host's input prompt."""
    tool: str  # "text" or "callout"
    points: List[Point]

    @property
    def anchor(self) -> Point:
        return self.points[-1]


class DrawingEngine:
    def __init__(
        self,
        view: Optional[ChartView] = None,
        events: Optional[EventBus] = None,
        on_text_request: Optional[Callable[[TextRequest], None]] = None,
    ) -> None:
        self.events = events or EventBus()
        self.on_text_request = on_text_request
        self.view: Optional[ChartView] = None
        self._unsubscribe_view: Optional[Callable[[], None]] = None

        self.drawings: List[Drawing] = []
        self.active_tool: str = TOOL_NONE
        self.color: Optional[str] = None
        self.state: str = IDLE
        self.current_points: List[Point] = []
        self.selected_id: Optional[str] = None
        self.pending_text: Optional[TextRequest] = None

        # Grab point of the current drag, anchored in logical space
        self.drag_start: Optional[Point] = None
        self._drag_origin: List[Point] = []

        if view is not None:
            self.attach_view(view)

    # ------------------------------------------------------------------ view

    def attach_view(self, view: ChartView) -> None:
        """Bind to a chart host and re-render whenever its visible range moves."""
        self.detach_view()
        self.view = view
        self._unsubscribe_view = view.subscribe_visible_range_change(self._on_visible_range_change)

    def detach_view(self) -> None:
        if self._unsubscribe_view is not None:
            self._unsubscribe_view()
        self._unsubscribe_view = None
        self.view = None

    def _on_visible_range_change(self, _range) -> None:
        self._changed("view")

    # ----------------------------------------------------------------- state

    @property
    def selected_drawing(self) -> Optional[Drawing]:
        return self.get_drawing(self.selected_id) if self.selected_id else None

    @property
    def current_drawing(self) -> Optional[Drawing]:
        """Preview of the gesture in progress, if any."""
        if self.state != DRAWING or not self.current_points:
            return None
        return Drawing(id="current", type=self.active_tool, points=list(self.current_points),
                       color=self._color_for(self.active_tool))

    def get_drawing(self, drawing_id: str) -> Optional[Drawing]:
        for drawing in self.drawings:
            if drawing.id == drawing_id:
                return drawing
        return None

    def set_tool(self, tool: str) -> None:
        if tool not in ALL_TOOLS:
            raise ValueError(f"Unsupported drawing tool: {tool}")
        if self.state != IDLE:
            self._reset_gesture()
        self.pending_text = None
        self.active_tool = tool
        self._changed("tool")

    def set_color(self, color: Optional[str]) -> None:
        self.color = color

    def select(self, drawing_id: Optional[str]) -> None:
        if drawing_id is not None and self.get_drawing(drawing_id) is None:
            raise LookupError(f"Drawing not found: {drawing_id}")
        self.selected_id = drawing_id
        self._changed("selected", drawing_id)

    # --------------------------------------------------------------- pointer

    def pointer_down(self, x: float, y: float) -> None:
        if self.view is None or self.pending_text is not None:
            return
        tool = self.active_tool
        if tool == TOOL_NONE:
            return

        if tool == TEXT:
            self._request_text(TEXT, [pixel_to_anchor(x, y, self.view)])
            return

        hit = find_topmost_hit(Point(x, y), self.drawings, self.view)

        if tool == TOOL_SELECT:
            if hit is None:
                if self.selected_id is not None:
                    self.selected_id = None
                    self._changed("selected")
            elif hit.id == self.selected_id:
                self._begin_drag(hit, x, y)
            else:
                self.selected_id = hit.id
                self._changed("selected", hit.id)
            return

        # Drawing tools: pressing the selected drawing moves it, anything else starts a new shape.
        if hit is not None and hit.id == self.selected_id:
            self._begin_drag(hit, x, y)
            return
        self.selected_id = None
        self.current_points = [pixel_to_anchor(x, y, self.view)]
        self.state = DRAWING
        self._changed("preview")

    def pointer_move(self, x: float, y: float) -> None:
        if self.view is None:
            return
        if self.state == DRAWING:
            point = pixel_to_anchor(x, y, self.view)
            if self.active_tool in TWO_POINT_TYPES:
                self.current_points = [self.current_points[0], point]
            else:
                self.current_points.append(point)
            self._changed("preview")
        elif self.state == DRAGGING:
            self._drag_to(x, y)

    def pointer_up(self) -> Optional[Drawing]:
        """Finish the current gesture; returns the committed drawing, if any."""
        if self.state == DRAGGING:
            drawing = self.selected_drawing
            self._reset_gesture()
            self._changed("updated", drawing.id if drawing else None)
            return None
        if self.state != DRAWING:
            return None

        tool = self.active_tool
        points = self.current_points
        self._reset_gesture()

        if len(points) < 2:
            self._changed("discarded")
            return None
        if tool == CALLOUT:
            self._request_text(CALLOUT, points)
            return None

        drawing = self._commit(tool, points)
        if tool != FREEHAND:
            self.active_tool = TOOL_SELECT
            self._changed("tool")
        return drawing

    def _begin_drag(self, drawing: Drawing, x: float, y: float) -> None:
        self.state = DRAGGING
        self.drag_start = pixel_to_anchor(x, y, self.view)
        self._drag_origin = project_points(drawing, self.view)

    def _drag_to(self, x: float, y: float) -> None:
        drawing = self.selected_drawing
        if drawing is None or self.drag_start is None:
            return
        current = pixel_to_anchor(x, y, self.view)
        drawing.points = shape_for(drawing.type).translate(self._drag_origin, self.drag_start, current, self.view)
        self._changed("moved", drawing.id)

    def _reset_gesture(self) -> None:
        self.state = IDLE
        self.current_points = []
        self.drag_start = None
        self._drag_origin = []

    # ------------------------------------------------------------ text input

    def _request_text(self, tool: str, points: List[Point]) -> None:
        self.pending_text = TextRequest(tool=tool, points=list(points))
        self.events.dispatch({
            "type": "text_request",
            "tool": tool,
            "x": self.pending_text.anchor.x,
            "y": self.pending_text.anchor.y,
        })
        if self.on_text_request is not None:
            self.on_text_request(self.pending_text)

    def submit_text(self, text: str) -> Optional[Drawing]:
        request = self.pending_text
        if request is None:
            return None
        if not text or not text.strip():
            self.cancel_text()
            return None
        self.pending_text = None
        drawing = self._commit(request.tool, request.points, text=text)
        self.active_tool = TOOL_SELECT
        self._changed("tool")
        return drawing

    def cancel_text(self) -> None:
        if self.pending_text is not None:
            self.pending_text = None
            self._changed("text_cancelled")

    # ----------------------------------------------------------------- store

    def _color_for(self, tool: str) -> str:
        return self.color or DEFAULT_TOOL_COLORS.get(tool, FALLBACK_COLOR)

    def _commit(self, tool: str, points: Sequence[Point], text: Optional[str] = None) -> Drawing:
        drawing = Drawing(
            id=f"drawing-{uuid.uuid4().hex}",
            type=tool,
            points=list(points),
            color=self._color_for(tool),
            text=text,
        )
        self.drawings.append(drawing)
        self.selected_id = drawing.id
        logger.debug("Committed %s drawing %s with %d points", tool, drawing.id, len(drawing.points))
        self._changed("created", drawing.id)
        return drawing

    def load_drawings(self, drawings: Sequence[Drawing]) -> None:
        for drawing in drawings:
            shape_for(drawing.type)
        self.drawings = list(drawings)
        self.selected_id = None
        self._reset_gesture()
        self._changed("loaded")

    def delete_drawing(self, drawing_id: str) -> bool:
        drawing = self.get_drawing(drawing_id)
        if drawing is None:
            return False
        self.drawings.remove(drawing)
        if self.selected_id == drawing_id:
            self.selected_id = None
            if self.state == DRAGGING:
                self._reset_gesture()
        self._changed("deleted", drawing_id)
        return True

    def delete_selected(self) -> bool:
        if self.selected_id is None:
            return False
        return self.delete_drawing(self.selected_id)

    def clear_drawings(self) -> None:
        self.drawings = []
        self.selected_id = None
        self.pending_text = None
        self._reset_gesture()
        self._changed("cleared")

    def key_down(self, key: str) -> None:
        if key in DELETE_KEYS:
            self.delete_selected()
        elif key == ESCAPE_KEY:
            # An open text prompt takes the key first
            if self.pending_text is not None:
                self.cancel_text()
            else:
                self.clear_drawings()

    # ---------------------------------------------------------------- render

    def render(self) -> List[DrawCommand]:
        """Command list for one overlay frame; empty when there is no surface."""
        view = self.view
        if view is None:
            return []
        ctx = DrawCommandList(view.width, view.height)
        ctx.clear()
        for drawing in self.drawings:
            self._render_one(ctx, drawing, drawing.id == self.selected_id)
        preview = self.current_drawing
        if preview is not None and len(preview.points) >= 2:
            self._render_one(ctx, preview, False)
        elif self.pending_text is not None and self.pending_text.tool == CALLOUT:
            pending = self.pending_text
            self._render_one(ctx, Drawing("pending", CALLOUT, pending.points, self._color_for(CALLOUT)), False)
        return ctx.commands

    def _render_one(self, ctx: DrawCommandList, drawing: Drawing, selected: bool) -> None:
        shape = shape_for(drawing.type)
        points = [anchor_to_pixel(p, self.view) for p in drawing.points]
        if shape.can_render(points, drawing.text):
            shape.render(ctx, points, drawing.color, selected, drawing.text)

    def _changed(self, action: str, drawing_id: Optional[str] = None) -> None:
        payload = {"type": "drawings", "action": action, "selected_id": self.selected_id}
        if drawing_id is not None:
            payload["id"] = drawing_id
        self.events.dispatch(payload)
