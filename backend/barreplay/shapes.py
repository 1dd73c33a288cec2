"""Per-kind drawing behaviour: render, hit-test and translate.

Every drawing kind has one ``Shape`` instance in ``SHAPES``. Shapes operate on
points that have already been projected to overlay pixels for the current
chart view.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from .config import (
    ENTRY_COLOR,
    HIT_TOLERANCE_PX,
    LABEL_BACKGROUND,
    LABEL_BACKGROUND_SELECTED,
    LINE_WIDTH,
    RECTANGLE_FILL_ALPHA,
    REWARD_COLOR,
    RISK_COLOR,
    SELECTED_LINE_WIDTH,
)
from .coordinates import ChartView, shift_point
from .geometry import (
    box_from_corners,
    distance_to_segment,
    fibonacci_label,
    fibonacci_levels,
    label_box,
    risk_reward_levels,
    within_x_span,
)
from .models import (
    CALLOUT,
    FIBONACCI,
    FREEHAND,
    HORIZONTAL,
    RECTANGLE,
    RISK_REWARD,
    TEXT,
    TRENDLINE,
    Point,
)
from .render import DrawCommandList

LABEL_OFFSET_X = 5
LABEL_OFFSET_Y = 4


def _stroke_width(selected: bool) -> float:
    return SELECTED_LINE_WIDTH if selected else LINE_WIDTH


def _opaque(color: str) -> str:
    # "#RRGGBBAA" -> "#RRGGBB"
    if color.startswith("#") and len(color) == 9:
        return color[:7]
    return color


def _translucent(color: str) -> str:
    return _opaque(color) + RECTANGLE_FILL_ALPHA


class Shape:
    """Base behaviour shared by all drawing kinds."""

    kind = ""
    min_points = 2

    def can_render(self, points: Sequence[Point], text: Optional[str]) -> bool:
        return len(points) >= self.min_points

    def render(self, ctx: DrawCommandList, points: Sequence[Point], color: str,
               selected: bool = False, text: Optional[str] = None) -> None:
        raise NotImplementedError

    def hit_test(self, x: float, y: float, points: Sequence[Point], text: Optional[str] = None,
                 tolerance: float = HIT_TOLERANCE_PX) -> bool:
        raise NotImplementedError

    def translate(self, points: Sequence[Point], start: Point, current: Point,
                  view: Optional[ChartView]) -> List[Point]:
        """Move every vertex by the pointer gesture from ``start`` to ``current``."""
        return [shift_point(p, start, current, view) for p in points]

    def handles(self, points: Sequence[Point]) -> List[Point]:
        return list(points[:2])

    def _draw_handles(self, ctx: DrawCommandList, points: Sequence[Point], color: str) -> None:
        for p in self.handles(points):
            ctx.handle(p.x, p.y, color)


class TrendlineShape(Shape):
    kind = TRENDLINE

    def render(self, ctx, points, color, selected=False, text=None):
        p1, p2 = points[0], points[1]
        ctx.line(p1.x, p1.y, p2.x, p2.y, color, _stroke_width(selected))
        if selected:
            self._draw_handles(ctx, points, color)

    def hit_test(self, x, y, points, text=None, tolerance=HIT_TOLERANCE_PX):
        if len(points) < 2:
            return False
        p1, p2 = points[0], points[1]
        return distance_to_segment(x, y, p1.x, p1.y, p2.x, p2.y) <= tolerance


class HorizontalShape(Shape):
    """Full-width line at the first point's price."""

    kind = HORIZONTAL
    min_points = 1

    def render(self, ctx, points, color, selected=False, text=None):
        y = points[0].y
        ctx.line(0, y, ctx.width, y, color, _stroke_width(selected))
        if selected:
            self._draw_handles(ctx, points[:1], color)

    def hit_test(self, x, y, points, text=None, tolerance=HIT_TOLERANCE_PX):
        if not points:
            return False
        return abs(y - points[0].y) <= tolerance


class RectangleShape(Shape):
    kind = RECTANGLE

    def render(self, ctx, points, color, selected=False, text=None):
        p1, p2 = points[0], points[1]
        ctx.rect(p1.x, p1.y, p2.x - p1.x, p2.y - p1.y, _opaque(color), _translucent(color),
                 _stroke_width(selected))
        if selected:
            self._draw_handles(ctx, points, _opaque(color))

    def hit_test(self, x, y, points, text=None, tolerance=HIT_TOLERANCE_PX):
        if len(points) < 2:
            return False
        box = box_from_corners(points[0].x, points[0].y, points[1].x, points[1].y)
        if box.contains(x, y):
            return True
        return any(distance_to_segment(x, y, *edge) <= tolerance for edge in box.edges())

    def handles(self, points):
        p1, p2 = points[0], points[1]
        return [
            Point(p1.x, p1.y),
            Point(p2.x, p1.y),
            Point(p2.x, p2.y),
            Point(p1.x, p2.y),
        ]


class FibonacciShape(Shape):
    kind = FIBONACCI

    def render(self, ctx, points, color, selected=False, text=None):
        p1, p2 = points[0], points[1]
        width = 2 if selected else 1
        for level, y in fibonacci_levels(p1.y, p2.y):
            ctx.dashed_line(p1.x, y, p2.x, y, color, width)
            ctx.text(p2.x + LABEL_OFFSET_X, y + LABEL_OFFSET_Y, fibonacci_label(level), color)
        if selected:
            self._draw_handles(ctx, points, color)

    def hit_test(self, x, y, points, text=None, tolerance=HIT_TOLERANCE_PX):
        if len(points) < 2:
            return False
        p1, p2 = points[0], points[1]
        if not within_x_span(x, p1.x, p2.x):
            return False
        return any(abs(y - level_y) <= tolerance for _, level_y in fibonacci_levels(p1.y, p2.y))


class RiskRewardShape(Shape):
    """Entry line at p1 with 1R/2R/3R reward and risk ladders.

    One R equals the vertical distance from the entry to the second point.
    """

    kind = RISK_REWARD

    def render(self, ctx, points, color, selected=False, text=None):
        p1, p2 = points[0], points[1]
        rewards, risks = risk_reward_levels(p1.y, p2.y)
        ctx.line(p1.x, p1.y, p2.x, p1.y, ENTRY_COLOR, _stroke_width(selected))
        ctx.text(p2.x + LABEL_OFFSET_X, p1.y + LABEL_OFFSET_Y, "Entry", ENTRY_COLOR)
        for ladder, level_color in ((rewards, REWARD_COLOR), (risks, RISK_COLOR)):
            for multiple, y in ladder:
                ctx.dashed_line(p1.x, y, p2.x, y, level_color, 2 if selected else 1)
                ctx.text(p2.x + LABEL_OFFSET_X, y + LABEL_OFFSET_Y, f"1:{multiple}", level_color)
        if selected:
            self._draw_handles(ctx, points, color)

    def hit_test(self, x, y, points, text=None, tolerance=HIT_TOLERANCE_PX):
        if len(points) < 2:
            return False
        p1, p2 = points[0], points[1]
        if not within_x_span(x, p1.x, p2.x):
            return False
        rewards, risks = risk_reward_levels(p1.y, p2.y)
        levels = [p1.y] + [level_y for _, level_y in rewards + risks]
        return any(abs(y - level_y) <= tolerance for level_y in levels)


class FreehandShape(Shape):
    kind = FREEHAND

    def render(self, ctx, points, color, selected=False, text=None):
        ctx.polyline([(p.x, p.y) for p in points], color, _stroke_width(selected))
        if selected:
            self._draw_handles(ctx, points, color)

    def hit_test(self, x, y, points, text=None, tolerance=HIT_TOLERANCE_PX):
        for a, b in zip(points, points[1:]):
            if distance_to_segment(x, y, a.x, a.y, b.x, b.y) <= tolerance:
                return True
        return False

    def handles(self, points):
        return [points[0], points[-1]]


class TextShape(Shape):
    kind = TEXT
    min_points = 1

    def can_render(self, points, text):
        return len(points) >= 1 and bool(text)

    def render(self, ctx, points, color, selected=False, text=None):
        p = points[0]
        background = LABEL_BACKGROUND_SELECTED if selected else LABEL_BACKGROUND
        ctx.label(p.x, p.y, text, color, background, color if selected else None)

    def hit_test(self, x, y, points, text=None, tolerance=HIT_TOLERANCE_PX):
        if not points or not text:
            return False
        return label_box(points[0].x, points[0].y, text).contains(x, y)


class CalloutShape(Shape):
    """Connector from the anchor (p1) to a label placed at p2."""

    kind = CALLOUT

    def render(self, ctx, points, color, selected=False, text=None):
        p1, p2 = points[0], points[1]
        ctx.line(p1.x, p1.y, p2.x, p2.y, color, _stroke_width(selected))
        if text:
            background = LABEL_BACKGROUND_SELECTED if selected else LABEL_BACKGROUND
            ctx.label(p2.x, p2.y, text, color, background, color)
        if selected:
            ctx.handle(p1.x, p1.y, color)

    def hit_test(self, x, y, points, text=None, tolerance=HIT_TOLERANCE_PX):
        if len(points) < 2:
            return False
        p1, p2 = points[0], points[1]
        if distance_to_segment(x, y, p1.x, p1.y, p2.x, p2.y) <= tolerance:
            return True
        return bool(text) and label_box(p2.x, p2.y, text).contains(x, y)


SHAPES: Dict[str, Shape] = {
    shape.kind: shape
    for shape in (
        FreehandShape(),
        TrendlineShape(),
        HorizontalShape(),
        RectangleShape(),
        FibonacciShape(),
        RiskRewardShape(),
        TextShape(),
        CalloutShape(),
    )
}


def shape_for(kind: str) -> Shape:
    try:
        return SHAPES[kind]
    except KeyError as exc:
        raise ValueError(f"Unsupported drawing type: {kind}") from exc
