"""Pixel <-> chart-logical coordinate mapping for the drawing overlay.

A chart host exposes projection between overlay pixels and the chart's
logical space (bar index on the time axis, price on the vertical axis).
Drawings persist their vertices in logical space and are projected back to
pixels on every render, so they stay attached to the candles while the user
pans and zooms.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, List, Optional, Protocol, Tuple

from .config import OFFSCREEN_PX
from .models import Point

logger = logging.getLogger(__name__)

RangeListener = Callable[[Optional[Tuple[float, float]]], None]


class ChartView(Protocol):
    width: float
    height: float

    def is_ready(self) -> bool: ...

    def visible_logical_range(self) -> Optional[Tuple[float, float]]: ...

    def coordinate_to_logical(self, x: float) -> Optional[float]: ...

    def logical_to_coordinate(self, logical: float) -> Optional[float]: ...

    def coordinate_to_price(self, y: float) -> Optional[float]: ...

    def price_to_coordinate(self, price: float) -> Optional[float]: ...

    def subscribe_visible_range_change(self, listener: RangeListener) -> Callable[[], None]: ...


class LinearChartView:
    """In-process chart host with linear time and price scales.

    The visible logical range maps onto ``[0, width]`` and the visible price
    range onto ``[height, 0]`` (higher prices are nearer the top). Logical
    indices outside the visible range have no coordinate, the same way a
    charting library reports nothing for bars it is not showing.
    """

    def __init__(
        self,
        width: float,
        height: float,
        logical_range: Optional[Tuple[float, float]] = None,
        price_range: Optional[Tuple[float, float]] = None,
    ) -> None:
        self.width = float(width)
        self.height = float(height)
        self._logical_range = logical_range
        self._price_range = price_range
        self._listeners: List[RangeListener] = []

    def is_ready(self) -> bool:
        if self._logical_range is None or self._price_range is None:
            return False
        lo, hi = self._logical_range
        low, high = self._price_range
        return self.width > 0 and self.height > 0 and hi > lo and high > low

    def visible_logical_range(self) -> Optional[Tuple[float, float]]:
        return self._logical_range

    def visible_price_range(self) -> Optional[Tuple[float, float]]:
        return self._price_range

    def coordinate_to_logical(self, x: float) -> Optional[float]:
        if not self.is_ready():
            return None
        lo, hi = self._logical_range
        return lo + (x / self.width) * (hi - lo)

    def logical_to_coordinate(self, logical: float) -> Optional[float]:
        if not self.is_ready():
            return None
        lo, hi = self._logical_range
        if logical < lo or logical > hi:
            return None
        return (logical - lo) / (hi - lo) * self.width

    def coordinate_to_price(self, y: float) -> Optional[float]:
        if not self.is_ready():
            return None
        low, high = self._price_range
        return high - (y / self.height) * (high - low)

    def price_to_coordinate(self, price: float) -> Optional[float]:
        if not self.is_ready():
            return None
        low, high = self._price_range
        return (high - price) / (high - low) * self.height

    def subscribe_visible_range_change(self, listener: RangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_visible_range(self, start: float, end: float) -> None:
        if end <= start:
            raise ValueError("Visible range end must be greater than start")
        self._logical_range = (float(start), float(end))
        self._notify()

    def set_price_range(self, low: float, high: float) -> None:
        if high <= low:
            raise ValueError("Price range high must be greater than low")
        self._price_range = (float(low), float(high))
        self._notify()

    def scroll(self, bars: float) -> None:
        """Pan the time axis by ``bars`` logical units."""
        if self._logical_range is None:
            return
        lo, hi = self._logical_range
        self.set_visible_range(lo + bars, hi + bars)

    def zoom(self, factor: float, center: Optional[float] = None) -> None:
        """Scale the visible bar span by ``factor`` (< 1 zooms in) around ``center``."""
        if factor <= 0:
            raise ValueError("Zoom factor must be positive")
        if self._logical_range is None:
            return
        lo, hi = self._logical_range
        mid = (lo + hi) / 2 if center is None else center
        self.set_visible_range(mid - (mid - lo) * factor, mid + (hi - mid) * factor)

    def resize(self, width: float, height: float) -> None:
        self.width = float(width)
        self.height = float(height)
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._logical_range)


def _view_ready(view: Optional[ChartView]) -> bool:
    if view is None:
        return False
    try:
        return bool(view.is_ready())
    except Exception:
        logger.debug("Chart view readiness check failed", exc_info=True)
        return False


def pixel_to_anchor(x: float, y: float, view: Optional[ChartView]) -> Point:
    """Attach logical time/price to a pixel position.

    Fails soft: when the view is missing or not ready, the returned point only
    carries its pixel coordinates.
    """
    if not _view_ready(view):
        return Point(x, y)
    try:
        time = view.coordinate_to_logical(x)
        price = view.coordinate_to_price(y)
    except Exception:
        logger.debug("Inverse projection failed at (%s, %s)", x, y, exc_info=True)
        return Point(x, y)
    return Point(x, y, time, price)


def anchor_to_pixel(point: Point, view: Optional[ChartView]) -> Point:
    """Project an anchored point back to overlay pixels for the current view.

    Points without an anchor, or any point while the view is not ready, keep
    their stored pixel position. A logical time outside the visible range is
    sent to a far out-of-view x so segments crossing the viewport edge are
    still drawn.
    """
    if not point.has_anchor or not _view_ready(view):
        return point.with_pixel(point.x, point.y)

    x: Optional[float]
    y: Optional[float]
    try:
        x = view.logical_to_coordinate(point.time)
        y = view.price_to_coordinate(point.price)
        visible = view.visible_logical_range()
    except Exception:
        logger.debug("Projection failed for anchor %s/%s", point.time, point.price, exc_info=True)
        return point.with_pixel(point.x, point.y)

    if x is None:
        if visible is not None and point.time < visible[0]:
            x = -OFFSCREEN_PX
        elif visible is not None and point.time > visible[1]:
            x = view.width + OFFSCREEN_PX
        else:
            x = point.x
    if y is None:
        y = point.y
    return point.with_pixel(x, y)


def reanchor(point: Point, x: float, y: float, view: Optional[ChartView]) -> Point:
    """Move ``point`` to a new pixel position and re-derive its anchor.

    When the view cannot project, the original point is returned unchanged so
    a committed drawing never loses its anchor mid-drag.
    """
    if not _view_ready(view):
        return point if point.has_anchor else Point(x, y)
    moved = pixel_to_anchor(x, y, view)
    if not moved.has_anchor:
        return point
    return moved


def shift_point(point: Point, start: Point, current: Point, view: Optional[ChartView]) -> Point:
    """Move ``point`` by the pointer gesture from ``start`` to ``current``.

    Anchored points move by the gesture's logical delta, so a vertex whose
    time is outside the visible range keeps its real anchor instead of being
    inverse-projected from its off-screen pixel. Points without an anchor, or
    a gesture the view could not resolve, move in pixel space.
    """
    if point.has_anchor and start.has_anchor and current.has_anchor:
        moved = replace(
            point,
            time=point.time + (current.time - start.time),
            price=point.price + (current.price - start.price),
        )
        return anchor_to_pixel(moved, view)
    return reanchor(point, point.x + (current.x - start.x), point.y + (current.y - start.y), view)
