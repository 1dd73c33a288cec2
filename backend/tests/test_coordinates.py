import pytest

from barreplay.config import OFFSCREEN_PX
from barreplay.coordinates import LinearChartView, anchor_to_pixel, pixel_to_anchor, reanchor, shift_point
from barreplay.models import Point


def test_pixel_to_anchor_maps_into_logical_space(view):
    point = pixel_to_anchor(80, 200, view)
    assert point.has_anchor
    assert point.time == pytest.approx(10.0)
    assert point.price == pytest.approx(50.0)


def test_anchor_round_trip_returns_original_pixel(view):
    for x, y in [(0, 0), (80, 200), (333.3, 17.5), (799, 399)]:
        projected = anchor_to_pixel(pixel_to_anchor(x, y, view), view)
        assert projected.x == pytest.approx(x, abs=1e-6)
        assert projected.y == pytest.approx(y, abs=1e-6)


def test_anchor_follows_scroll_and_zoom(view):
    point = pixel_to_anchor(80, 200, view)  # bar 10, price 50

    view.scroll(10)
    moved = anchor_to_pixel(point, view)
    assert moved.x == pytest.approx(0.0)
    assert moved.y == pytest.approx(200.0)

    view.set_visible_range(0, 50)
    view.set_price_range(25, 75)
    zoomed = anchor_to_pixel(point, view)
    assert zoomed.x == pytest.approx(160.0)
    assert zoomed.y == pytest.approx(200.0)


def test_out_of_view_anchor_goes_far_offscreen(view):
    left = anchor_to_pixel(Point(0, 0, time=-5.0, price=50.0), view)
    right = anchor_to_pixel(Point(0, 0, time=150.0, price=50.0), view)
    assert left.x == -OFFSCREEN_PX
    assert right.x == view.width + OFFSCREEN_PX
    assert left.y == pytest.approx(200.0)


def test_pixel_to_anchor_fails_soft_without_ready_view():
    not_ready = LinearChartView(800, 400)
    for host in (None, not_ready):
        point = pixel_to_anchor(12, 34, host)
        assert (point.x, point.y) == (12, 34)
        assert not point.has_anchor


def test_unanchored_point_keeps_pixel_position(view):
    projected = anchor_to_pixel(Point(42, 24), view)
    assert (projected.x, projected.y) == (42, 24)


def test_reanchor_keeps_anchor_when_view_not_ready():
    anchored = Point(10, 10, time=3.0, price=99.0)
    assert reanchor(anchored, 50, 50, LinearChartView(800, 400)) is anchored
    assert reanchor(Point(10, 10), 50, 50, None) == Point(50, 50)


def test_reanchor_derives_new_anchor(view):
    moved = reanchor(Point(0, 0, 0.0, 100.0), 160, 100, view)
    assert moved.time == pytest.approx(20.0)
    assert moved.price == pytest.approx(75.0)


def test_shift_point_moves_anchor_by_logical_delta(view):
    view.scroll(10)
    hidden = anchor_to_pixel(Point(0, 0, time=2.0, price=40.0), view)
    start = pixel_to_anchor(80, 200, view)
    current = pixel_to_anchor(96, 180, view)

    moved = shift_point(hidden, start, current, view)
    assert (moved.time, moved.price) == pytest.approx((4.0, 45.0))
    assert moved.x == -OFFSCREEN_PX


def test_shift_point_falls_back_to_pixels_without_anchor():
    moved = shift_point(Point(10, 10), Point(0, 0), Point(5, -3), None)
    assert moved == Point(15, 7)


def test_invalid_ranges_are_rejected(view):
    with pytest.raises(ValueError):
        view.set_visible_range(10, 10)
    with pytest.raises(ValueError):
        view.set_price_range(5, 1)
    with pytest.raises(ValueError):
        view.zoom(0)


def test_visible_range_listeners(view):
    seen = []
    unsubscribe = view.subscribe_visible_range_change(seen.append)
    view.scroll(5)
    assert seen == [(5.0, 105.0)]
    unsubscribe()
    view.scroll(5)
    assert len(seen) == 1
