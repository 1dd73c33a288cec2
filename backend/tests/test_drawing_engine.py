import pytest

from barreplay.config import DEFAULT_TOOL_COLORS, OFFSCREEN_PX
from barreplay.drawing_engine import DRAGGING, DRAWING, IDLE, DrawingEngine
from barreplay.hit_test import is_point_on_shape
from barreplay.models import Drawing, Point


def draw(engine, tool, start, *moves):
    engine.set_tool(tool)
    engine.pointer_down(*start)
    for x, y in moves:
        engine.pointer_move(x, y)
    return engine.pointer_up()


def test_engine_without_view_is_a_noop():
    engine = DrawingEngine()
    engine.set_tool("trendline")
    engine.pointer_down(10, 10)
    engine.pointer_move(50, 50)
    assert engine.pointer_up() is None
    assert engine.drawings == []
    assert engine.state == IDLE
    assert engine.render() == []


def test_trendline_commit_anchors_points_and_selects(engine, recorded):
    drawing = draw(engine, "trendline", (80, 200), (120, 150), (160, 100))

    assert drawing is not None
    assert engine.drawings == [drawing]
    assert drawing.id.startswith("drawing-")
    assert drawing.color == DEFAULT_TOOL_COLORS["trendline"]
    assert [(p.time, p.price) for p in drawing.points] == [
        pytest.approx((10.0, 50.0)),
        pytest.approx((20.0, 75.0)),
    ]
    assert engine.selected_id == drawing.id
    assert engine.active_tool == "select"
    assert {"type": "drawings", "action": "created", "selected_id": drawing.id, "id": drawing.id} in recorded


def test_two_point_preview_keeps_start_and_current(engine):
    engine.set_tool("rectangle")
    engine.pointer_down(10, 10)
    engine.pointer_move(20, 20)
    engine.pointer_move(30, 40)
    assert engine.state == DRAWING
    assert [(p.x, p.y) for p in engine.current_points] == [(10, 10), (30, 40)]
    assert engine.current_drawing.type == "rectangle"


def test_click_without_move_is_discarded(engine):
    assert draw(engine, "trendline", (50, 50)) is None
    assert engine.drawings == []
    assert engine.active_tool == "trendline"


def test_select_then_drag_moves_whole_drawing(engine):
    line = draw(engine, "trendline", (80, 200), (160, 100))

    engine.pointer_down(600, 20)  # empty space clears the selection
    engine.pointer_up()
    assert engine.selected_id is None

    engine.pointer_down(120, 150)  # first press selects
    engine.pointer_up()
    assert engine.selected_id == line.id
    assert engine.state == IDLE

    engine.pointer_down(120, 150)  # second press drags
    assert engine.state == DRAGGING
    assert (engine.drag_start.time, engine.drag_start.price) == pytest.approx((15.0, 62.5))
    engine.pointer_move(160, 190)
    engine.pointer_up()

    assert engine.state == IDLE
    assert [(p.time, p.price) for p in line.points] == [
        pytest.approx((15.0, 40.0)),
        pytest.approx((25.0, 65.0)),
    ]
    assert [(p.x, p.y) for p in line.points] == [
        pytest.approx((120.0, 240.0)),
        pytest.approx((200.0, 140.0)),
    ]


def test_drag_preserves_shape_after_scroll(engine, view):
    rect = draw(engine, "rectangle", (80, 80), (240, 160))
    view.scroll(10)  # rectangle now at x 0..160

    engine.pointer_down(80, 120)
    engine.pointer_move(96, 132)
    engine.pointer_up()

    first, second = rect.points
    assert second.time - first.time == pytest.approx(20.0)
    assert first.price - second.price == pytest.approx(20.0)
    assert first.time == pytest.approx(12.0)


def test_drag_keeps_anchor_of_offscreen_endpoint(engine, view):
    line = draw(engine, "trendline", (40, 200), (400, 100))  # bar 5 to bar 50
    view.scroll(10)  # first endpoint is now left of the visible range

    engine.pointer_down(312, 100)
    assert engine.state == DRAGGING
    engine.pointer_move(320, 100)  # one bar to the right
    engine.pointer_up()

    first, second = line.points
    assert (first.time, first.price) == pytest.approx((6.0, 50.0))
    assert (second.time, second.price) == pytest.approx((51.0, 75.0))
    assert first.x == -OFFSCREEN_PX
    assert second.x == pytest.approx(328.0)


def test_drawing_tool_drags_selected_but_starts_new_elsewhere(engine):
    line = draw(engine, "trendline", (80, 200), (160, 100))
    engine.set_tool("rectangle")

    engine.pointer_down(120, 150)
    assert engine.state == DRAGGING
    engine.pointer_move(130, 150)
    assert engine.pointer_up() is None
    assert line.points[0].time == pytest.approx(11.25)

    engine.pointer_down(400, 300)
    assert engine.state == DRAWING
    assert engine.selected_id is None


def test_freehand_collects_every_move_and_keeps_tool(engine):
    engine.set_tool("freehand")
    engine.pointer_down(0, 0)
    for i in range(1, 500):
        engine.pointer_move(i, i % 7)
    drawing = engine.pointer_up()

    assert len(drawing.points) == 500
    assert engine.active_tool == "freehand"


def test_text_tool_prompts_then_commits(view, events, recorded):
    requests = []
    engine = DrawingEngine(view, events=events, on_text_request=requests.append)
    engine.set_tool("text")
    engine.pointer_down(100, 100)

    assert engine.drawings == []
    assert requests and requests[0].tool == "text"
    assert {"type": "text_request", "tool": "text", "x": 100, "y": 100} in recorded

    drawing = engine.submit_text("Breakout")
    assert drawing.type == "text"
    assert drawing.text == "Breakout"
    assert engine.pending_text is None
    assert engine.active_tool == "select"


def test_blank_text_cancels_prompt(engine):
    engine.set_tool("text")
    engine.pointer_down(100, 100)
    assert engine.submit_text("   ") is None
    assert engine.pending_text is None
    assert engine.drawings == []


def test_pointer_is_ignored_while_prompt_is_open(engine):
    engine.set_tool("text")
    engine.pointer_down(100, 100)
    engine.pointer_down(200, 200)
    assert engine.pending_text.anchor.x == 100


def test_callout_prompts_after_drag(engine):
    assert draw(engine, "callout", (10, 10), (60, 80)) is None
    assert engine.pending_text.tool == "callout"
    assert [c.kind for c in engine.render()] == ["clear", "line"]

    drawing = engine.submit_text("Support")
    assert drawing.type == "callout"
    assert len(drawing.points) == 2
    assert drawing.text == "Support"


def test_delete_and_backspace_remove_selection(engine):
    first = draw(engine, "trendline", (0, 0), (50, 50))
    second = draw(engine, "horizontal", (0, 200), (10, 200))

    engine.key_down("Delete")
    assert engine.drawings == [first]
    assert engine.selected_id is None

    engine.select(first.id)
    engine.key_down("Backspace")
    assert engine.drawings == []
    assert engine.get_drawing(second.id) is None


def test_escape_cancels_prompt_before_clearing(engine):
    draw(engine, "trendline", (0, 0), (50, 50))
    engine.set_tool("text")
    engine.pointer_down(100, 100)

    engine.key_down("Escape")
    assert engine.pending_text is None
    assert len(engine.drawings) == 1

    engine.key_down("Escape")
    assert engine.drawings == []


def test_delete_unknown_drawing_returns_false(engine):
    assert engine.delete_drawing("missing") is False
    with pytest.raises(LookupError):
        engine.select("missing")


def test_render_is_idempotent(engine):
    draw(engine, "trendline", (80, 200), (160, 100))
    first = engine.render()
    assert first == engine.render()
    assert [c.kind for c in first] == ["clear", "line", "handle", "handle"]


def test_render_follows_view_changes(engine, view, recorded):
    draw(engine, "trendline", (80, 200), (160, 100))
    before = engine.render()
    view.scroll(5)
    after = engine.render()

    assert before != after
    assert after[1].x1 == pytest.approx(40.0)
    assert any(e.get("action") == "view" for e in recorded)


def test_tool_and_color_selection(engine):
    with pytest.raises(ValueError):
        engine.set_tool("laser")
    engine.set_color("#123456")
    drawing = draw(engine, "fibonacci", (0, 0), (40, 40))
    assert drawing.color == "#123456"


def test_changing_tool_abandons_gesture(engine):
    engine.set_tool("trendline")
    engine.pointer_down(10, 10)
    engine.set_tool("rectangle")
    assert engine.state == IDLE
    assert engine.pointer_up() is None


def test_load_drawings_rejects_unknown_kind(engine):
    with pytest.raises(ValueError):
        engine.load_drawings([Drawing("x", "arrow", [Point(0, 0)])])


def test_failing_listener_does_not_break_engine(engine, events):
    def boom(_payload):
        raise RuntimeError("listener failed")

    events.subscribe(boom)
    assert draw(engine, "trendline", (0, 0), (50, 50)) is not None


def test_freehand_interior_points_hit(engine):
    engine.set_tool("freehand")
    engine.pointer_down(100, 100)
    for i in range(1, 500):
        engine.pointer_move(100 + i, 100 + (i % 20))
    drawing = engine.pointer_up()

    for probe in (drawing.points[1], drawing.points[250], drawing.points[498]):
        assert is_point_on_shape(Point(probe.x, probe.y), drawing, engine.view)
