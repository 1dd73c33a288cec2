"""Backend-neutral draw commands for the annotation overlay.

Shapes never talk to a concrete canvas. They append commands to a
``DrawCommandList`` which a canvas, SVG or GPU backend replays in order.
Commands are frozen dataclasses so two render passes can be compared directly.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .config import DASH_PATTERN, HANDLE_SIZE, LINE_WIDTH, TEXT_CORNER_RADIUS, TEXT_FONT_SIZE, TEXT_PADDING


@dataclass(frozen=True)
class Clear:
    width: float
    height: float
    kind: str = "clear"


@dataclass(frozen=True)
class Line:
    x1: float
    y1: float
    x2: float
    y2: float
    color: str
    width: float = LINE_WIDTH
    dash: Optional[Tuple[int, int]] = None
    kind: str = "line"


@dataclass(frozen=True)
class Polyline:
    points: Tuple[Tuple[float, float], ...]
    color: str
    width: float = LINE_WIDTH
    cap: str = "round"
    join: str = "round"
    kind: str = "polyline"


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float
    stroke: Optional[str]
    fill: Optional[str] = None
    line_width: float = LINE_WIDTH
    kind: str = "rect"


@dataclass(frozen=True)
class Text:
    x: float
    y: float
    text: str
    color: str
    font_size: int = TEXT_FONT_SIZE
    kind: str = "text"


@dataclass(frozen=True)
class Label:
    """Text over a filled rounded background box."""
    x: float
    y: float
    text: str
    color: str
    background: str
    border: Optional[str] = None
    radius: float = TEXT_CORNER_RADIUS
    padding: float = TEXT_PADDING
    font_size: int = TEXT_FONT_SIZE
    kind: str = "label"


@dataclass(frozen=True)
class Handle:
    x: float
    y: float
    color: str
    size: float = HANDLE_SIZE
    kind: str = "handle"


DrawCommand = Union[Clear, Line, Polyline, Rect, Text, Label, Handle]


class DrawCommandList:
    """Collects draw commands in paint order."""

    def __init__(self, width: float, height: float) -> None:
        self.width = width
        self.height = height
        self.commands: List[DrawCommand] = []

    def clear(self) -> None:
        self.commands.append(Clear(self.width, self.height))

    def line(self, x1: float, y1: float, x2: float, y2: float, color: str, width: float = LINE_WIDTH) -> None:
        self.commands.append(Line(x1, y1, x2, y2, color, width))

    def dashed_line(self, x1: float, y1: float, x2: float, y2: float, color: str, width: float = 1) -> None:
        self.commands.append(Line(x1, y1, x2, y2, color, width, DASH_PATTERN))

    def polyline(self, points: Sequence[Tuple[float, float]], color: str, width: float = LINE_WIDTH) -> None:
        self.commands.append(Polyline(tuple(points), color, width))

    def rect(self, x: float, y: float, width: float, height: float, stroke: Optional[str],
             fill: Optional[str] = None, line_width: float = LINE_WIDTH) -> None:
        self.commands.append(Rect(x, y, width, height, stroke, fill, line_width))

    def text(self, x: float, y: float, text: str, color: str) -> None:
        self.commands.append(Text(x, y, text, color))

    def label(self, x: float, y: float, text: str, color: str, background: str, border: Optional[str] = None) -> None:
        self.commands.append(Label(x, y, text, color, background, border))

    def handle(self, x: float, y: float, color: str) -> None:
        self.commands.append(Handle(x, y, color))


def serialize_commands(commands: Sequence[DrawCommand]) -> List[Dict[str, Any]]:
    return [asdict(command) for command in commands]
