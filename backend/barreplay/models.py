"""Data models for chart drawings."""
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional


TOOL_NONE = "none"
TOOL_SELECT = "select"

FREEHAND = "freehand"
TRENDLINE = "trendline"
HORIZONTAL = "horizontal"
RECTANGLE = "rectangle"
FIBONACCI = "fibonacci"
RISK_REWARD = "riskReward"
TEXT = "text"
CALLOUT = "callout"

DRAWING_TYPES = (FREEHAND, TRENDLINE, HORIZONTAL, RECTANGLE, FIBONACCI, RISK_REWARD, TEXT, CALLOUT)
# Tools whose in-progress gesture is always [start, current]
TWO_POINT_TYPES = (TRENDLINE, HORIZONTAL, RECTANGLE, FIBONACCI, RISK_REWARD, CALLOUT)
ALL_TOOLS = (TOOL_NONE, TOOL_SELECT) + DRAWING_TYPES


@dataclass
class Point:
    """A drawing vertex.

    ``x``/``y`` are pixel coordinates on the overlay and are recomputed on
    every render. ``time`` (logical bar index) and ``price`` are the anchor
    that survives pan and zoom; either may be missing when the chart view was
    not ready at the moment the point was captured.
    """
    x: float
    y: float
    time: Optional[float] = None
    price: Optional[float] = None

    @property
    def has_anchor(self) -> bool:
        return self.time is not None and self.price is not None

    def with_pixel(self, x: float, y: float) -> "Point":
        return replace(self, x=x, y=y)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"x": self.x, "y": self.y}
        if self.time is not None:
            data["time"] = self.time
        if self.price is not None:
            data["price"] = self.price
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Point":
        return Point(
            x=float(data.get("x", 0.0)),
            y=float(data.get("y", 0.0)),
            time=data.get("time"),
            price=data.get("price"),
        )


@dataclass
class Drawing:
    """Represents a committed annotation on the chart."""
    id: str
    type: str  # one of DRAWING_TYPES
    points: List[Point] = field(default_factory=list)
    color: str = "#000000"
    text: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "points": [p.to_dict() for p in self.points],
            "color": self.color,
        }
        if self.text is not None:
            data["text"] = self.text
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Drawing":
        return Drawing(
            id=data["id"],
            type=data["type"],
            points=[Point.from_dict(p) for p in data.get("points", [])],
            color=data.get("color") or "#000000",
            text=data.get("text"),
        )
