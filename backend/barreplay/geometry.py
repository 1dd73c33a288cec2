"""Plain geometry helpers shared by the shape renderers and hit tests."""
from __future__ import annotations

import math
from typing import List, NamedTuple, Tuple

from .config import (
    FIB_LEVELS,
    RISK_REWARD_MULTIPLES,
    TEXT_CHAR_WIDTH,
    TEXT_FONT_SIZE,
    TEXT_PADDING,
)


class Box(NamedTuple):
    left: float
    top: float
    right: float
    bottom: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    def contains(self, x: float, y: float) -> bool:
        return self.left <= x <= self.right and self.top <= y <= self.bottom

    def edges(self) -> List[Tuple[float, float, float, float]]:
        return [
            (self.left, self.top, self.right, self.top),
            (self.right, self.top, self.right, self.bottom),
            (self.right, self.bottom, self.left, self.bottom),
            (self.left, self.bottom, self.left, self.top),
        ]


def box_from_corners(x1: float, y1: float, x2: float, y2: float) -> Box:
    return Box(min(x1, x2), min(y1, y2), max(x1, x2), max(y1, y2))


def distance_to_segment(px: float, py: float, x1: float, y1: float, x2: float, y2: float) -> float:
    """Distance from P to the segment, with the projection clamped to [0, 1].

    A zero-length segment degrades to point distance.
    """
    dx = x2 - x1
    dy = y2 - y1
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return math.hypot(px - x1, py - y1)
    t = ((px - x1) * dx + (py - y1) * dy) / length_sq
    t = max(0.0, min(1.0, t))
    return math.hypot(px - (x1 + t * dx), py - (y1 + t * dy))


def within_x_span(px: float, x1: float, x2: float) -> bool:
    return min(x1, x2) <= px <= max(x1, x2)


def fibonacci_levels(y1: float, y2: float) -> List[Tuple[float, float]]:
    """(ratio, y) for every retracement level between the two anchors."""
    return [(level, y1 + (y2 - y1) * level) for level in FIB_LEVELS]


def fibonacci_label(level: float) -> str:
    return f"{level * 100:g}%"


def risk_reward_levels(entry_y: float, target_y: float) -> Tuple[List[Tuple[int, float]], List[Tuple[int, float]]]:
    """Reward and risk level lines as (multiple, y).

    One R is the entry-to-target distance; reward levels run towards the
    target, risk levels mirror them on the other side of the entry.
    """
    distance = target_y - entry_y
    rewards = [(m, entry_y + distance * m) for m in RISK_REWARD_MULTIPLES]
    risks = [(m, entry_y - distance * m) for m in RISK_REWARD_MULTIPLES]
    return rewards, risks


def measure_text(text: str, font_size: int = TEXT_FONT_SIZE) -> Tuple[float, float]:
    """Approximate rendered (width, height) of a single-line label."""
    return len(text) * font_size * TEXT_CHAR_WIDTH, float(font_size)


def label_box(x: float, y: float, text: str, font_size: int = TEXT_FONT_SIZE, padding: int = TEXT_PADDING) -> Box:
    """Background box of a label whose text baseline starts at (x, y)."""
    width, height = measure_text(text, font_size)
    return Box(x - padding, y - height - padding, x + width + padding, y + padding)
