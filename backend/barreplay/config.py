import logging
import os
from datetime import timedelta
from pathlib import Path
from typing import Dict, Optional, Tuple


DATA_DIR = Path(os.getenv("BARREPLAY_DATA_DIR", Path(__file__).resolve().parent.parent / "data"))

CANDLE_API_URL = os.getenv("BARREPLAY_CANDLE_API_URL", "http://localhost:3001")
CANDLE_API_TIMEOUT = 10.0


INTERVAL_MINUTES: Dict[str, int] = {
    "1m": 1,
    "5m": 5,
    "15m": 15,
    "30m": 30,
    "1h": 60,
    "4h": 240,
    "1d": 1440,
}

INTERVAL_SECONDS: Dict[str, int] = {key: value * 60 for key, value in INTERVAL_MINUTES.items()}


def interval_to_timedelta(interval: str) -> timedelta:
    if interval not in INTERVAL_SECONDS:
        raise ValueError(f"Unsupported interval: {interval}")
    return timedelta(seconds=INTERVAL_SECONDS[interval])


# Drawing overlay
HIT_TOLERANCE_PX = 8.0
OFFSCREEN_PX = 10000.0
LINE_WIDTH = 2
SELECTED_LINE_WIDTH = 3
HANDLE_SIZE = 6
DASH_PATTERN: Tuple[int, int] = (5, 5)

FIB_LEVELS: Tuple[float, ...] = (0.0, 0.236, 0.382, 0.5, 0.618, 0.786, 1.0)
RISK_REWARD_MULTIPLES: Tuple[int, ...] = (1, 2, 3)

TEXT_FONT_SIZE = 12
TEXT_CHAR_WIDTH = 0.6  # em fraction per glyph
TEXT_PADDING = 4
TEXT_CORNER_RADIUS = 4

DEFAULT_TOOL_COLORS: Dict[str, str] = {
    "freehand": "#2962FF",
    "trendline": "#2962FF",
    "horizontal": "#FF6D00",
    "rectangle": "#00897B",
    "fibonacci": "#9C27B0",
    "riskReward": "#F44336",
    "text": "#131722",
    "callout": "#131722",
}
FALLBACK_COLOR = "#000000"

ENTRY_COLOR = "#4CAF50"
REWARD_COLOR = "#2196F3"
RISK_COLOR = "#F44336"
LABEL_BACKGROUND = "#FFFFFF"
LABEL_BACKGROUND_SELECTED = "#FFF59D"
RECTANGLE_FILL_ALPHA = "40"


# Playback
DEFAULT_SPEED = 1.0  # candles per second


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging from BARREPLAY_LOG_LEVEL (default INFO)."""
    name = (level or os.getenv("BARREPLAY_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
