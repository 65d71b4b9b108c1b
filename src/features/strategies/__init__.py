"""Channel strategies, one concrete class per channel kind."""

from src.features.strategies.api import ApiKeyStrategy, TokenApiStrategy
from src.features.strategies.browser import BrowserSessionStrategy
from src.features.strategies.parsers import (
    PARSERS,
    SnapshotParser,
    get_parser,
    percent_left_text,
    snapshot_json,
)
from src.features.strategies.process import LocalProcessStrategy
from src.features.strategies.terminal import TerminalStrategy


__all__ = [
    "PARSERS",
    "ApiKeyStrategy",
    "BrowserSessionStrategy",
    "LocalProcessStrategy",
    "SnapshotParser",
    "TerminalStrategy",
    "TokenApiStrategy",
    "get_parser",
    "percent_left_text",
    "snapshot_json",
]
