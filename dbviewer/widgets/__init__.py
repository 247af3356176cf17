"""Widget library for the Textual UI."""

from __future__ import annotations

from .prompts import ConfirmScreen, InputScreen, PickScreen
from .query_pad import QueryPad
from .status_bar import StatusBar

__all__ = ["ConfirmScreen", "InputScreen", "PickScreen", "QueryPad", "StatusBar"]
