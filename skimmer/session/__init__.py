"""Session navigation: state, messages, reducer and loop."""

from .state import Mode, SessionState, UndoSlot, ViewFlags, ViewItem
from .navigator import Navigator, visible_items
from .loop import SessionLoop

__all__ = [
    "Mode", "SessionState", "UndoSlot", "ViewFlags", "ViewItem",
    "Navigator", "visible_items", "SessionLoop",
]
