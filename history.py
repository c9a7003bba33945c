"""
Bounded undo/redo over map document mutations.

Usage:
    history = HistoryManager(doc)
    history.execute(PaintCellsCommand(layer_id, [cell]))
    history.undo()   # cell gone
    history.redo()   # cell back

Drag-style interactions group their steps into one entry:

    history.begin_gesture("Move object")
    history.execute(...)   # applied immediately, not recorded yet
    history.execute(...)
    history.commit_gesture()   # one undo step (nothing if empty)
    # or history.cancel_gesture() to revert every step and record nothing
"""

import logging
from typing import List, Optional

from commands import Command, CompositeCommand
from config import DEFAULTS
from errors import InvalidInput, InvariantViolation
from map_document import MapDocument

logger = logging.getLogger(__name__)


class HistoryManager:
    """
    Linear undo/redo stacks for one document.

    The undo stack holds at most max_depth entries; the oldest entry is
    dropped when a new one would exceed it. Any new command clears the redo
    stack. undo()/redo() on an empty stack return None.
    """

    def __init__(self, doc: MapDocument, max_depth: Optional[int] = None):
        self.doc = doc
        self._undo_stack: List[Command] = []
        self._redo_stack: List[Command] = []
        self._max_depth = DEFAULTS.max_history if max_depth is None else max_depth
        if self._max_depth < 1:
            raise InvalidInput(f"max_depth must be >= 1, got {self._max_depth}")
        self._gesture: Optional[List[Command]] = None
        self._gesture_label = ""

    def execute(self, command: Command) -> Command:
        """
        Execute a command and record it.

        Returns:
            The command (for callers that need ids it generated)

        Raises:
            Whatever the command raises; nothing is recorded then.
        """
        command.execute(self.doc)
        if self._gesture is not None:
            self._gesture.append(command)
        else:
            self._push(command)
        logger.debug("Executed: %s", command.description)
        return command

    def _push(self, command: Command):
        self._undo_stack.append(command)
        self._redo_stack.clear()
        if len(self._undo_stack) > self._max_depth:
            dropped = self._undo_stack.pop(0)
            logger.debug("History full, dropped: %s", dropped.description)

    def undo(self) -> Optional[str]:
        """
        Undo the last command.

        Returns:
            Description of undone command, or None if nothing to undo.
        """
        self._require_idle("undo")
        if not self._undo_stack:
            return None
        command = self._undo_stack.pop()
        command.undo(self.doc)
        self._redo_stack.append(command)
        logger.debug("Undid: %s", command.description)
        return command.description

    def redo(self) -> Optional[str]:
        """
        Redo the last undone command.

        Returns:
            Description of redone command, or None if nothing to redo.
        """
        self._require_idle("redo")
        if not self._redo_stack:
            return None
        command = self._redo_stack.pop()
        command.execute(self.doc)
        self._undo_stack.append(command)
        logger.debug("Redid: %s", command.description)
        return command.description

    def _require_idle(self, action: str):
        if self._gesture is not None:
            raise InvariantViolation(f"Cannot {action} during a gesture")

    # --- Gestures ---

    @property
    def in_gesture(self) -> bool:
        return self._gesture is not None

    def begin_gesture(self, description: str = "Edit"):
        if self._gesture is not None:
            raise InvariantViolation("A gesture is already in progress")
        self._gesture = []
        self._gesture_label = description

    def commit_gesture(self) -> Optional[Command]:
        """Record the gesture's commands as one entry. Empty gestures record nothing."""
        if self._gesture is None:
            raise InvariantViolation("No gesture in progress")
        commands, self._gesture = self._gesture, None
        if not commands:
            return None
        entry = commands[0] if len(commands) == 1 else CompositeCommand(commands, self._gesture_label)
        self._push(entry)
        logger.debug("Committed gesture %r (%d steps)", self._gesture_label, len(commands))
        return entry

    def cancel_gesture(self):
        """Revert everything the gesture applied and record nothing."""
        if self._gesture is None:
            raise InvariantViolation("No gesture in progress")
        commands, self._gesture = self._gesture, None
        for command in reversed(commands):
            command.undo(self.doc)
        logger.debug("Cancelled gesture %r (%d steps)", self._gesture_label, len(commands))

    # --- State ---

    @property
    def can_undo(self) -> bool:
        return len(self._undo_stack) > 0

    @property
    def can_redo(self) -> bool:
        return len(self._redo_stack) > 0

    @property
    def undo_description(self) -> Optional[str]:
        if self._undo_stack:
            return self._undo_stack[-1].description
        return None

    @property
    def redo_description(self) -> Optional[str]:
        if self._redo_stack:
            return self._redo_stack[-1].description
        return None

    @property
    def undo_count(self) -> int:
        return len(self._undo_stack)

    @property
    def redo_count(self) -> int:
        return len(self._redo_stack)

    @property
    def max_depth(self) -> int:
        return self._max_depth

    def clear(self):
        """Clear all undo/redo history."""
        self._undo_stack.clear()
        self._redo_stack.clear()
