"""
AutomataFlow - Undo/Redo System
Reversible actions and the cursor-addressed history that replays them.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional
import logging
import threading


logger = logging.getLogger(__name__)


Effect = Callable[[Any], None]
Listener = Callable[[], None]


class HistoryError(Exception):
    """Base class for history engine errors."""


class InvalidActionError(HistoryError, TypeError):
    """An action was built or pushed without the parts it needs."""


class HistoryBusyError(HistoryError, RuntimeError):
    """The history was mutated from inside one of its own effects."""


class ActionData:
    """
    Payload shared by an action's forward and backward effects.
    Empty on purpose: each kind of action derives its own dataclass.
    """


@dataclass(frozen=True, eq=False)
class Action:
    """A reversible unit of edit history."""
    name: str
    description: str
    forward: Effect
    backward: Effect
    data: ActionData

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name:
            raise InvalidActionError("Action name must be a non-empty string")
        if not isinstance(self.description, str):
            raise InvalidActionError("Action description must be a string")
        if not callable(self.forward):
            raise InvalidActionError(f"Action {self.name!r} has no callable forward effect")
        if not callable(self.backward):
            raise InvalidActionError(f"Action {self.name!r} has no callable backward effect")
        if not isinstance(self.data, ActionData):
            raise InvalidActionError(
                f"Action {self.name!r} data must be an ActionData, got {type(self.data).__name__}"
            )

    def __repr__(self) -> str:
        return f"Action({self.name!r})"


class UndoManager:
    """
    Linear undo/redo history for one editing session.

    The stack keeps every recorded action in chronological order and the
    cursor points at the most recently applied one (-1 when nothing is
    applied). Actions after the cursor form the redo tail until the next
    push replaces them.

    Stack and cursor only change after an effect has returned, so an effect
    that raises leaves the history exactly as it was. Undo/redo at either
    end of the history are silent no-ops and notify nobody.
    """

    def __init__(self):
        self._stack: list[Action] = []
        self._stack_location = -1
        self._listeners: set[Listener] = set()
        self._lock = threading.RLock()
        self._is_replaying = False
        # (cursor, action at cursor) when last saved
        self._clean_mark: tuple[int, Optional[Action]] = (-1, None)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def push_action(self, action: Action) -> None:
        """Apply an action and record it as the new top of history."""
        if not isinstance(action, Action):
            raise InvalidActionError(f"Cannot push {action!r}: not an Action")

        with self._lock:
            self._ensure_idle("push_action")
            self._run(action.forward, action)

            del self._stack[self._stack_location + 1:]
            self._stack.append(action)
            self._stack_location = len(self._stack) - 1
            logger.debug("Pushed %r at %d", action, self._stack_location)
            self._notify()

    def undo(self) -> bool:
        """Revert the current action. Returns True if something was undone."""
        with self._lock:
            self._ensure_idle("undo")
            if self._stack_location == -1:
                return False

            action = self._stack[self._stack_location]
            self._run(action.backward, action)

            self._stack_location -= 1
            logger.debug("Undid %r, cursor now %d", action, self._stack_location)
            self._notify()
            return True

    def redo(self) -> bool:
        """Re-apply the next action of the redo tail. Returns True if something was redone."""
        with self._lock:
            self._ensure_idle("redo")
            if self._stack_location == len(self._stack) - 1:
                return False

            action = self._stack[self._stack_location + 1]
            self._run(action.forward, action)

            self._stack_location += 1
            logger.debug("Redid %r, cursor now %d", action, self._stack_location)
            self._notify()
            return True

    def jump_to(self, index: int) -> None:
        """Undo or redo step by step until the cursor sits at index."""
        with self._lock:
            self._ensure_idle("jump_to")
            if not -1 <= index <= len(self._stack) - 1:
                raise IndexError(f"History index {index} out of range")
            # A listener may push mid-jump and cut the stack below index
            while self._stack_location > index:
                if not self.undo():
                    break
            while self._stack_location < index:
                if not self.redo():
                    break

    def reset(self) -> None:
        """Forget all history. Listeners are kept and not notified."""
        with self._lock:
            self._ensure_idle("reset")
            self._stack.clear()
            self._stack_location = -1
            self._clean_mark = (-1, None)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_stack(self) -> tuple[Action, ...]:
        with self._lock:
            return tuple(self._stack)

    def get_stack_location(self) -> int:
        with self._lock:
            return self._stack_location

    def can_undo(self) -> bool:
        with self._lock:
            return self._stack_location >= 0

    def can_redo(self) -> bool:
        with self._lock:
            return self._stack_location < len(self._stack) - 1

    def undo_text(self) -> Optional[str]:
        """Name of the action undo() would revert."""
        with self._lock:
            if self.can_undo():
                return self._stack[self._stack_location].name
            return None

    def redo_text(self) -> Optional[str]:
        """Name of the action redo() would re-apply."""
        with self._lock:
            if self.can_redo():
                return self._stack[self._stack_location + 1].name
            return None

    # ------------------------------------------------------------------
    # Dirty state
    # ------------------------------------------------------------------

    def mark_clean(self) -> None:
        """Remember the current position as the saved one."""
        with self._lock:
            self._clean_mark = (self._stack_location, self._current_action())
            self._notify()

    def is_clean(self) -> bool:
        with self._lock:
            location, action = self._clean_mark
            return location == self._stack_location and action is self._current_action()

    def _current_action(self) -> Optional[Action]:
        if self._stack_location == -1:
            return None
        return self._stack[self._stack_location]

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> None:
        if not callable(listener):
            raise TypeError(f"Listener {listener!r} is not callable")
        with self._lock:
            self._listeners.add(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.discard(listener)

    def _notify(self) -> None:
        # Snapshot so listeners may (un)subscribe while being notified
        for listener in list(self._listeners):
            listener()

    # ------------------------------------------------------------------
    # Effects
    # ------------------------------------------------------------------

    def _ensure_idle(self, operation: str) -> None:
        if self._is_replaying:
            logger.warning("Rejected %s while an action effect is running", operation)
            raise HistoryBusyError(f"Cannot {operation} from inside an action effect")

    def _run(self, effect: Effect, action: Action) -> None:
        self._is_replaying = True
        try:
            effect(action.data)
        except Exception:
            logger.warning("Effect of %r failed; history left unchanged", action, exc_info=True)
            raise
        finally:
            self._is_replaying = False

    def __len__(self) -> int:
        return len(self._stack)

    def __repr__(self) -> str:
        return f"UndoManager({len(self._stack)} actions, cursor={self._stack_location})"
