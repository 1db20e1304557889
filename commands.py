"""
AutomataFlow - Diagram Commands
Factories turning edits of a DiagramData into reversible Actions.

Each factory validates its input against the current diagram, snapshots
whatever the backward effect needs into an ActionData payload and returns
the Action. Nothing is changed until the Action is pushed to an UndoManager.
"""

from dataclasses import dataclass, field
from typing import Optional
import logging

from models import DiagramData, StateData, TransitionData, Position, generate_uuid
from undo import Action, ActionData


logger = logging.getLogger(__name__)


# ============================================================================
# Payloads
# ============================================================================

@dataclass
class StateSnapshotData(ActionData):
    """Everything needed to put a state (and its transitions) back."""
    state_dict: dict
    index: int
    connected: list[tuple[int, dict]] = field(default_factory=list)  # (index, transition dict)
    was_start: bool = False


@dataclass
class MoveStateData(ActionData):
    state_id: str
    old_x: float
    old_y: float
    new_x: float
    new_y: float


@dataclass
class RenameStateData(ActionData):
    state_id: str
    old_label: str
    new_label: str


@dataclass
class AcceptFlagData(ActionData):
    state_id: str
    old_value: bool
    new_value: bool


@dataclass
class StartStateData(ActionData):
    old_state_id: Optional[str]
    new_state_id: Optional[str]


@dataclass
class TransitionSnapshotData(ActionData):
    transition_dict: dict
    index: int


@dataclass
class TokenData(ActionData):
    transition_id: str
    token: str
    index: int


# ============================================================================
# Lookup helpers
# ============================================================================

def _require_state(diagram: DiagramData, state_id: str) -> StateData:
    state = diagram.get_state_by_id(state_id)
    if state is None:
        logger.warning("Unknown state %r", state_id)
        raise KeyError(state_id)
    return state


def _require_transition(diagram: DiagramData, transition_id: str) -> TransitionData:
    transition = diagram.get_transition_by_id(transition_id)
    if transition is None:
        logger.warning("Unknown transition %r", transition_id)
        raise KeyError(transition_id)
    return transition


def _invalid(message: str) -> ValueError:
    logger.warning(message)
    return ValueError(message)


def _clean_label(label: str) -> str:
    label = (label or "").strip()
    if not label:
        raise _invalid("State label cannot be empty")
    return label


def _index_of(items: list, item_id: str) -> int:
    for i, item in enumerate(items):
        if item.id == item_id:
            return i
    raise KeyError(item_id)


def _remove_by_id(items: list, item_id: str) -> None:
    del items[_index_of(items, item_id)]


# ============================================================================
# States
# ============================================================================

def add_state(diagram: DiagramData, label: str, x: float, y: float) -> Action:
    """Create a new state at (x, y)."""
    state = StateData(id=generate_uuid(), label=_clean_label(label), position=Position(x, y))
    data = StateSnapshotData(state_dict=state.to_dict(), index=len(diagram.states))

    def forward(d: StateSnapshotData) -> None:
        index = min(d.index, len(diagram.states))
        diagram.states.insert(index, StateData.from_dict(d.state_dict))

    def backward(d: StateSnapshotData) -> None:
        _remove_by_id(diagram.states, d.state_dict["id"])

    return Action(
        "Add State",
        f"Add state '{state.label}' at ({x:g}, {y:g})",
        forward, backward, data
    )


def remove_state(diagram: DiagramData, state_id: str) -> Action:
    """Delete a state together with every transition touching it."""
    state = _require_state(diagram, state_id)
    connected = [
        (i, t.to_dict()) for i, t in enumerate(diagram.transitions)
        if t.source_id == state_id or t.target_id == state_id
    ]
    data = StateSnapshotData(
        state_dict=state.to_dict(),
        index=_index_of(diagram.states, state_id),
        connected=connected,
        was_start=diagram.start_state_id == state_id
    )

    def forward(d: StateSnapshotData) -> None:
        sid = d.state_dict["id"]
        for _, transition_dict in d.connected:
            _remove_by_id(diagram.transitions, transition_dict["id"])
        _remove_by_id(diagram.states, sid)
        if d.was_start:
            diagram.start_state_id = None

    def backward(d: StateSnapshotData) -> None:
        diagram.states.insert(min(d.index, len(diagram.states)),
                              StateData.from_dict(d.state_dict))
        # Ascending order keeps every saved index valid while reinserting
        for index, transition_dict in sorted(d.connected, key=lambda item: item[0]):
            diagram.transitions.insert(min(index, len(diagram.transitions)),
                                       TransitionData.from_dict(transition_dict))
        if d.was_start:
            diagram.start_state_id = d.state_dict["id"]

    return Action(
        "Remove State",
        f"Remove state '{state.label}' and {len(connected)} transition(s)",
        forward, backward, data
    )


def move_state(diagram: DiagramData, state_id: str, new_x: float, new_y: float,
               old_x: Optional[float] = None, old_y: Optional[float] = None) -> Action:
    """
    Move a state to (new_x, new_y).
    The canvas moves items live while dragging, so the position before the
    drag can be passed explicitly as old_x/old_y.
    """
    state = _require_state(diagram, state_id)
    data = MoveStateData(
        state_id=state_id,
        old_x=state.position.x if old_x is None else old_x,
        old_y=state.position.y if old_y is None else old_y,
        new_x=new_x,
        new_y=new_y
    )

    def forward(d: MoveStateData) -> None:
        target = _require_state(diagram, d.state_id)
        target.position.x = d.new_x
        target.position.y = d.new_y

    def backward(d: MoveStateData) -> None:
        target = _require_state(diagram, d.state_id)
        target.position.x = d.old_x
        target.position.y = d.old_y

    return Action(
        "Move State",
        f"Move state '{state.label}' to ({new_x:g}, {new_y:g})",
        forward, backward, data
    )


def rename_state(diagram: DiagramData, state_id: str, new_label: str) -> Action:
    state = _require_state(diagram, state_id)
    data = RenameStateData(state_id=state_id, old_label=state.label,
                           new_label=_clean_label(new_label))

    def forward(d: RenameStateData) -> None:
        _require_state(diagram, d.state_id).label = d.new_label

    def backward(d: RenameStateData) -> None:
        _require_state(diagram, d.state_id).label = d.old_label

    return Action(
        "Rename State",
        f"Rename state '{data.old_label}' to '{data.new_label}'",
        forward, backward, data
    )


def set_accept(diagram: DiagramData, state_id: str, is_accept: bool) -> Action:
    state = _require_state(diagram, state_id)
    data = AcceptFlagData(state_id=state_id, old_value=state.is_accept, new_value=bool(is_accept))

    def forward(d: AcceptFlagData) -> None:
        _require_state(diagram, d.state_id).is_accept = d.new_value

    def backward(d: AcceptFlagData) -> None:
        _require_state(diagram, d.state_id).is_accept = d.old_value

    name = "Mark Accept State" if data.new_value else "Unmark Accept State"
    return Action(name, f"{name} '{state.label}'", forward, backward, data)


def set_start_state(diagram: DiagramData, state_id: Optional[str]) -> Action:
    """Make state_id the start state, or clear the start marker with None."""
    if state_id is not None:
        label = _require_state(diagram, state_id).label
        description = f"Make '{label}' the start state"
    else:
        description = "Clear the start state"
    data = StartStateData(old_state_id=diagram.start_state_id, new_state_id=state_id)

    def forward(d: StartStateData) -> None:
        diagram.start_state_id = d.new_state_id

    def backward(d: StartStateData) -> None:
        diagram.start_state_id = d.old_state_id

    return Action("Set Start State", description, forward, backward, data)


# ============================================================================
# Transitions
# ============================================================================

def add_transition(diagram: DiagramData, source_id: str, target_id: str,
                   tokens: tuple = ()) -> Action:
    source = _require_state(diagram, source_id)
    target = _require_state(diagram, target_id)
    token_list = []
    for token in tokens:
        token = _clean_token(token)
        if token in token_list:
            raise _invalid(f"Duplicate token {token!r}")
        token_list.append(token)

    transition = TransitionData(id=generate_uuid(), source_id=source_id,
                                target_id=target_id, tokens=token_list)
    data = TransitionSnapshotData(transition_dict=transition.to_dict(),
                                  index=len(diagram.transitions))

    def forward(d: TransitionSnapshotData) -> None:
        # Endpoints may have been removed and restored as new objects in between
        _require_state(diagram, d.transition_dict["source_id"])
        _require_state(diagram, d.transition_dict["target_id"])
        diagram.transitions.insert(min(d.index, len(diagram.transitions)),
                                   TransitionData.from_dict(d.transition_dict))

    def backward(d: TransitionSnapshotData) -> None:
        _remove_by_id(diagram.transitions, d.transition_dict["id"])

    return Action(
        "Add Transition",
        f"Connect '{source.label}' to '{target.label}'",
        forward, backward, data
    )


def remove_transition(diagram: DiagramData, transition_id: str) -> Action:
    transition = _require_transition(diagram, transition_id)
    data = TransitionSnapshotData(transition_dict=transition.to_dict(),
                                  index=_index_of(diagram.transitions, transition_id))

    def forward(d: TransitionSnapshotData) -> None:
        _remove_by_id(diagram.transitions, d.transition_dict["id"])

    def backward(d: TransitionSnapshotData) -> None:
        diagram.transitions.insert(min(d.index, len(diagram.transitions)),
                                   TransitionData.from_dict(d.transition_dict))

    return Action(
        "Remove Transition",
        f"Remove transition {transition.label_text() or '(no tokens)'}",
        forward, backward, data
    )


def _clean_token(token: str) -> str:
    token = (token or "").strip()
    if not token:
        raise _invalid("Token cannot be empty")
    return token


def add_token(diagram: DiagramData, transition_id: str, token: str) -> Action:
    """Append a token to a transition's label."""
    transition = _require_transition(diagram, transition_id)
    token = _clean_token(token)
    if token in transition.tokens:
        raise _invalid(f"Transition already accepts {token!r}")
    data = TokenData(transition_id=transition_id, token=token, index=len(transition.tokens))

    def forward(d: TokenData) -> None:
        tokens = _require_transition(diagram, d.transition_id).tokens
        tokens.insert(min(d.index, len(tokens)), d.token)

    def backward(d: TokenData) -> None:
        _require_transition(diagram, d.transition_id).tokens.remove(d.token)

    return Action("Add Token", f"Add token '{token}' to transition",
                  forward, backward, data)


def remove_token(diagram: DiagramData, transition_id: str, token: str) -> Action:
    transition = _require_transition(diagram, transition_id)
    if token not in transition.tokens:
        raise _invalid(f"Transition does not accept {token!r}")
    data = TokenData(transition_id=transition_id, token=token,
                     index=transition.tokens.index(token))

    def forward(d: TokenData) -> None:
        _require_transition(diagram, d.transition_id).tokens.remove(d.token)

    def backward(d: TokenData) -> None:
        tokens = _require_transition(diagram, d.transition_id).tokens
        tokens.insert(min(d.index, len(tokens)), d.token)

    return Action("Remove Token", f"Remove token '{token}' from transition",
                  forward, backward, data)
