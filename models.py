"""
AutomataFlow - Data Models
Dataclasses for diagram data serialization/deserialization.
"""

from dataclasses import dataclass, field
from typing import Optional
import uuid
import json


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


@dataclass
class Position:
    """2D position on the canvas."""
    x: float = 0.0
    y: float = 0.0

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: dict) -> "Position":
        return cls(x=float(data.get("x", 0.0)), y=float(data.get("y", 0.0)))


@dataclass
class StateData:
    """A node of the diagram: one state of the machine."""
    id: str = field(default_factory=generate_uuid)
    label: str = ""
    position: Position = field(default_factory=Position)
    is_accept: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "position": self.position.to_dict(),
            "is_accept": self.is_accept
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StateData":
        return cls(
            id=data.get("id", generate_uuid()),
            label=str(data.get("label", "")),
            position=Position.from_dict(data.get("position", {})),
            is_accept=bool(data.get("is_accept", False))
        )


@dataclass
class TransitionData:
    """
    A directed edge between two states, labelled by the tokens it accepts.
    Source and target may be the same state (self-loop).
    """
    id: str = field(default_factory=generate_uuid)
    source_id: str = ""
    target_id: str = ""
    tokens: list[str] = field(default_factory=list)

    @property
    def is_self_loop(self) -> bool:
        return self.source_id == self.target_id

    def label_text(self) -> str:
        """Text shown next to the arrow."""
        return ", ".join(self.tokens)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "tokens": self.tokens.copy()
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TransitionData":
        return cls(
            id=data.get("id", generate_uuid()),
            source_id=data.get("source_id", ""),
            target_id=data.get("target_id", ""),
            tokens=list(data.get("tokens", []))
        )


@dataclass
class DiagramData:
    """
    Complete diagram state: states, transitions and the start marker.
    Serialized to the diagram JSON file.
    """
    states: list[StateData] = field(default_factory=list)
    transitions: list[TransitionData] = field(default_factory=list)
    start_state_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "states": [s.to_dict() for s in self.states],
            "transitions": [t.to_dict() for t in self.transitions],
            "start_state_id": self.start_state_id
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DiagramData":
        return cls(
            states=[StateData.from_dict(s) for s in data.get("states", [])],
            transitions=[TransitionData.from_dict(t) for t in data.get("transitions", [])],
            start_state_id=data.get("start_state_id")
        )

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    @classmethod
    def from_json(cls, json_str: str) -> "DiagramData":
        """Deserialize from JSON string."""
        return cls.from_dict(json.loads(json_str))

    def get_state_by_id(self, state_id: str) -> Optional[StateData]:
        """Find a state by its ID."""
        for state in self.states:
            if state.id == state_id:
                return state
        return None

    def get_transition_by_id(self, transition_id: str) -> Optional[TransitionData]:
        """Find a transition by its ID."""
        for transition in self.transitions:
            if transition.id == transition_id:
                return transition
        return None

    def get_transitions_for_state(self, state_id: str) -> list[TransitionData]:
        """Get all transitions entering or leaving a state."""
        return [t for t in self.transitions
                if t.source_id == state_id or t.target_id == state_id]

    def transitions_between(self, first_id: str, second_id: str) -> list[TransitionData]:
        """Transitions joining two states, in either direction."""
        pair = {first_id, second_id}
        return [t for t in self.transitions if {t.source_id, t.target_id} == pair]
