"""
Tests for diagram data models
"""

import pytest

from models import DiagramData, StateData, TransitionData, Position, generate_uuid


def make_diagram():
    return DiagramData(
        states=[
            StateData(id="a", label="A", position=Position(1.5, 2.5), is_accept=True),
            StateData(id="b", label="B"),
        ],
        transitions=[
            TransitionData(id="ab", source_id="a", target_id="b", tokens=["x"]),
            TransitionData(id="ba", source_id="b", target_id="a", tokens=["y", "z"]),
            TransitionData(id="bb", source_id="b", target_id="b"),
        ],
        start_state_id="a"
    )


class TestDiagramData:

    def test_json_round_trip(self):
        diagram = make_diagram()
        restored = DiagramData.from_json(diagram.to_json())
        assert restored == diagram

    def test_from_dict_defaults(self):
        diagram = DiagramData.from_dict({"states": [{"id": "s"}]})
        state = diagram.states[0]
        assert state.label == ""
        assert (state.position.x, state.position.y) == (0.0, 0.0)
        assert state.is_accept is False
        assert diagram.transitions == []
        assert diagram.start_state_id is None

    def test_from_dict_converts_numbers(self):
        diagram = DiagramData.from_dict(
            {"states": [{"id": "s", "position": {"x": "10", "y": 4}, "is_accept": 1}]}
        )
        state = diagram.states[0]
        assert (state.position.x, state.position.y) == (10.0, 4.0)
        assert isinstance(state.position.x, float)
        assert state.is_accept is True

    def test_from_dict_rejects_bad_coordinates(self):
        with pytest.raises(ValueError):
            DiagramData.from_dict({"states": [{"id": "s", "position": {"x": "left"}}]})
        with pytest.raises(TypeError):
            DiagramData.from_dict({"states": [{"id": "s", "position": {"y": None}}]})

    def test_to_dict_copies_tokens(self):
        diagram = make_diagram()
        data = diagram.to_dict()
        data["transitions"][0]["tokens"].append("w")
        assert diagram.transitions[0].tokens == ["x"]

    def test_lookups(self):
        diagram = make_diagram()
        assert diagram.get_state_by_id("b").label == "B"
        assert diagram.get_state_by_id("nope") is None
        assert diagram.get_transition_by_id("ba").tokens == ["y", "z"]
        assert diagram.get_transition_by_id("nope") is None

    def test_transitions_for_state(self):
        diagram = make_diagram()
        assert [t.id for t in diagram.get_transitions_for_state("a")] == ["ab", "ba"]
        assert [t.id for t in diagram.get_transitions_for_state("b")] == ["ab", "ba", "bb"]

    def test_transitions_between_either_direction(self):
        diagram = make_diagram()
        assert [t.id for t in diagram.transitions_between("a", "b")] == ["ab", "ba"]
        assert [t.id for t in diagram.transitions_between("b", "a")] == ["ab", "ba"]
        assert [t.id for t in diagram.transitions_between("b", "b")] == ["bb"]


class TestTransitionData:

    def test_label_text(self):
        assert TransitionData(tokens=["a", "b"]).label_text() == "a, b"
        assert TransitionData().label_text() == ""

    def test_self_loop(self):
        assert TransitionData(source_id="s", target_id="s").is_self_loop
        assert not TransitionData(source_id="s", target_id="t").is_self_loop


def test_generate_uuid_unique():
    assert generate_uuid() != generate_uuid()
