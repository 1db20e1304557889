"""
Tests for diagram commands: every action's backward effect must restore
exactly what its forward effect changed, over repeated undo/redo cycles.
"""

import pytest

import commands
from commands import StateSnapshotData, MoveStateData, TokenData
from models import DiagramData, StateData, TransitionData, Position


@pytest.fixture
def abc_diagram():
    """Three states q0 -> q1 -> q2 with q0 as start and q2 accepting."""
    diagram = DiagramData(
        states=[
            StateData(id="s0", label="q0", position=Position(0, 0)),
            StateData(id="s1", label="q1", position=Position(100, 0)),
            StateData(id="s2", label="q2", position=Position(200, 0), is_accept=True),
        ],
        transitions=[
            TransitionData(id="t0", source_id="s0", target_id="s1", tokens=["a"]),
            TransitionData(id="t1", source_id="s1", target_id="s2", tokens=["b", "c"]),
            TransitionData(id="t2", source_id="s2", target_id="s2", tokens=["a"]),
        ],
        start_state_id="s0"
    )
    return diagram


def assert_round_trips(history, diagram, action, cycles=2):
    """Push action, then undo/redo it a few times, checking both snapshots."""
    before = diagram.to_dict()
    history.push_action(action)
    after = diagram.to_dict()
    assert after != before

    for _ in range(cycles):
        history.undo()
        assert diagram.to_dict() == before
        history.redo()
        assert diagram.to_dict() == after


class TestStateCommands:
    """Test adding, removing and editing states"""

    def test_factory_does_not_touch_diagram(self, diagram):
        commands.add_state(diagram, "q0", 10, 20)
        assert diagram.states == []

    def test_add_state(self, history, diagram):
        action = commands.add_state(diagram, "q0", 10, 20)
        history.push_action(action)

        assert len(diagram.states) == 1
        state = diagram.states[0]
        assert state.label == "q0"
        assert (state.position.x, state.position.y) == (10, 20)
        assert isinstance(action.data, StateSnapshotData)
        assert action.name == "Add State"

    def test_add_state_redo_keeps_id(self, history, diagram):
        history.push_action(commands.add_state(diagram, "q0", 0, 0))
        state_id = diagram.states[0].id
        history.undo()
        assert diagram.states == []
        history.redo()
        assert diagram.states[0].id == state_id

    def test_add_state_round_trips(self, history, diagram):
        assert_round_trips(history, diagram, commands.add_state(diagram, "q0", 5, 5))

    def test_add_state_strips_label(self, history, diagram):
        history.push_action(commands.add_state(diagram, "  q7 ", 0, 0))
        assert diagram.states[0].label == "q7"

    def test_add_state_rejects_empty_label(self, diagram):
        with pytest.raises(ValueError):
            commands.add_state(diagram, "   ", 0, 0)

    def test_remove_state_takes_transitions_and_start(self, history, abc_diagram):
        history.push_action(commands.remove_state(abc_diagram, "s0"))

        assert abc_diagram.get_state_by_id("s0") is None
        assert abc_diagram.get_transition_by_id("t0") is None
        assert abc_diagram.start_state_id is None
        assert [t.id for t in abc_diagram.transitions] == ["t1", "t2"]

    def test_remove_state_with_self_loop(self, history, abc_diagram):
        action = commands.remove_state(abc_diagram, "s2")
        assert len(action.data.connected) == 2
        assert_round_trips(history, abc_diagram, action)

    def test_remove_state_restores_order(self, history, abc_diagram):
        assert_round_trips(history, abc_diagram, commands.remove_state(abc_diagram, "s1"))
        history.undo()
        assert [s.id for s in abc_diagram.states] == ["s0", "s1", "s2"]
        assert [t.id for t in abc_diagram.transitions] == ["t0", "t1", "t2"]

    def test_remove_unknown_state(self, abc_diagram):
        with pytest.raises(KeyError):
            commands.remove_state(abc_diagram, "missing")

    def test_move_state(self, history, abc_diagram):
        action = commands.move_state(abc_diagram, "s1", 150, 75)
        assert isinstance(action.data, MoveStateData)
        assert (action.data.old_x, action.data.old_y) == (100, 0)
        assert_round_trips(history, abc_diagram, action)

    def test_move_state_with_explicit_origin(self, history, abc_diagram):
        # The canvas already shows the state at its new place while dragging
        history.push_action(commands.move_state(abc_diagram, "s0", 40, 40, old_x=-10, old_y=-10))
        history.undo()
        state = abc_diagram.get_state_by_id("s0")
        assert (state.position.x, state.position.y) == (-10, -10)

    def test_rename_state(self, history, abc_diagram):
        action = commands.rename_state(abc_diagram, "s1", "middle")
        assert_round_trips(history, abc_diagram, action)
        assert abc_diagram.get_state_by_id("s1").label == "middle"
        assert "q1" in action.description

    def test_rename_rejects_empty_label(self, abc_diagram):
        with pytest.raises(ValueError):
            commands.rename_state(abc_diagram, "s1", "")

    def test_set_accept(self, history, abc_diagram):
        action = commands.set_accept(abc_diagram, "s0", True)
        assert action.name == "Mark Accept State"
        assert_round_trips(history, abc_diagram, action)
        assert abc_diagram.get_state_by_id("s0").is_accept

    def test_unset_accept(self, history, abc_diagram):
        action = commands.set_accept(abc_diagram, "s2", False)
        assert action.name == "Unmark Accept State"
        assert_round_trips(history, abc_diagram, action)

    def test_set_start_state(self, history, abc_diagram):
        assert_round_trips(history, abc_diagram, commands.set_start_state(abc_diagram, "s1"))
        assert abc_diagram.start_state_id == "s1"

    def test_clear_start_state(self, history, abc_diagram):
        assert_round_trips(history, abc_diagram, commands.set_start_state(abc_diagram, None))
        assert abc_diagram.start_state_id is None

    def test_set_start_to_unknown_state(self, abc_diagram):
        with pytest.raises(KeyError):
            commands.set_start_state(abc_diagram, "missing")


class TestTransitionCommands:
    """Test transitions and their tokens"""

    def test_add_transition(self, history, abc_diagram):
        action = commands.add_transition(abc_diagram, "s2", "s0", tokens=("x", "y"))
        assert_round_trips(history, abc_diagram, action)

        added = abc_diagram.transitions[-1]
        assert (added.source_id, added.target_id) == ("s2", "s0")
        assert added.tokens == ["x", "y"]

    def test_add_self_loop(self, history, abc_diagram):
        history.push_action(commands.add_transition(abc_diagram, "s0", "s0"))
        assert abc_diagram.transitions[-1].is_self_loop

    def test_add_transition_unknown_endpoint(self, abc_diagram):
        with pytest.raises(KeyError):
            commands.add_transition(abc_diagram, "s0", "missing")

    def test_add_transition_duplicate_tokens(self, abc_diagram):
        with pytest.raises(ValueError):
            commands.add_transition(abc_diagram, "s0", "s1", tokens=("a", "a"))

    def test_remove_transition_restores_index(self, history, abc_diagram):
        assert_round_trips(history, abc_diagram, commands.remove_transition(abc_diagram, "t1"))
        history.undo()
        assert [t.id for t in abc_diagram.transitions] == ["t0", "t1", "t2"]

    def test_remove_unknown_transition(self, abc_diagram):
        with pytest.raises(KeyError):
            commands.remove_transition(abc_diagram, "missing")

    def test_add_token(self, history, abc_diagram):
        action = commands.add_token(abc_diagram, "t0", "b")
        assert isinstance(action.data, TokenData)
        assert_round_trips(history, abc_diagram, action)
        assert abc_diagram.get_transition_by_id("t0").tokens == ["a", "b"]
        assert abc_diagram.get_transition_by_id("t0").label_text() == "a, b"

    def test_add_existing_token(self, abc_diagram):
        with pytest.raises(ValueError):
            commands.add_token(abc_diagram, "t0", "a")

    def test_add_empty_token(self, abc_diagram):
        with pytest.raises(ValueError):
            commands.add_token(abc_diagram, "t0", " ")

    def test_remove_token_restores_position(self, history, abc_diagram):
        assert_round_trips(history, abc_diagram, commands.remove_token(abc_diagram, "t1", "b"))
        history.undo()
        assert abc_diagram.get_transition_by_id("t1").tokens == ["b", "c"]

    def test_remove_missing_token(self, abc_diagram):
        with pytest.raises(ValueError):
            commands.remove_token(abc_diagram, "t1", "z")


class TestHistorySequences:
    """Mixed edits replayed through the whole history"""

    def test_build_machine_then_walk_history(self, history, diagram):
        snapshots = [diagram.to_dict()]

        def push(action):
            history.push_action(action)
            snapshots.append(diagram.to_dict())

        push(commands.add_state(diagram, "q0", 0, 0))
        push(commands.add_state(diagram, "q1", 120, 0))
        q0, q1 = (s.id for s in diagram.states)
        push(commands.set_start_state(diagram, q0))
        push(commands.add_transition(diagram, q0, q1))
        transition_id = diagram.transitions[0].id
        push(commands.add_token(diagram, transition_id, "a"))
        push(commands.set_accept(diagram, q1, True))
        push(commands.move_state(diagram, q1, 150, 60))
        push(commands.remove_state(diagram, q0))

        for expected in reversed(snapshots[:-1]):
            history.undo()
            assert diagram.to_dict() == expected

        for expected in snapshots[1:]:
            history.redo()
            assert diagram.to_dict() == expected

    def test_new_edit_after_undo_drops_old_branch(self, history, diagram):
        history.push_action(commands.add_state(diagram, "q0", 0, 0))
        state_id = diagram.states[0].id
        history.push_action(commands.rename_state(diagram, state_id, "first"))
        history.undo()
        history.push_action(commands.rename_state(diagram, state_id, "second"))

        assert history.redo() is False
        assert [a.name for a in history.get_stack()] == ["Add State", "Rename State"]
        assert diagram.states[0].label == "second"

    def test_undo_to_empty_diagram(self, history, diagram):
        history.push_action(commands.add_state(diagram, "q0", 0, 0))
        history.push_action(commands.add_state(diagram, "q1", 0, 0))
        history.jump_to(-1)
        assert diagram.to_dict() == DiagramData().to_dict()
