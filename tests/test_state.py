import pytest

from errors import AlreadyAttached
from schema import Dependency
from state import ParserState
from systems import ArcStandardSystem

from corpus import tokens


def test_initial_state():
  state = ParserState(tokens(3))
  assert state.stack == []
  assert list(state.buffer) == [1, 2, 3]
  assert state.arcs == {}
  assert state.peek_stack() is None
  assert state.peek_buffer_front() == 1
  assert state.peek_buffer_front(2) == 3
  assert state.peek_buffer_front(3) is None


def test_stack_and_buffer_operations():
  state = ParserState(tokens(3))
  state.push_stack(state.pop_buffer_front())
  state.push_stack(state.pop_buffer_front())

  assert state.peek_stack(0) == 2
  assert state.peek_stack(1) == 1
  assert state.peek_stack(2) is None

  state.push_buffer_front(state.pop_stack())
  assert list(state.buffer) == [2, 3]
  assert state.stack == [1]


def test_arcs_are_never_overwritten():
  state = ParserState(tokens(3))
  state.add_arc(1, 2, "subj")

  with pytest.raises(AlreadyAttached):
    state.add_arc(1, 3, "obj")

  assert state.head(1) == Dependency(2, "subj")
  assert state.is_attached(1)
  assert not state.is_attached(2)


def test_snapshot_is_a_read_only_copy():
  state = ParserState(tokens(3))
  state.push_stack(state.pop_buffer_front())
  snapshot = state.snapshot()

  state.push_stack(state.pop_buffer_front())
  state.add_arc(1, 2, "subj")

  assert snapshot.stack == (1,)
  assert snapshot.buffer == (2, 3)
  assert dict(snapshot.arcs) == {}
  assert snapshot.peek_stack() == 1
  assert snapshot.peek_buffer_front(1) == 3

  with pytest.raises(TypeError):
    snapshot.arcs[3] = Dependency(1, "x")


def test_is_terminal_delegates_to_the_system():
  system = ArcStandardSystem()
  state = system.initial_state(tokens(1))
  assert not state.is_terminal()
  state.push_stack(state.pop_buffer_front())
  assert state.is_terminal()

  with pytest.raises(ValueError):
    ParserState(tokens(1)).is_terminal()


def test_to_dependency_set_is_a_copy():
  state = ParserState(tokens(2))
  state.add_arc(1, 2, "subj")
  deps = state.to_dependency_set()
  deps[2] = Dependency(1, "x")
  assert 2 not in state.arcs
