import numpy as np
import pytest

from config import create_config
from data_loader import build_vocab
from engine import InputVectorizer
from errors import NoLegalTransition
from guide import ModelGuide, logits_best_transition
from systems import ArcEagerSystem, ArcStandardSystem
from transitions import left_arc, reduce, right_arc, shift

from corpus import SCENARIO, sentences, tokens


@pytest.fixture
def system():
  system = ArcStandardSystem()
  table = system.transitions()
  table.add(shift())  # 1
  table.add(left_arc("subj"))  # 2
  table.add(right_arc("obj"))  # 3
  table.freeze()
  return system


def two_on_stack(system):
  state = system.initial_state(tokens(3))
  system.apply(shift(), state)
  system.apply(shift(), state)
  return state


def test_picks_highest_scoring_transition(system):
  state = two_on_stack(system)
  logits = np.array([0.0, 0.1, 0.9, 0.5])
  assert logits_best_transition(system, state, logits) == left_arc("subj")


def test_ties_go_to_lowest_id(system):
  state = two_on_stack(system)
  logits = np.array([0.0, 0.7, 0.7, 0.7])
  assert logits_best_transition(system, state, logits) == shift()


def test_illegal_transitions_are_skipped(system):
  state = system.initial_state(tokens(3))
  # arcs are impossible on an empty stack
  logits = np.array([0.0, -1.0, 5.0, 4.0])
  assert logits_best_transition(system, state, logits) == shift()


def test_padding_and_unknown_ids_are_skipped(system):
  state = two_on_stack(system)
  logits = np.array([100.0, 0.1, 0.2, 0.3, 50.0])
  assert logits_best_transition(system, state, logits) == right_arc("obj")


def test_no_legal_transition(system):
  state = system.initial_state(tokens(1))
  system.apply(shift(), state)
  with pytest.raises(NoLegalTransition):
    logits_best_transition(system, state, np.array([0.0, 1.0, 1.0, 1.0]))


def test_model_guide_scores_a_batch(system):
  vocab = build_vocab(sentences([(3, SCENARIO)]))
  vectorizer = InputVectorizer(vocab, create_config(vocab))
  seen = {}

  def apply_fn(variables, feats, train):
    seen["params"] = variables["params"]
    seen["shape"] = feats.shape
    seen["train"] = train
    # prefer RightArc, then LeftArc, then Shift
    return np.tile(np.array([0.0, 1.0, 2.0, 3.0]), (feats.shape[0], 1))

  guide = ModelGuide(system, vectorizer, apply_fn, params="weights")

  fresh = system.initial_state(tokens(3))
  full = two_on_stack(system)
  assert guide.best_transitions([fresh, full]) == [shift(), right_arc("obj")]
  assert seen == {"params": "weights", "shape": (2, 48), "train": False}

  assert guide.best_transition(full) == right_arc("obj")
  assert guide.best_transitions([]) == []


def test_model_guide_marks_states_without_legal_transition():
  system = ArcEagerSystem()
  table = system.transitions()
  for t in (shift(), right_arc("x"), reduce()):
    table.add(t)
  table.freeze()

  vocab = build_vocab(sentences([(3, SCENARIO)]))
  vectorizer = InputVectorizer(vocab, create_config(vocab))

  def apply_fn(variables, feats, train):
    return np.tile(np.array([0.0, 3.0, 2.0, 1.0]), (feats.shape[0], 1))

  guide = ModelGuide(system, vectorizer, apply_fn, params=None)

  # two tokens on the stack, one in the buffer, no LeftArc in the table
  stuck = system.initial_state(tokens(3))
  system.apply(shift(), stuck)
  system.apply(shift(), stuck)
  fresh = system.initial_state(tokens(2))

  assert guide.best_transitions([stuck, fresh]) == [None, shift()]
  with pytest.raises(NoLegalTransition):
    guide.best_transition(stuck)
