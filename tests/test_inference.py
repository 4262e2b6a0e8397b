import zlib

import numpy as np
import pytest

from config import create_config
from data_loader import build_vocab
from engine import InputVectorizer
from errors import IllegalTransition, NoLegalTransition
from guide import ModelGuide
from inference import GreedyParser, attachment_scores
from oracle import GreedyTrainer, NoopCollector
from schema import Dependency, Sentence
from systems import SYSTEMS, ArcEagerSystem, ArcStandardSystem, create_system
from transitions import reduce, right_arc, shift
from utils import load_system, save_system

from corpus import NON_PROJECTIVE, PROJECTIVE, SCENARIO, sentences, tokens


class HashGuide:
  """
  deterministic stand-in for a scorer: the score of a transition is a
  hash of the state and the transition id; the best legal one wins.
  """

  def __init__(self, system):
    self.system = system
    self.calls = []

  def _score(self, state, transition):
    idx = self.system.transitions().lookup(transition)
    key = f"{tuple(state.stack)}|{tuple(state.buffer)}|{idx}"
    return zlib.crc32(key.encode("utf-8"))

  def best_transition(self, state):
    legal = self.system.possible_transitions(state)
    return max(legal, key=lambda t: self._score(state, t))

  def best_transitions(self, states):
    for state in states:
      assert not self.system.is_terminal(state)
    self.calls.append(len(states))
    return [self.best_transition(s) for s in states]


class IdGuide:
  """replays a fixed sequence of transition ids."""

  def __init__(self, system, ids):
    self.system = system
    self.ids = list(ids)
    self.used = []

  def best_transition(self, state):
    idx = self.ids[len(self.used)]
    self.used.append(idx)
    return self.system.transitions().value(idx)


class ShiftGuide:
  def best_transition(self, state):
    return shift()

  def best_transitions(self, states):
    return [shift() for _ in states]


def trained_system(name, corpus):
  system = create_system(name)
  GreedyTrainer(system, NoopCollector(system)).train(corpus)
  system.transitions().freeze()
  return system


class GoldGuide:
  def __init__(self, system, gold):
    self.system = system
    self.gold = gold

  def best_transition(self, state):
    return self.system.static_oracle(state, self.gold)


@pytest.mark.parametrize("name", list(SYSTEMS))
@pytest.mark.parametrize("n,gold", PROJECTIVE)
def test_parse_with_oracle_guide_reproduces_gold(name, n, gold):
  system = create_system(name)
  parser = GreedyParser(system, GoldGuide(system, gold))
  assert parser.parse(tokens(n)) == gold


@pytest.mark.parametrize("name", ["stackproj", "stackswap"])
def test_parse_non_projective_tree(name):
  n, gold = NON_PROJECTIVE
  system = create_system(name)
  parser = GreedyParser(system, GoldGuide(system, gold))
  assert parser.parse(tokens(n)) == gold


def test_scenario_dependency_set():
  system = ArcStandardSystem()
  parser = GreedyParser(system, GoldGuide(system, SCENARIO))
  assert parser.parse(tokens(3)) == {1: Dependency(2, "subj"), 3: Dependency(2, "obj")}


@pytest.mark.parametrize("name", list(SYSTEMS))
def test_batch_and_sequential_parsing_agree(name):
  corpus = sentences(PROJECTIVE)
  system = trained_system(name, corpus)

  sequential = [GreedyParser(system, HashGuide(system)).parse(s.tokens) for s in corpus]

  guide = HashGuide(system)
  batched = GreedyParser(system, guide).parse_batch([s.tokens for s in corpus])

  assert batched == sequential
  assert all(result is not None for result in batched)


def test_batch_rounds_only_send_active_states():
  corpus = [tokens(1), tokens(3), tokens(5)]
  system = trained_system("arcstandard", sentences(PROJECTIVE))
  guide = HashGuide(system)
  GreedyParser(system, guide).parse_batch(corpus)

  # one round per step of the longest sentence; shorter ones drop out
  assert len(guide.calls) == 2 * 5 - 1
  assert guide.calls[0] == 3
  assert guide.calls[1:5] == [2, 2, 2, 2]
  assert guide.calls[5:] == [1, 1, 1, 1]
  assert sum(guide.calls) == sum(2 * len(s) - 1 for s in corpus)


def test_parse_batch_keeps_input_order():
  corpus = sentences(PROJECTIVE)
  system = trained_system("arceager", corpus)
  reverse = list(reversed(corpus))

  forward = GreedyParser(system, HashGuide(system)).parse_batch(
    [s.tokens for s in corpus]
  )
  backward = GreedyParser(system, HashGuide(system)).parse_batch(
    [s.tokens for s in reverse]
  )
  assert forward == list(reversed(backward))


def test_parse_raises_on_illegal_guide_output():
  system = ArcStandardSystem()
  with pytest.raises(IllegalTransition):
    GreedyParser(system, ShiftGuide()).parse(tokens(3))


def test_parse_batch_aborts_only_the_broken_sentence():
  system = ArcStandardSystem()
  results = GreedyParser(system, ShiftGuide()).parse_batch([tokens(3), tokens(1)])
  assert results == [None, {}]


def test_parse_batch_survives_a_state_without_legal_transitions():
  system = ArcEagerSystem()
  for t in (shift(), right_arc("x"), reduce()):
    system.transitions().add(t)
  system.transitions().freeze()

  vocab = build_vocab(sentences(PROJECTIVE))
  vectorizer = InputVectorizer(vocab, create_config(vocab))

  def apply_fn(variables, feats, train):
    # Shift first: the 3-token sentence gets stuck with two tokens on
    # the stack, since no LeftArc is known
    return np.tile(np.array([0.0, 3.0, 2.0, 1.0]), (feats.shape[0], 1))

  parser = GreedyParser(system, ModelGuide(system, vectorizer, apply_fn, None))
  assert parser.parse_batch([tokens(3), tokens(1)]) == [None, {}]
  assert parser.parse_corpus([tokens(1), tokens(3), tokens(1)], 2) == [{}, None, {}]

  with pytest.raises(NoLegalTransition):
    parser.parse(tokens(3))


def test_parse_batch_checks_guide_answer_length():
  class ShortGuide:
    def best_transitions(self, states):
      return []

  with pytest.raises(ValueError):
    GreedyParser(ArcStandardSystem(), ShortGuide()).parse_batch([tokens(2)])


def test_empty_sentence_and_empty_batch():
  system = ArcStandardSystem()
  parser = GreedyParser(system, ShiftGuide())
  assert parser.parse(()) == {}
  assert parser.parse_batch([]) == []


@pytest.mark.parametrize("name", list(SYSTEMS))
def test_transition_ids_are_stable_across_save_and_load(name, tmp_path):
  n, gold = PROJECTIVE[2]
  corpus = sentences(PROJECTIVE)
  system = trained_system(name, corpus)

  ids = [
    system.transitions().lookup(t) for t in system.oracle_sequence(tokens(n), gold)
  ]

  path = str(tmp_path / "system.pickle")
  save_system(system, path)
  loaded = load_system(path)

  assert type(loaded) is type(system)
  assert loaded.transitions().frozen
  assert list(loaded.transitions()) == list(system.transitions())

  before = IdGuide(system, ids)
  after = IdGuide(loaded, ids)
  assert GreedyParser(system, before).parse(tokens(n)) == gold
  assert GreedyParser(loaded, after).parse(tokens(n)) == gold
  assert before.used == after.used == ids
  replayed = loaded.oracle_sequence(tokens(n), gold)
  assert [loaded.transitions().lookup(t) for t in replayed] == ids


def test_attachment_scores():
  corpus = [
    Sentence(tokens(3), SCENARIO),
    Sentence(tokens(2), {1: Dependency(2, "a")}),
  ]
  predicted = [
    {1: Dependency(2, "subj"), 3: Dependency(2, "iobj")},
    None,
  ]
  uas, las = attachment_scores(predicted, corpus)
  assert uas == pytest.approx(3 / 5)
  assert las == pytest.approx(2 / 5)
