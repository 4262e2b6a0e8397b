import logging
from typing import List, Optional, Sequence, Tuple

from errors import IllegalTransition, InvariantViolation, NoLegalTransition
from guide import BatchGuide, Guide
from schema import DependencySet, Sentence, Token
from systems import TransitionSystem

logger = logging.getLogger(__name__)


class GreedyParser:
  """
  deterministic/greedy dependency parser (Kübler, McDonald & Nivre, 2009,
  p. 27): the guide picks one transition per step, and a choice is never
  undone.
  """

  def __init__(self, system: TransitionSystem, guide):
    self.system = system
    self.guide = guide

  def _apply_checked(self, transition, state) -> None:
    if not self.system.is_legal(transition, state):
      raise IllegalTransition(transition, f"guide returned it for {state!r}")
    self.system.apply(transition, state)

  def parse(self, tokens: Sequence[Token]) -> DependencySet:
    guide: Guide = self.guide
    state = self.system.initial_state(tokens)

    while not self.system.is_terminal(state):
      self._apply_checked(guide.best_transition(state), state)

    return self.system.finalize(state.to_dependency_set(), len(tokens))

  def parse_batch(
    self, sentences: Sequence[Sequence[Token]]
  ) -> List[Optional[DependencySet]]:
    """
    parses sentences together, with one guide call per step for all
    sentences that are not finished yet. results are in input order; a
    sentence whose parse broke a state invariant gets None.
    """
    guide: BatchGuide = self.guide
    states = [self.system.initial_state(s) for s in sentences]
    failed = [False] * len(states)

    while True:
      mapping = [
        idx
        for idx, state in enumerate(states)
        if not failed[idx] and not self.system.is_terminal(state)
      ]

      # we are done when all parser states are terminal.
      if not mapping:
        break

      active = [states[idx] for idx in mapping]
      transitions = guide.best_transitions(active)
      if len(transitions) != len(active):
        raise ValueError(
          f"guide returned {len(transitions)} transitions for {len(active)} states"
        )

      for idx, transition in zip(mapping, transitions):
        try:
          if transition is None:
            raise NoLegalTransition(states[idx])
          self._apply_checked(transition, states[idx])
        except InvariantViolation:
          logger.exception("parse of sentence %d aborted", idx)
          failed[idx] = True

    return [
      None
      if failed[idx]
      else self.system.finalize(s.to_dependency_set(), len(s.tokens))
      for idx, s in enumerate(states)
    ]

  def parse_corpus(
    self, sentences: Sequence[Sequence[Token]], batch_size: int
  ) -> List[Optional[DependencySet]]:
    results: List[Optional[DependencySet]] = []
    for i in range(0, len(sentences), batch_size):
      results.extend(self.parse_batch(sentences[i : i + batch_size]))
      logger.debug("parsed %d/%d sentences", len(results), len(sentences))
    return results


def attachment_scores(
  predicted: Sequence[Optional[DependencySet]], sentences: Sequence[Sentence]
) -> Tuple[float, float]:
  """
  calculates unlabeled and labeled attachment scores. the root of a gold
  tree has no entry and counts as correct when the prediction leaves the
  same token unattached. failed parses (None) count as all wrong.
  """
  total_correct = 0
  total_labeled = 0
  total_tokens = 0

  for pred, sentence in zip(predicted, sentences):
    tree = sentence.gold or {}
    n = len(sentence.tokens)
    total_tokens += n
    if pred is None:
      continue

    for idx in range(1, n + 1):
      p, g = pred.get(idx), tree.get(idx)
      if p is None or g is None:
        if p is None and g is None:
          total_correct += 1
          total_labeled += 1
        continue
      if p.head == g.head:
        total_correct += 1
        if p.relation == g.relation:
          total_labeled += 1

  if total_tokens == 0:
    return 0.0, 0.0

  return total_correct / total_tokens, total_labeled / total_tokens
