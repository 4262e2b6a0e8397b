from typing import Any, Callable, List, Optional, Protocol, Sequence

import jax.numpy as jnp
import numpy as np

from engine import InputVectorizer
from errors import NoLegalTransition, UnknownLabel
from state import ParserState
from systems import TransitionSystem
from transitions import Transition


class Guide(Protocol):
  def best_transition(self, state: ParserState) -> Transition:
    """
    returns the best transition; it must be legal in state. raises
    NoLegalTransition when the guide has none to offer.
    """
    ...


class BatchGuide(Protocol):
  """
  states go in (in batch order), transitions come out in the same order.
  nothing else is shared, so a batch guide may run out of process.
  """

  def best_transitions(
    self, states: Sequence[ParserState]
  ) -> List[Optional[Transition]]:
    """
    one legal transition per state, in the order of states; None for a
    state the guide has no legal transition for.
    """
    ...


def logits_best_transition(
  system: TransitionSystem, state: ParserState, logits: np.ndarray
) -> Transition:
  """
  greedy selection of the best legal transition. a transition only
  replaces the current best when its score is strictly higher, so ties
  go to the lowest transition id. ids without a transition in the table
  are skipped.
  """
  table = system.transitions()
  best = None
  best_score = -np.inf

  for idx, logit in enumerate(logits.tolist()):
    if logit > best_score:
      try:
        transition = table.value(idx)
      except UnknownLabel:
        continue
      if system.is_legal(transition, state):
        best = transition
        best_score = logit

  if best is None:
    raise NoLegalTransition(state)

  return best


class ModelGuide:
  """guide backed by the flax scorer; one model call per batch."""

  def __init__(
    self,
    system: TransitionSystem,
    vectorizer: InputVectorizer,
    apply_fn: Callable[..., Any],
    params: Any,
  ):
    self.system = system
    self.vectorizer = vectorizer
    self.apply_fn = apply_fn
    self.params = params

  def predict_logits(self, states: Sequence[ParserState]) -> np.ndarray:
    feats = jnp.asarray(self.vectorizer.realize_batch(states))
    logits = self.apply_fn({"params": self.params}, feats, train=False)
    return np.asarray(logits)

  def best_transition(self, state: ParserState) -> Transition:
    return logits_best_transition(self.system, state, self.predict_logits([state])[0])

  def best_transitions(
    self, states: Sequence[ParserState]
  ) -> List[Optional[Transition]]:
    if not states:
      return []

    transitions: List[Optional[Transition]] = []
    for state, row in zip(states, self.predict_logits(states)):
      try:
        transitions.append(logits_best_transition(self.system, state, row))
      except NoLegalTransition:
        # only this state's parse fails; the rest of the batch goes on
        transitions.append(None)
    return transitions
