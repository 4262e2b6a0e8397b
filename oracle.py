import logging
from typing import List, NamedTuple, Optional, Protocol, Sequence, Tuple

import numpy as np

from engine import InputVectorizer
from errors import NonOracleTree
from schema import DependencySet, Sentence, Token, TrainBatch
from state import ParserState, StateSnapshot
from systems import TransitionSystem
from transitions import Transition

logger = logging.getLogger(__name__)


class InstanceCollector(Protocol):
  def observe(self, transition: Transition, state: StateSnapshot) -> None:
    ...


class NoopCollector:
  """only registers transitions, building the transition table."""

  def __init__(self, system: TransitionSystem):
    self.system = system
    self.n_instances = 0

  def observe(self, transition: Transition, state: StateSnapshot) -> None:
    self.system.transitions().add(transition)
    self.n_instances += 1


class TensorCollector:
  """
  materializes training instances into fixed-size batches. a new batch
  is started when the current one is full.
  """

  def __init__(
    self, system: TransitionSystem, vectorizer: InputVectorizer, batch_size: int
  ):
    if batch_size < 1:
      raise ValueError(f"batch size must be positive, got {batch_size}")

    self.system = system
    self.vectorizer = vectorizer
    self.batch_size = batch_size
    self.batch_idx = 0
    self.inputs: List[np.ndarray] = []
    self.labels: List[np.ndarray] = []

  # returns the current batch, creating it if it doesn't exist.
  def _ensure_batch(self) -> int:
    if self.batch_idx == 0:
      self.inputs.append(
        np.zeros((self.batch_size, self.vectorizer.n_features), dtype=np.int32)
      )
      self.labels.append(np.zeros(self.batch_size, dtype=np.int32))
    return len(self.labels) - 1

  def observe(self, transition: Transition, state: StateSnapshot) -> None:
    label = self.system.transitions().add(transition)
    batch = self._ensure_batch()

    self.labels[batch][self.batch_idx] = label
    self.vectorizer.realize_into(state, self.inputs[batch][self.batch_idx])

    self.batch_idx += 1
    if self.batch_idx == self.batch_size:
      self.batch_idx = 0

  def __len__(self) -> int:
    if not self.labels:
      return 0
    last = self.batch_idx if self.batch_idx else self.batch_size
    return (len(self.labels) - 1) * self.batch_size + last

  def batches(self) -> List[TrainBatch]:
    """all batches; the last one is trimmed when it is incomplete."""
    result = [TrainBatch(x, y) for x, y in zip(self.inputs, self.labels)]
    if result and self.batch_idx:
      last = result[-1]
      result[-1] = TrainBatch(
        last.inputs[: self.batch_idx], last.labels[: self.batch_idx]
      )
    return result


class TrainStats(NamedTuple):
  sentences: int
  instances: int
  skipped: int


class GreedyTrainer:
  """
  replays the static oracle and feeds a collector. collectors only see a
  snapshot of the state, taken before the transition is applied.
  """

  def __init__(self, system: TransitionSystem, collector: InstanceCollector):
    self.system = system
    self.collector = collector

  def parse_state(self, gold: DependencySet, state: ParserState) -> int:
    """
    runs the oracle from state to termination. instances are handed to
    the collector only once the whole sentence replayed successfully, so
    a NonOracleTree leaves the collector untouched.
    """
    instances: List[Tuple[Transition, StateSnapshot]] = []
    for transition in self.system.oracle_steps(state, gold):
      instances.append((transition, state.snapshot()))

    for transition, snapshot in instances:
      self.collector.observe(transition, snapshot)

    return len(instances)

  def train_sentence(self, tokens: Sequence[Token], gold: DependencySet) -> int:
    return self.parse_state(gold, self.system.initial_state(tokens))

  def train(
    self, sentences: Sequence[Sentence], log_every: Optional[int] = 2000
  ) -> TrainStats:
    """
    collects instances for a corpus. sentences that the oracle cannot
    handle are skipped and counted.
    """
    instances = 0
    skipped = 0

    for sent_idx, sentence in enumerate(sentences):
      if sentence.gold is None:
        raise ValueError(f"sentence {sent_idx} has no gold tree")

      try:
        instances += self.train_sentence(sentence.tokens, sentence.gold)
      except NonOracleTree as e:
        skipped += 1
        logger.debug("skipping sentence %d: %s", sent_idx, e)

      if log_every and (sent_idx + 1) % log_every == 0:
        logger.info(
          "processed %d sentences; instances so far: %d", sent_idx + 1, instances
        )

    if skipped:
      logger.warning(
        "%s: skipped %d of %d sentences that the oracle cannot parse",
        self.system.name,
        skipped,
        len(sentences),
      )

    return TrainStats(
      sentences=len(sentences) - skipped, instances=instances, skipped=skipped
    )
