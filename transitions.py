import enum
import logging
from typing import NamedTuple, Dict, Iterator, List, Optional, Tuple

from errors import FrozenTableError, UnknownLabel

logger = logging.getLogger(__name__)


class TransitionKind(enum.Enum):
  SHIFT = "shift"
  LEFT_ARC = "left_arc"
  RIGHT_ARC = "right_arc"
  REDUCE = "reduce"
  SWAP = "swap"

  @property
  def has_label(self) -> bool:
    return self in (TransitionKind.LEFT_ARC, TransitionKind.RIGHT_ARC)


class Transition(NamedTuple):
  """an immutable parser move, optionally carrying a relation label."""

  kind: TransitionKind
  label: Optional[str] = None

  def __str__(self):
    if self.kind.has_label:
      return f"{self.kind.name}({self.label})"
    return self.kind.name


def shift() -> Transition:
  return Transition(TransitionKind.SHIFT)


def reduce() -> Transition:
  return Transition(TransitionKind.REDUCE)


def swap() -> Transition:
  return Transition(TransitionKind.SWAP)


def left_arc(label: str) -> Transition:
  return Transition(TransitionKind.LEFT_ARC, label)


def right_arc(label: str) -> Transition:
  return Transition(TransitionKind.RIGHT_ARC, label)


class TransitionTable:
  """
  bidirectional transition <-> id numberer.

  ids are handed out once, on the first occurrence of a transition, and
  never change afterwards. ids below start_at are reserved (0 is padding),
  so a classifier over this table needs n_outputs logits. the table is
  built while collecting training instances and frozen for inference.
  """

  def __init__(self, start_at: int = 1):
    self.start_at = start_at
    self._ids: Dict[Transition, int] = {}
    self._values: List[Transition] = []
    self._frozen = False

  def __len__(self) -> int:
    return len(self._values)

  def __iter__(self) -> Iterator[Transition]:
    return iter(self._values)

  def __contains__(self, transition: Transition) -> bool:
    return transition in self._ids

  @property
  def frozen(self) -> bool:
    return self._frozen

  @property
  def n_outputs(self) -> int:
    return len(self._values) + self.start_at

  def freeze(self) -> None:
    if not self._frozen:
      logger.info("freezing transition table with %d transitions", len(self))
    self._frozen = True

  def add(self, transition: Transition) -> int:
    """returns the id of the transition, numbering it when it is new."""
    idx = self._ids.get(transition)
    if idx is not None:
      return idx

    if self._frozen:
      raise FrozenTableError(f"cannot add {transition} to a frozen table")

    idx = len(self._values) + self.start_at
    self._ids[transition] = idx
    self._values.append(transition)
    return idx

  def lookup(self, transition: Transition) -> Optional[int]:
    return self._ids.get(transition)

  def value(self, idx: int) -> Transition:
    pos = idx - self.start_at
    if pos < 0 or pos >= len(self._values):
      raise UnknownLabel(f"unknown transition id: {idx}")
    return self._values[pos]

  def labels(self) -> List[str]:
    """relation labels in order of first occurrence."""
    seen: Dict[str, None] = {}
    for t in self._values:
      if t.label is not None:
        seen.setdefault(t.label, None)
    return list(seen)

  def to_state(self) -> Dict:
    """plain description of the table; preserves id order exactly."""
    entries: List[Tuple[str, Optional[str]]] = [
      (t.kind.value, t.label) for t in self._values
    ]
    return {"start_at": self.start_at, "frozen": self._frozen, "transitions": entries}

  @classmethod
  def from_state(cls, state: Dict) -> "TransitionTable":
    table = cls(start_at=state["start_at"])
    for kind, label in state["transitions"]:
      table.add(Transition(TransitionKind(kind), label))
    if state.get("frozen", False):
      table.freeze()
    return table
