from typing import NamedTuple, Dict, Optional, Tuple
import numpy as np


class Token(NamedTuple):
  """a single input token; opaque to the transition systems."""

  form: str
  tag: str = "_"
  features: str = "_"


class Dependency(NamedTuple):
  """head and relation of an attached token."""

  head: int
  relation: str


# modifier index -> Dependency, over non-root tokens only
DependencySet = Dict[int, Dependency]


class Sentence(NamedTuple):
  """tokens of a sentence together with the optional gold tree."""

  tokens: Tuple[Token, ...]
  gold: Optional[DependencySet] = None


class ParserVocab(NamedTuple):
  """mappings for string-to-ID conversions."""

  word2id: Dict[str, int]
  tag2id: Dict[str, int]
  deprel2id: Dict[str, int]
  id2deprel: Dict[int, str]


class TrainBatch(NamedTuple):
  """a batch of encoded training instances."""

  inputs: np.ndarray  # shape: (batch_size, n_features)
  labels: np.ndarray  # shape: (batch_size,)
