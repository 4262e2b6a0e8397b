from collections import defaultdict
from typing import Dict, List, Sequence

import numpy as np

from config import ParserConfig, N_POSITIONS, N_LABEL_POSITIONS
from schema import ParserVocab


class InputVectorizer:
  """
  turns a parser state (or a snapshot of one) into a fixed-width vector
  of input ids for the scorer.

  layout: 18 word IDs, 18 tag IDs, 12 relation IDs. the 18 positions are
  s0, s1, s2, b0, b1, b2 followed by the children of s0 and of s1; the
  relation IDs belong to the 12 child positions.
  """

  def __init__(self, vocab: ParserVocab, config: ParserConfig):
    self.vocab = vocab
    self.config = config

  @property
  def n_features(self) -> int:
    return 2 * N_POSITIONS + N_LABEL_POSITIONS

  def positions(self, state) -> List[int]:
    """the 18 token positions; -1 where the position does not exist."""
    left: Dict[int, List[int]] = defaultdict(list)
    right: Dict[int, List[int]] = defaultdict(list)
    for modifier in sorted(state.arcs):
      head = state.arcs[modifier].head
      if modifier < head:
        left[head].append(modifier)
      else:
        right[head].append(modifier)

    # side: 0 for left, 1 for right; rank: 0 for 1st, 1 for 2nd
    def get_child(head_idx: int, side: int, rank: int) -> int:
      if head_idx < 0:
        return -1
      # leftmost children come first on the left, rightmost first on the right
      matches = left[head_idx] if side == 0 else right[head_idx][::-1]
      return matches[rank] if rank < len(matches) else -1

    def or_none(idx) -> int:
      return -1 if idx is None else idx

    # 1. basic stack and buffer positions
    s0, s1, s2 = (or_none(state.peek_stack(d)) for d in range(3))
    b0, b1, b2 = (or_none(state.peek_buffer_front(d)) for d in range(3))

    children = []
    for s in (s0, s1):
      # 2. first and second order children
      lc, rc = get_child(s, 0, 0), get_child(s, 1, 0)
      lc2, rc2 = get_child(s, 0, 1), get_child(s, 1, 1)
      # grandchildren (leftmost of leftmost, rightmost of rightmost)
      llc, rrc = get_child(lc, 0, 0), get_child(rc, 1, 0)
      children.extend([lc, rc, lc2, rc2, llc, rrc])

    return [s0, s1, s2, b0, b1, b2] + children

  def realize_into(self, state, out: np.ndarray) -> None:
    positions = self.positions(state)
    cfg = self.config
    tokens = state.tokens

    for i, idx in enumerate(positions):
      if idx < 0:
        out[i] = cfg.NULL_ID
        out[N_POSITIONS + i] = cfg.T_NULL_ID
        continue
      token = tokens[idx - 1]
      out[i] = self.vocab.word2id.get(token.form, cfg.UNK_ID)
      out[N_POSITIONS + i] = self.vocab.tag2id.get(f"<t>:{token.tag}", cfg.T_UNK_ID)

    # relations of the child positions
    for i, idx in enumerate(positions[6:]):
      dep = state.arcs.get(idx) if idx >= 0 else None
      if dep is None:
        out[2 * N_POSITIONS + i] = cfg.L_NULL_ID
      else:
        out[2 * N_POSITIONS + i] = self.vocab.deprel2id.get(
          f"<l>:{dep.relation}", cfg.L_UNK_ID
        )

  def realize(self, state) -> np.ndarray:
    out = np.zeros(self.n_features, dtype=np.int32)
    self.realize_into(state, out)
    return out

  def realize_batch(self, states: Sequence) -> np.ndarray:
    out = np.zeros((len(states), self.n_features), dtype=np.int32)
    for row, state in enumerate(states):
      self.realize_into(state, out[row])
    return out
