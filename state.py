from collections import deque
from types import MappingProxyType
from typing import NamedTuple, Deque, Dict, List, Mapping, Optional, Sequence, Tuple

from errors import AlreadyAttached
from schema import Dependency, DependencySet, Token


class StateSnapshot(NamedTuple):
  """a read-only copy of a parser state, handed to instance collectors."""

  tokens: Tuple[Token, ...]
  stack: Tuple[int, ...]
  buffer: Tuple[int, ...]
  arcs: Mapping[int, Dependency]
  n_swaps: int = 0

  def peek_stack(self, depth: int = 0) -> Optional[int]:
    return self.stack[-1 - depth] if depth < len(self.stack) else None

  def peek_buffer_front(self, depth: int = 0) -> Optional[int]:
    return self.buffer[depth] if depth < len(self.buffer) else None

  def head(self, modifier: int) -> Optional[Dependency]:
    return self.arcs.get(modifier)


class ParserState:
  """
  mutable state of one sentence being parsed.

  indexing invariant:
  - tokens are numbered 1..n, matching CoNLL token IDs
  - stack top is the last element, buffer front is the first
  - a token is never on the stack and in the buffer at the same time
  - every token has at most one head and arcs are never overwritten
  """

  def __init__(self, tokens: Sequence[Token], system=None):
    self.tokens = tuple(tokens)
    self.stack: List[int] = []
    self.buffer: Deque[int] = deque(range(1, len(self.tokens) + 1))
    self.arcs: Dict[int, Dependency] = {}
    self.n_swaps = 0
    self.system = system

  def __len__(self) -> int:
    return len(self.tokens)

  def __repr__(self):
    return (
      f"ParserState(stack={self.stack}, buffer={list(self.buffer)}, "
      f"arcs={dict(self.arcs)})"
    )

  def push_stack(self, idx: int) -> None:
    self.stack.append(idx)

  def pop_stack(self) -> int:
    return self.stack.pop()

  def peek_stack(self, depth: int = 0) -> Optional[int]:
    return self.stack[-1 - depth] if depth < len(self.stack) else None

  def pop_buffer_front(self) -> int:
    return self.buffer.popleft()

  def push_buffer_front(self, idx: int) -> None:
    self.buffer.appendleft(idx)

  def peek_buffer_front(self, depth: int = 0) -> Optional[int]:
    return self.buffer[depth] if depth < len(self.buffer) else None

  def add_arc(self, modifier: int, head: int, label: str) -> None:
    current = self.arcs.get(modifier)
    if current is not None:
      raise AlreadyAttached(modifier, current.head)
    self.arcs[modifier] = Dependency(head, label)

  def head(self, modifier: int) -> Optional[Dependency]:
    return self.arcs.get(modifier)

  def is_attached(self, modifier: int) -> bool:
    return modifier in self.arcs

  def is_terminal(self) -> bool:
    if self.system is None:
      raise ValueError("parser state is not bound to a transition system")
    return self.system.is_terminal(self)

  def to_dependency_set(self) -> DependencySet:
    return dict(self.arcs)

  def snapshot(self) -> StateSnapshot:
    return StateSnapshot(
      tokens=self.tokens,
      stack=tuple(self.stack),
      buffer=tuple(self.buffer),
      arcs=MappingProxyType(dict(self.arcs)),
      n_swaps=self.n_swaps,
    )
