import logging
from collections import defaultdict
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Type, Union

from config import TRANSITION_ID_START
from errors import IllegalTransition, NonOracleTree
from pproj import deprojectivize, find_root, projectivize
from schema import DependencySet, Token
from state import ParserState
from transitions import (
  Transition,
  TransitionKind,
  TransitionTable,
  left_arc,
  reduce,
  right_arc,
  shift,
  swap,
)

logger = logging.getLogger(__name__)


class GoldTree:
  """a gold dependency tree with the lookups the oracles need."""

  def __init__(self, heads: DependencySet, n: int):
    self.heads = dict(heads)
    self.n = n
    self.root = find_root(self.heads, n) if n > 0 else None
    if n > 0 and self.root is None:
      raise NonOracleTree("gold tree is not a single-rooted tree over the sentence")

    self.dependents: Dict[int, List[int]] = defaultdict(list)
    for modifier in sorted(self.heads):
      self.dependents[self.heads[modifier].head].append(modifier)

    self._projective_order: Optional[Dict[int, int]] = None

  def attaches(self, modifier: Optional[int], head: Optional[int]) -> bool:
    """true when the gold tree has the arc head -> modifier."""
    if modifier is None or head is None:
      return False
    dep = self.heads.get(modifier)
    return dep is not None and dep.head == head

  def relation(self, modifier: int) -> str:
    return self.heads[modifier].relation

  def resolved(self, idx: int, state) -> bool:
    """true when all gold dependents of idx are attached in state."""
    return all(d in state.arcs for d in self.dependents.get(idx, ()))

  @property
  def projective_order(self) -> Dict[int, int]:
    """position of every token in the in-order traversal of the tree."""
    if self._projective_order is None:
      order: List[int] = []
      if self.root is not None:
        self._inorder(self.root, order)
      self._projective_order = {idx: pos for pos, idx in enumerate(order)}
    return self._projective_order

  def _inorder(self, node: int, order: List[int]) -> None:
    deps = self.dependents.get(node, [])
    for d in deps:
      if d < node:
        self._inorder(d, order)
    order.append(node)
    for d in deps:
      if d > node:
        self._inorder(d, order)


def as_gold_tree(gold: Union[GoldTree, DependencySet], n: int) -> GoldTree:
  if isinstance(gold, GoldTree):
    return gold
  return GoldTree(gold, n)


class TransitionSystem:
  """
  interface of all transition systems.

  every system works on the same ParserState: the stack starts empty, the
  buffer holds tokens 1..n, and parsing ends when the buffer is empty and
  one token, the root of the sentence, is left on the stack. each system
  has a static oracle giving the transition a perfect parser would take
  next for a gold tree.

  a system declares its moves in MOVES; for every move it must define
  _legal_<move>(transition, state) and _apply_<move>(transition, state).
  this is checked when the class is created, so a move cannot be added
  without its legality check and its application.
  """

  name = ""
  MOVES: Tuple[TransitionKind, ...] = ()

  def __init_subclass__(cls, **kwargs):
    super().__init_subclass__(**kwargs)
    for kind in cls.MOVES:
      for prefix in ("_legal_", "_apply_"):
        if not callable(getattr(cls, prefix + kind.value, None)):
          raise TypeError(
            f"{cls.__name__} declares {kind.name} but has no {prefix}{kind.value}"
          )

  def __init__(self, transitions: Optional[TransitionTable] = None):
    if transitions is None:
      transitions = TransitionTable(start_at=TRANSITION_ID_START)
    self._transitions = transitions

  def __repr__(self):
    return f"{type(self).__name__}(transitions={len(self._transitions)})"

  def transitions(self) -> TransitionTable:
    return self._transitions

  def initial_state(self, tokens: Sequence[Token]) -> ParserState:
    return ParserState(tokens, system=self)

  def is_terminal(self, state) -> bool:
    return not state.buffer and len(state.stack) <= 1

  def is_legal(self, transition: Transition, state) -> bool:
    if transition.kind not in self.MOVES:
      return False
    if transition.kind.has_label and not transition.label:
      return False
    return getattr(self, "_legal_" + transition.kind.value)(transition, state)

  def apply(self, transition: Transition, state: ParserState) -> None:
    if not self.is_legal(transition, state):
      raise IllegalTransition(transition, f"{self.name}, {state!r}")
    getattr(self, "_apply_" + transition.kind.value)(transition, state)

  def possible_transitions(self, state) -> List[Transition]:
    """known transitions that are legal in state, in id order."""
    return [t for t in self._transitions if self.is_legal(t, state)]

  def max_steps(self, n: int) -> int:
    return max(0, 2 * n - 1)

  # -- gold tree hooks

  def prepare_gold(self, gold: DependencySet, n: int) -> DependencySet:
    """transforms a gold tree before the oracle sees it."""
    return gold

  def finalize(self, dependencies: DependencySet, n: int) -> DependencySet:
    """transforms the dependencies of a terminal state."""
    return dependencies

  # -- static oracle

  def _oracle(self, state, gold: GoldTree) -> Transition:
    raise NotImplementedError()

  def _gold_tree(self, gold: Union[GoldTree, DependencySet], n: int) -> GoldTree:
    if isinstance(gold, GoldTree):
      return gold
    try:
      prepared = self.prepare_gold(gold, n)
    except ValueError as e:
      raise NonOracleTree(str(e)) from e
    return as_gold_tree(prepared, n)

  def static_oracle(self, state, gold: Union[GoldTree, DependencySet]) -> Transition:
    """
    returns the next gold transition, which is always legal in state. a
    plain DependencySet goes through prepare_gold() first; a GoldTree is
    taken to be prepared already.
    """
    gold = self._gold_tree(gold, len(state.tokens))
    transition = self._oracle(state, gold)
    if not self.is_legal(transition, state):
      raise NonOracleTree(
        f"{self.name}: oracle transition {transition} is not possible in {state!r}"
      )
    return transition

  def oracle_steps(
    self, state: ParserState, gold: DependencySet
  ) -> Iterator[Transition]:
    """
    replays the static oracle from state to termination. every transition
    is yielded before it is applied, so the caller can inspect the state
    it applies to. raises NonOracleTree when the gold tree cannot be built.
    """
    n = len(state.tokens)
    tree = self._gold_tree(gold, n)

    limit = self.max_steps(n)
    steps = 0
    while not self.is_terminal(state):
      if steps >= limit:
        raise NonOracleTree(f"{self.name}: oracle exceeded {limit} steps")
      transition = self.static_oracle(state, tree)
      yield transition
      self.apply(transition, state)
      steps += 1

    if dict(state.arcs) != tree.heads:
      raise NonOracleTree(f"{self.name}: oracle did not reproduce the gold tree")

  def oracle_sequence(
    self, tokens: Sequence[Token], gold: DependencySet
  ) -> List[Transition]:
    return list(self.oracle_steps(self.initial_state(tokens), gold))

  # -- moves shared by all systems

  def _legal_shift(self, transition: Transition, state) -> bool:
    return len(state.buffer) > 0

  def _apply_shift(self, transition: Transition, state: ParserState) -> None:
    state.push_stack(state.pop_buffer_front())


class ArcStandardSystem(TransitionSystem):
  """
  arc-standard system (Nivre, 2004): arcs are made between the two
  topmost stack tokens, and the dependent is popped.
  """

  name = "arcstandard"
  MOVES = (TransitionKind.SHIFT, TransitionKind.LEFT_ARC, TransitionKind.RIGHT_ARC)

  def _legal_left_arc(self, transition: Transition, state) -> bool:
    return len(state.stack) > 1 and state.stack[-2] not in state.arcs

  def _apply_left_arc(self, transition: Transition, state: ParserState) -> None:
    s0, s1 = state.peek_stack(0), state.peek_stack(1)
    state.add_arc(s1, s0, transition.label)
    state.pop_stack()
    state.pop_stack()
    state.push_stack(s0)

  def _legal_right_arc(self, transition: Transition, state) -> bool:
    return len(state.stack) > 1 and state.stack[-1] not in state.arcs

  def _apply_right_arc(self, transition: Transition, state: ParserState) -> None:
    s0, s1 = state.peek_stack(0), state.peek_stack(1)
    state.add_arc(s0, s1, transition.label)
    state.pop_stack()

  def _oracle_attach(self, state, gold: GoldTree) -> Optional[Transition]:
    s0, s1 = state.peek_stack(0), state.peek_stack(1)

    if gold.attaches(s1, s0) and gold.resolved(s1, state):
      return left_arc(gold.relation(s1))
    if gold.attaches(s0, s1) and gold.resolved(s0, state):
      return right_arc(gold.relation(s0))

    return None

  def _oracle(self, state, gold: GoldTree) -> Transition:
    return self._oracle_attach(state, gold) or shift()


class StackProjectiveSystem(ArcStandardSystem):
  """
  stack-based projective system (Nivre, 2009). non-projective gold trees
  are made projective with the pseudo-projective head encoding before
  training, and decoded again after parsing.
  """

  name = "stackproj"

  def prepare_gold(self, gold: DependencySet, n: int) -> DependencySet:
    return projectivize(gold, n)

  def finalize(self, dependencies: DependencySet, n: int) -> DependencySet:
    return deprojectivize(dependencies, n)


class StackSwapSystem(ArcStandardSystem):
  """
  stack-based system with swap (Nivre, 2009). Swap moves the second
  stack token back to the buffer, which reorders the sentence so that
  non-projective trees can be built. the number of swaps in one parse is
  capped at n(n-1)/2, the number of token pairs.
  """

  name = "stackswap"
  MOVES = ArcStandardSystem.MOVES + (TransitionKind.SWAP,)

  @staticmethod
  def max_swaps(n: int) -> int:
    return n * (n - 1) // 2

  def max_steps(self, n: int) -> int:
    return super().max_steps(n) + 2 * self.max_swaps(n)

  def _legal_swap(self, transition: Transition, state) -> bool:
    if len(state.stack) < 2:
      return False
    if state.n_swaps >= self.max_swaps(len(state.tokens)):
      return False
    return state.stack[-2] < state.stack[-1]

  def _apply_swap(self, transition: Transition, state: ParserState) -> None:
    s0 = state.pop_stack()
    s1 = state.pop_stack()
    state.push_stack(s0)
    state.push_buffer_front(s1)
    state.n_swaps += 1

  def _oracle(self, state, gold: GoldTree) -> Transition:
    attach = self._oracle_attach(state, gold)
    if attach is not None:
      return attach

    s0, s1 = state.peek_stack(0), state.peek_stack(1)
    if s1 is not None:
      order = gold.projective_order
      if order[s0] < order[s1]:
        return swap()

    return shift()


class ArcHybridSystem(TransitionSystem):
  """
  arc-hybrid system (Kuhlmann et al., 2011): left arcs attach the stack
  top to the buffer front, right arcs attach the stack top to the token
  below it.
  """

  name = "archybrid"
  MOVES = (TransitionKind.SHIFT, TransitionKind.LEFT_ARC, TransitionKind.RIGHT_ARC)

  def _legal_left_arc(self, transition: Transition, state) -> bool:
    return (
      len(state.stack) > 0
      and len(state.buffer) > 0
      and state.stack[-1] not in state.arcs
    )

  def _apply_left_arc(self, transition: Transition, state: ParserState) -> None:
    state.add_arc(state.peek_stack(), state.peek_buffer_front(), transition.label)
    state.pop_stack()

  def _legal_right_arc(self, transition: Transition, state) -> bool:
    return len(state.stack) > 1 and state.stack[-1] not in state.arcs

  def _apply_right_arc(self, transition: Transition, state: ParserState) -> None:
    state.add_arc(state.peek_stack(0), state.peek_stack(1), transition.label)
    state.pop_stack()

  def _oracle(self, state, gold: GoldTree) -> Transition:
    s0, s1 = state.peek_stack(0), state.peek_stack(1)
    b0 = state.peek_buffer_front()

    if gold.attaches(s0, b0) and gold.resolved(s0, state):
      return left_arc(gold.relation(s0))
    if gold.attaches(s0, s1) and gold.resolved(s0, state):
      return right_arc(gold.relation(s0))

    return shift()


class ArcEagerSystem(TransitionSystem):
  """
  arc-eager system (Nivre, 2003): arcs are made between the stack top and
  the buffer front as soon as both tokens are available; Reduce pops an
  attached token.

  when only one token is left in the buffer, Shift is legal only on an
  empty stack and RightArc only when every stack token but the bottom one
  is attached. this keeps every non-terminal state from running out of
  legal moves.
  """

  name = "arceager"
  MOVES = (
    TransitionKind.SHIFT,
    TransitionKind.LEFT_ARC,
    TransitionKind.RIGHT_ARC,
    TransitionKind.REDUCE,
  )

  def _legal_shift(self, transition: Transition, state) -> bool:
    return len(state.buffer) > 1 or (len(state.buffer) == 1 and not state.stack)

  def _legal_left_arc(self, transition: Transition, state) -> bool:
    return (
      len(state.stack) > 0
      and len(state.buffer) > 0
      and state.stack[-1] not in state.arcs
    )

  def _apply_left_arc(self, transition: Transition, state: ParserState) -> None:
    state.add_arc(state.peek_stack(), state.peek_buffer_front(), transition.label)
    state.pop_stack()

  def _legal_right_arc(self, transition: Transition, state) -> bool:
    if not state.stack or not state.buffer or state.buffer[0] in state.arcs:
      return False
    if len(state.buffer) == 1:
      return all(s in state.arcs for s in list(state.stack)[1:])
    return True

  def _apply_right_arc(self, transition: Transition, state: ParserState) -> None:
    b0 = state.peek_buffer_front()
    state.add_arc(b0, state.peek_stack(), transition.label)
    state.push_stack(state.pop_buffer_front())

  def _legal_reduce(self, transition: Transition, state) -> bool:
    return len(state.stack) > 0 and state.stack[-1] in state.arcs

  def _apply_reduce(self, transition: Transition, state: ParserState) -> None:
    state.pop_stack()

  def _oracle(self, state, gold: GoldTree) -> Transition:
    s0 = state.peek_stack()
    b0 = state.peek_buffer_front()

    if gold.attaches(s0, b0):
      return left_arc(gold.relation(s0))
    if gold.attaches(b0, s0):
      return right_arc(gold.relation(b0))
    # a token is only reduced once it has its head; a headless token with
    # all its dependents stays on the stack until its head arrives.
    if s0 is not None and s0 in state.arcs and gold.resolved(s0, state):
      return reduce()

    return shift()


SYSTEMS: Dict[str, Type[TransitionSystem]] = {
  cls.name: cls
  for cls in (
    ArcStandardSystem,
    ArcEagerSystem,
    ArcHybridSystem,
    StackProjectiveSystem,
    StackSwapSystem,
  )
}


def create_system(
  name: str, transitions: Optional[TransitionTable] = None
) -> TransitionSystem:
  """factory for transition systems by their registry name."""
  try:
    cls = SYSTEMS[name]
  except KeyError:
    raise ValueError(f"unsupported transition system: {name}") from None
  return cls(transitions)
