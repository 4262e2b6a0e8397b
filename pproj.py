import logging
from collections import defaultdict, deque
from typing import Dict, List, Optional, Tuple

from config import PPROJ_SEPARATOR
from schema import Dependency, DependencySet

logger = logging.getLogger(__name__)


def find_root(tree: DependencySet, n: int) -> Optional[int]:
  """returns the single root of a well-formed tree, None otherwise."""
  if len(tree) != n - 1:
    return None

  roots = [i for i in range(1, n + 1) if i not in tree]
  if len(roots) != 1:
    return None

  for modifier, dep in tree.items():
    if not 1 <= modifier <= n or not 1 <= dep.head <= n or modifier == dep.head:
      return None

  # every token must reach the root without cycles
  for i in range(1, n + 1):
    steps = 0
    cur = i
    while cur in tree:
      cur = tree[cur].head
      steps += 1
      if steps > n:
        return None

  return roots[0]


def dominates(tree: DependencySet, head: int, idx: int) -> bool:
  """true when head is idx or one of its ancestors."""
  cur: Optional[int] = idx
  while cur is not None:
    if cur == head:
      return True
    dep = tree.get(cur)
    cur = dep.head if dep is not None else None
  return False


def is_projective_arc(tree: DependencySet, modifier: int) -> bool:
  head = tree[modifier].head
  lo, hi = min(head, modifier), max(head, modifier)
  return all(dominates(tree, head, k) for k in range(lo + 1, hi))


def is_projective(tree: DependencySet, n: int) -> bool:
  if find_root(tree, n) is None:
    return False
  return all(is_projective_arc(tree, m) for m in tree)


def projectivize(tree: DependencySet, n: int) -> DependencySet:
  """
  lifts non-projective arcs to the grandparent until the tree is
  projective. trees map modifier -> Dependency over the non-root tokens
  of a sentence with tokens 1..n. the relation of the original head is
  kept in the label of a lifted token ("rel|headrel"), so that
  deprojectivize() can search for it after parsing.
  """
  if find_root(tree, n) is None:
    raise ValueError("cannot projectivize a malformed tree")

  tree = dict(tree)
  original = dict(tree)
  lifts = 0

  while True:
    nonproj = [m for m in tree if not is_projective_arc(tree, m)]
    if not nonproj:
      break

    # lift the shortest offending arc first
    modifier = min(nonproj, key=lambda m: (abs(tree[m].head - m), m))
    dep = tree[modifier]
    grandparent = tree[dep.head]

    relation = dep.relation
    if PPROJ_SEPARATOR not in relation:
      head_rel = original[dep.head].relation.split(PPROJ_SEPARATOR)[0]
      relation = f"{relation}{PPROJ_SEPARATOR}{head_rel}"

    tree[modifier] = Dependency(grandparent.head, relation)
    lifts += 1

  if lifts:
    logger.debug("projectivized tree with %d lift(s)", lifts)

  return tree


def _children(tree: DependencySet) -> Dict[int, List[int]]:
  children: Dict[int, List[int]] = defaultdict(list)
  for modifier in sorted(tree):
    children[tree[modifier].head].append(modifier)
  return children


def _split(relation: str) -> Tuple[str, Optional[str]]:
  if PPROJ_SEPARATOR in relation:
    rel, head_rel = relation.split(PPROJ_SEPARATOR, 1)
    return rel, head_rel
  return relation, None


def deprojectivize(tree: DependencySet, n: int) -> DependencySet:
  """
  undoes projectivize(): every token with an encoded label is moved to
  the first token below its current head (breadth-first, left to right)
  that carries the encoded head relation. tokens for which no such head
  exists stay where they are, with the plain relation.
  """
  root = find_root(tree, n)
  if root is None:
    return {m: Dependency(d.head, _split(d.relation)[0]) for m, d in tree.items()}

  tree = dict(tree)

  # top-down, so that lifted heads are restored before their dependents
  order: List[int] = []
  queue = deque([root])
  children = _children(tree)
  while queue:
    node = queue.popleft()
    order.append(node)
    queue.extend(children.get(node, []))

  for modifier in order:
    if modifier == root:
      continue

    rel, head_rel = _split(tree[modifier].relation)
    if head_rel is None:
      continue

    new_head = _search_head(tree, tree[modifier].head, modifier, head_rel)
    tree[modifier] = Dependency(
      new_head if new_head is not None else tree[modifier].head, rel
    )

  return tree


def _search_head(
  tree: DependencySet, start: int, modifier: int, head_rel: str
) -> Optional[int]:
  children = _children(tree)
  queue = deque(children.get(start, []))
  while queue:
    node = queue.popleft()
    if node == modifier:
      # the modifier's own subtree cannot hold its head
      continue
    if _split(tree[node].relation)[0] == head_rel:
      return node
    queue.extend(children.get(node, []))
  return None
