class ParserError(Exception):
  """base class for all parser errors."""


class InvariantViolation(ParserError):
  """a state-machine invariant was broken; indicates a logic defect."""


class IllegalTransition(InvariantViolation):
  """a transition was applied that is not legal in the current state."""

  def __init__(self, transition, reason: str = ""):
    self.transition = transition
    msg = f"illegal transition: {transition}"
    if reason:
      msg = f"{msg} ({reason})"
    super().__init__(msg)


class AlreadyAttached(InvariantViolation):
  """a second head was assigned to an attached modifier."""

  def __init__(self, modifier: int, head: int):
    self.modifier = modifier
    self.head = head
    super().__init__(f"token {modifier} is already attached to {head}")


class NoLegalTransition(InvariantViolation):
  """the guide has no legal transition to offer for a state."""

  def __init__(self, state):
    self.state = state
    super().__init__(f"no legal transition for {state!r}")


class NonOracleTree(ParserError):
  """the static oracle cannot realize the gold tree."""


class UnknownLabel(ParserError, KeyError):
  """a transition id outside of the known transition table."""

  def __str__(self):
    return Exception.__str__(self)


class FrozenTableError(ParserError):
  """a new transition was added to a frozen transition table."""
