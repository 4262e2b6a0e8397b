import os
import pickle
import logging

from systems import TransitionSystem, create_system
from transitions import TransitionTable

logger = logging.getLogger(__name__)

SYSTEM_FORMAT_VERSION = 1


def _ensure_dir(path: str) -> None:
  directory = os.path.dirname(path)
  if directory:
    os.makedirs(directory, exist_ok=True)


def save_params(state, path: str) -> None:
  """saves model parameters to a file."""
  _ensure_dir(path)
  with open(path, "wb") as f:
    pickle.dump(state.params, f)
  logger.info("model parameters saved to %s", path)


def load_params(state, path: str):
  """loads parameters from a file into the current TrainState."""
  with open(path, "rb") as f:
    params = pickle.load(f)
  logger.info("model parameters loaded from %s", path)
  return state.replace(params=params)


def save_system(system: TransitionSystem, path: str) -> None:
  """
  saves a transition system. only plain data is written (system name and
  the ordered transition table), so transition ids are restored exactly.
  """
  _ensure_dir(path)
  data = {
    "format": SYSTEM_FORMAT_VERSION,
    "system": system.name,
    "table": system.transitions().to_state(),
  }
  with open(path, "wb") as f:
    pickle.dump(data, f)
  logger.info(
    "%s system with %d transitions saved to %s",
    system.name,
    len(system.transitions()),
    path,
  )


def load_system(path: str) -> TransitionSystem:
  """loads a transition system written by save_system()."""
  with open(path, "rb") as f:
    data = pickle.load(f)

  if not isinstance(data, dict) or data.get("format") != SYSTEM_FORMAT_VERSION:
    raise ValueError(f"{path} is not a transition system file")

  system = create_system(data["system"], TransitionTable.from_state(data["table"]))
  logger.info(
    "%s system with %d transitions loaded from %s",
    system.name,
    len(system.transitions()),
    path,
  )
  return system
