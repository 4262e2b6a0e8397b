import os
from typing import NamedTuple

from dotenv import load_dotenv

from schema import ParserVocab

# extracted constants from magic numbers
N_POSITIONS = 18  # stack/buffer/child positions read by the vectorizer
N_LABEL_POSITIONS = 12  # child positions that also contribute a relation
ROOT_RELATION = "ROOT"  # relation written for the sentence root
PPROJ_SEPARATOR = "|"  # separates relation and encoded head relation
TRANSITION_ID_START = 1  # transition id 0 is reserved for padding

SYSTEM_NAMES = ("arcstandard", "arceager", "archybrid", "stackproj", "stackswap")


class ParserConfig(NamedTuple):
  """constants and special IDs for the parser logic."""

  n_features: int = 2 * N_POSITIONS + N_LABEL_POSITIONS
  hidden_size: int = 200
  embed_size: int = 50
  dropout_rate: float = 0.5

  # special IDs mapped from ParserVocab
  NULL_ID: int = 0
  T_NULL_ID: int = 0
  L_NULL_ID: int = 0
  UNK_ID: int = 0
  T_UNK_ID: int = 0
  L_UNK_ID: int = 0


def create_config(vocab: ParserVocab) -> ParserConfig:
  """factory function to populate IDs based on the actual vocab with validation."""
  # validate required tokens exist
  required_word_tokens = ["<NULL>", "<UNK>"]
  required_tag_tokens = ["<t>:<NULL>", "<t>:<UNK>"]
  required_deprel_tokens = ["<l>:<NULL>", "<l>:<UNK>"]

  for tok in required_word_tokens:
    if tok not in vocab.word2id:
      raise ValueError(f"missing required word token in vocabulary: {tok}")

  for tok in required_tag_tokens:
    if tok not in vocab.tag2id:
      raise ValueError(f"missing required tag token in vocabulary: {tok}")

  for tok in required_deprel_tokens:
    if tok not in vocab.deprel2id:
      raise ValueError(f"missing required relation token in vocabulary: {tok}")

  return ParserConfig(
    NULL_ID=vocab.word2id["<NULL>"],
    T_NULL_ID=vocab.tag2id["<t>:<NULL>"],
    L_NULL_ID=vocab.deprel2id["<l>:<NULL>"],
    UNK_ID=vocab.word2id["<UNK>"],
    T_UNK_ID=vocab.tag2id["<t>:<UNK>"],
    L_UNK_ID=vocab.deprel2id["<l>:<UNK>"],
  )


class Settings(NamedTuple):
  """run settings, read from the environment (and a .env file)."""

  data_path: str = "./data"
  system: str = "arcstandard"
  train_batch_size: int = 1024
  parse_batch_size: int = 256
  n_epochs: int = 10
  learning_rate: float = 0.0005
  output_dir: str = "results"


def load_settings() -> Settings:
  load_dotenv()
  defaults = Settings()

  settings = Settings(
    data_path=os.getenv("DATA_PATH", defaults.data_path),
    system=os.getenv("PARSER_SYSTEM", defaults.system),
    train_batch_size=int(os.getenv("TRAIN_BATCH_SIZE", defaults.train_batch_size)),
    parse_batch_size=int(os.getenv("PARSE_BATCH_SIZE", defaults.parse_batch_size)),
    n_epochs=int(os.getenv("N_EPOCHS", defaults.n_epochs)),
    learning_rate=float(os.getenv("LEARNING_RATE", defaults.learning_rate)),
    output_dir=os.getenv("OUTPUT_DIR", defaults.output_dir),
  )

  if settings.system not in SYSTEM_NAMES:
    raise ValueError(f"unsupported transition system: {settings.system}")
  if settings.n_epochs < 1:
    raise ValueError(f"N_EPOCHS must be positive, got {settings.n_epochs}")
  if settings.train_batch_size < 1 or settings.parse_batch_size < 1:
    raise ValueError("batch sizes must be positive")

  return settings
