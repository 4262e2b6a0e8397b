import os
import logging
from typing import List, Optional, Sequence, TextIO

from dotenv import load_dotenv

from config import ROOT_RELATION
from schema import Dependency, DependencySet, ParserVocab, Sentence, Token

load_dotenv()

logger = logging.getLogger(__name__)


def read_conll(f: TextIO, lowercase: bool = True) -> List[Sentence]:
  """
  robust CoNLL(-U-ish) reader.
  - splits on any whitespace (tabs OR spaces)
  - flushes last sentence even if file doesn't end with a blank line
  - skips multiword tokens like 1-2 and empty nodes like 1.1
  - the token with head 0 is the root and gets no gold entry
  """
  sentences: List[Sentence] = []
  tokens: List[Token] = []
  gold: DependencySet = {}

  def flush():
    nonlocal tokens, gold
    if tokens:
      sentences.append(Sentence(tokens=tuple(tokens), gold=gold))
      tokens, gold = [], {}

  for line in f:
    line = line.strip()
    if not line:
      flush()
      continue

    if line.startswith("#"):
      continue

    sp = line.split()  # whitespace-agnostic
    if len(sp) < 8:
      flush()
      continue

    tok_id = sp[0]
    if "-" in tok_id or "." in tok_id:
      continue

    form = sp[1].lower() if lowercase else sp[1]
    tokens.append(Token(form=form, tag=sp[4], features=sp[5]))

    if sp[6] != "_":
      head = int(sp[6])
      if head != 0:
        gold[int(tok_id)] = Dependency(head, sp[7])

  flush()
  return sentences


def load_conll_data(file_name: str, lowercase: bool = True) -> List[Sentence]:
  """reads a CoNLL file from DATA_PATH."""
  data_path = os.getenv("DATA_PATH", "./data")
  full_path = os.path.join(data_path, file_name)

  with open(full_path, "r", encoding="utf-8") as f:
    sentences = read_conll(f, lowercase=lowercase)

  logger.info("loaded %d sentences from %s", len(sentences), full_path)
  return sentences


def write_conll(
  f: TextIO,
  sentences: Sequence[Sentence],
  dependencies: Sequence[Optional[DependencySet]],
) -> None:
  """
  writes sentences with predicted dependencies. unattached tokens get
  head 0 and the root relation; failed parses (None) are written with
  all heads at 0.
  """
  for sentence, deps in zip(sentences, dependencies):
    deps = deps or {}
    for idx, token in enumerate(sentence.tokens, start=1):
      dep = deps.get(idx)
      head, rel = (dep.head, dep.relation) if dep is not None else (0, ROOT_RELATION)
      cols = [str(idx), token.form, "_", token.tag, token.tag, token.features]
      cols += [str(head), rel, "_", "_"]
      f.write("\t".join(cols) + "\n")
    f.write("\n")


def build_vocab(train_data: Sequence[Sentence]) -> ParserVocab:
  """
  builds vocabularies with disjoint ID ranges.
  IDs are contiguous and stable.
  """
  # 1) relations
  unique_rels = sorted(
    set(d.relation for s in train_data for d in (s.gold or {}).values())
  )
  deprel2id = {f"<l>:{r}": i for i, r in enumerate(unique_rels)}
  deprel2id["<l>:<UNK>"] = len(deprel2id)
  deprel2id["<l>:<NULL>"] = len(deprel2id)
  id2deprel = {i: r for r, i in deprel2id.items()}

  # 2) tags
  tag_offset = max(deprel2id.values()) + 1
  unique_tags = sorted(set(f"<t>:{t.tag}" for s in train_data for t in s.tokens))
  tag2id = {t: tag_offset + i for i, t in enumerate(unique_tags)}
  next_tag_id = max(tag2id.values(), default=tag_offset - 1) + 1
  tag2id["<t>:<UNK>"] = next_tag_id
  tag2id["<t>:<NULL>"] = next_tag_id + 1

  # 3) words
  word_offset = max(tag2id.values()) + 1
  unique_words = sorted(set(t.form for s in train_data for t in s.tokens))
  word2id = {w: word_offset + i for i, w in enumerate(unique_words)}
  next_word_id = max(word2id.values(), default=word_offset - 1) + 1
  word2id["<UNK>"] = next_word_id
  word2id["<NULL>"] = next_word_id + 1

  return ParserVocab(word2id, tag2id, deprel2id, id2deprel)


def vocab_size(vocab: ParserVocab) -> int:
  """size of the shared embedding table."""
  return max(max(vocab.word2id.values()), max(vocab.tag2id.values())) + 1
