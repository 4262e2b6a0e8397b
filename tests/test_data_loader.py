import io

from config import ROOT_RELATION
from data_loader import build_vocab, read_conll, vocab_size, write_conll
from schema import Dependency

CONLL = """\
# sent_id = 1
# text = The cat sat.
1\tThe\tthe\tDET\tDT\t_\t2\tdet\t_\t_
2\tcat\tcat\tNOUN\tNN\tNumber=Sing\t3\tnsubj\t_\t_
3\tsat\tsit\tVERB\tVBD\t_\t0\troot\t_\t_

1-2\tdon't\t_\t_\t_\t_\t_\t_\t_\t_
1\tdo\tdo\tAUX\tVBP\t_\t0\troot\t_\t_
2\tn't\tnot\tPART\tRB\t_\t1\tadvmod\t_\t_
2.1\tgone\tgo\tVERB\tVBN\t_\t_\t_\t_\t_
"""


def test_read_conll():
  sentences = read_conll(io.StringIO(CONLL))

  assert len(sentences) == 2
  first, second = sentences

  assert [t.form for t in first.tokens] == ["the", "cat", "sat"]
  assert [t.tag for t in first.tokens] == ["DT", "NN", "VBD"]
  assert first.tokens[1].features == "Number=Sing"
  assert first.gold == {1: Dependency(2, "det"), 2: Dependency(3, "nsubj")}

  # multiword and empty nodes are dropped; no trailing blank line needed
  assert [t.form for t in second.tokens] == ["do", "n't"]
  assert second.gold == {2: Dependency(1, "advmod")}


def test_read_conll_keeps_case():
  sentences = read_conll(io.StringIO(CONLL), lowercase=False)
  assert sentences[0].tokens[0].form == "The"


def test_write_conll():
  sentences = read_conll(io.StringIO(CONLL))
  predicted = [{1: Dependency(2, "det"), 2: Dependency(3, "obj")}, None]

  out = io.StringIO()
  write_conll(out, sentences, predicted)
  blocks = out.getvalue().split("\n\n")

  rows = [line.split("\t") for line in blocks[0].splitlines()]
  assert [(r[0], r[1], r[6], r[7]) for r in rows] == [
    ("1", "the", "2", "det"),
    ("2", "cat", "3", "obj"),
    ("3", "sat", "0", ROOT_RELATION),
  ]
  assert all(len(r) == 10 for r in rows)

  # a failed parse leaves every token at the root
  rows = [line.split("\t") for line in blocks[1].splitlines()]
  assert [r[6] for r in rows] == ["0", "0"]


def test_written_conll_reads_back():
  sentences = read_conll(io.StringIO(CONLL))
  out = io.StringIO()
  write_conll(out, sentences, [s.gold for s in sentences])

  again = read_conll(io.StringIO(out.getvalue()))
  assert [s.gold for s in again] == [s.gold for s in sentences]
  assert [s.tokens for s in again] == [s.tokens for s in sentences]


def test_build_vocab_ranges_are_disjoint():
  vocab = build_vocab(read_conll(io.StringIO(CONLL)))

  rel_ids = set(vocab.deprel2id.values())
  tag_ids = set(vocab.tag2id.values())
  word_ids = set(vocab.word2id.values())

  assert not rel_ids & tag_ids
  assert not tag_ids & word_ids
  assert max(rel_ids) < min(tag_ids) < max(tag_ids) < min(word_ids)
  assert "<l>:nsubj" in vocab.deprel2id
  assert "<t>:NN" in vocab.tag2id
  assert {"<UNK>", "<NULL>"} <= set(vocab.word2id)
  assert vocab.id2deprel[vocab.deprel2id["<l>:det"]] == "<l>:det"
  assert vocab_size(vocab) == max(word_ids) + 1
