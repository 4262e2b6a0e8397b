import flax.linen as nn
import jax.numpy as jnp

from config import N_POSITIONS

# input layers of the vectorizer, as (name, first column, end column)
LAYERS = (
  ("word_embeddings", 0, N_POSITIONS),
  ("tag_embeddings", N_POSITIONS, 2 * N_POSITIONS),
  ("relation_embeddings", 2 * N_POSITIONS, None),
)


class ParserModel(nn.Module):
  """
  feed-forward transition scorer over the vectorizer's input ids.

  the input row holds three layers: word ids, tag ids and relation ids.
  each layer has its own embedding table (ids of all layers live in one
  disjoint range, so every table is indexed by the same vocab_size).
  logit i scores the transition with id i, so n_classes is the n_outputs
  of the frozen transition table; logit 0 (padding) is never selected.
  """

  vocab_size: int
  n_classes: int
  embed_size: int = 50
  hidden_size: int = 200
  dropout_rate: float = 0.5

  @nn.compact
  def __call__(self, x, train: bool = True):
    """
    x: (batch_size, n_features) - word, tag and relation ids
    """
    embedded = []
    for name, start, end in LAYERS:
      table = self.param(
        name,
        nn.initializers.uniform(scale=0.1),
        (self.vocab_size, self.embed_size),
      )
      ids = x[:, start:end]
      # (batch, n_ids) -> (batch, n_ids * embed_size)
      embedded.append(table[ids].reshape((ids.shape[0], -1)))
    h = jnp.concatenate(embedded, axis=-1)

    h = nn.Dense(
      features=self.hidden_size,
      kernel_init=nn.initializers.xavier_uniform(),
      bias_init=nn.initializers.zeros,
    )(h)
    h = nn.relu(h)
    h = nn.Dropout(rate=self.dropout_rate, deterministic=not train)(h)

    return nn.Dense(
      features=self.n_classes,
      kernel_init=nn.initializers.xavier_uniform(),
      name="transition_logits",
    )(h)
