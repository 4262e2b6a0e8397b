import os
import logging
from collections import defaultdict
from typing import List, Optional, Sequence, Tuple

import numpy as np
import jax
import jax.numpy as jnp
import optax
from flax.training import train_state

from config import Settings, create_config, load_settings
from data_loader import build_vocab, load_conll_data, vocab_size, write_conll
from engine import InputVectorizer
from guide import ModelGuide
from inference import GreedyParser, attachment_scores
from oracle import GreedyTrainer, NoopCollector, TensorCollector
from parser_model import ParserModel
from schema import DependencySet, Sentence
from systems import TransitionSystem, create_system
from utils import load_params, save_params, save_system

logger = logging.getLogger(__name__)

EARLY_STOPPING_PATIENCE = 3


def loss_fn(params, batch_x, batch_y, model_apply_fn, dropout_rng):
  """
  batch_x: (batch_size, n_features)
  batch_y: (batch_size,) - gold transition ids
  """
  logits = model_apply_fn(
    {"params": params}, batch_x, train=True, rngs={"dropout": dropout_rng}
  )
  loss = optax.softmax_cross_entropy_with_integer_labels(logits, batch_y)
  return jnp.mean(loss)


@jax.jit
def train_step(state, batch_x, batch_y, dropout_rng):
  """one Adam update on a minibatch of oracle instances."""
  grad_fn = jax.value_and_grad(loss_fn)
  loss, grads = grad_fn(state.params, batch_x, batch_y, state.apply_fn, dropout_rng)
  return state.apply_gradients(grads=grads), loss


def init_train_state(model, rng, n_features: int, learning_rate: float):
  variables = model.init(rng, jnp.ones((1, n_features), dtype=jnp.int32), train=False)
  return train_state.TrainState.create(
    apply_fn=model.apply, params=variables["params"], tx=optax.adam(learning_rate)
  )


def get_minibatches(X, y, batch_size: int, shuffle: bool = True):
  """yields (inputs, labels) slices of at most batch_size instances."""
  indices = np.arange(len(X))
  if shuffle:
    np.random.shuffle(indices)

  for start in range(0, len(X), batch_size):
    batch_indices = indices[start : start + batch_size]
    yield X[batch_indices], y[batch_indices]


def collect_transitions(
  system: TransitionSystem, sentences: Sequence[Sentence], path: str
) -> None:
  """first pass: number every oracle transition, freeze and save the table."""
  logger.info("collecting %s transitions via oracle...", system.name)
  stats = GreedyTrainer(system, NoopCollector(system)).train(sentences)
  system.transitions().freeze()
  save_system(system, path)

  logger.info(
    "%d transitions, %d instances, %d sentences skipped",
    len(system.transitions()),
    stats.instances,
    stats.skipped,
  )


def collect_instances(
  system: TransitionSystem,
  vectorizer: InputVectorizer,
  sentences: Sequence[Sentence],
  batch_size: int,
) -> Tuple[np.ndarray, np.ndarray]:
  """second pass: materialize the oracle instances as input/label arrays."""
  collector = TensorCollector(system, vectorizer, batch_size)
  GreedyTrainer(system, collector).train(sentences)
  batches = collector.batches()
  if not batches:
    raise ValueError("the oracle produced no training instances")

  inputs = np.concatenate([b.inputs for b in batches], axis=0)
  labels = np.concatenate([b.labels for b in batches], axis=0)
  return inputs, labels


def predict(
  system: TransitionSystem,
  vectorizer: InputVectorizer,
  state,
  sentences: Sequence[Sentence],
  batch_size: int,
) -> List[Optional[DependencySet]]:
  guide = ModelGuide(system, vectorizer, state.apply_fn, state.params)
  parser = GreedyParser(system, guide)
  return parser.parse_corpus([s.tokens for s in sentences], batch_size)


def fit(
  settings: Settings,
  system: TransitionSystem,
  vectorizer: InputVectorizer,
  state,
  X_train: np.ndarray,
  y_train: np.ndarray,
  dev_sentences: Sequence[Sentence],
  weights_path: str,
):
  """
  trains until the dev UAS has not improved for EARLY_STOPPING_PATIENCE
  epochs. the best parameters are written to weights_path.
  """
  metrics = defaultdict(list)
  dropout_rng = jax.random.PRNGKey(1)
  best_epoch = None

  for epoch in range(1, settings.n_epochs + 1):
    epoch_losses = []
    batches = get_minibatches(X_train, y_train, settings.train_batch_size)
    for batch_x, batch_y in batches:
      dropout_rng, step_rng = jax.random.split(dropout_rng)
      state, loss = train_step(
        state, jnp.asarray(batch_x), jnp.asarray(batch_y), step_rng
      )
      epoch_losses.append(loss)

    predicted = predict(
      system, vectorizer, state, dev_sentences, settings.parse_batch_size
    )
    uas, las = attachment_scores(predicted, dev_sentences)
    avg_loss = float(np.mean(epoch_losses)) if epoch_losses else float("nan")
    metrics["train_loss"].append(avg_loss)
    metrics["dev_uas"].append(uas)

    logger.info(
      "epoch %d | loss: %.4f | dev UAS: %.2f%% | dev LAS: %.2f%%",
      epoch,
      avg_loss,
      uas * 100.0,
      las * 100.0,
    )

    if best_epoch is None or uas > metrics["dev_uas"][best_epoch - 1]:
      best_epoch = epoch
      save_params(state, weights_path)
      logger.info("  -> new best UAS: %.2f%%", uas * 100.0)
    elif epoch - best_epoch >= EARLY_STOPPING_PATIENCE:
      logger.info(
        "early stopping triggered after %d epochs without improvement",
        EARLY_STOPPING_PATIENCE,
      )
      break

  return load_params(state, weights_path), metrics


def main():
  logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
  )

  settings = load_settings()
  logger.info("loading data from %s...", settings.data_path)
  train_sentences = load_conll_data("train.conll")
  dev_sentences = load_conll_data("dev.conll")
  test_sentences = load_conll_data("test.conll")

  vocab = build_vocab(train_sentences)
  config = create_config(vocab)
  vectorizer = InputVectorizer(vocab, config)
  system = create_system(settings.system)

  collect_transitions(
    system, train_sentences, os.path.join(settings.output_dir, "transitions.pickle")
  )
  X_train, y_train = collect_instances(
    system, vectorizer, train_sentences, settings.train_batch_size
  )
  logger.info("starting training with %d instances...", int(X_train.shape[0]))

  model = ParserModel(
    vocab_size=vocab_size(vocab),
    n_classes=system.transitions().n_outputs,
    embed_size=config.embed_size,
    hidden_size=config.hidden_size,
    dropout_rate=config.dropout_rate,
  )
  state = init_train_state(
    model, jax.random.PRNGKey(0), vectorizer.n_features, settings.learning_rate
  )

  state, metrics = fit(
    settings,
    system,
    vectorizer,
    state,
    X_train,
    y_train,
    dev_sentences,
    os.path.join(settings.output_dir, "best_model.weights"),
  )

  test_predicted = predict(
    system, vectorizer, state, test_sentences, settings.parse_batch_size
  )
  test_uas, test_las = attachment_scores(test_predicted, test_sentences)

  predicted_path = os.path.join(settings.output_dir, "test.predicted.conll")
  with open(predicted_path, "w", encoding="utf-8") as f:
    write_conll(f, test_sentences, test_predicted)
  logger.info("test predictions written to %s", predicted_path)

  logger.info("=" * 60)
  logger.info("training summary (%s):", system.name)
  logger.info("  best dev UAS: %.2f%%", max(metrics["dev_uas"]) * 100.0)
  logger.info("  test UAS: %.2f%% | LAS: %.2f%%", test_uas * 100.0, test_las * 100.0)
  logger.info("  total epochs: %d", len(metrics["train_loss"]))
  logger.info("=" * 60)


if __name__ == "__main__":
  main()
