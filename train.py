#!/usr/bin/env python3
"""
Train a Character-Level RNN/LSTM Language Model

Reads a plain text corpus, builds the character vocabulary, and trains a
stacked recurrent model on next-character prediction.

Usage:
    python train.py --input-text data/input.txt --cell-type lstm
    python train.py --input-text data/input.txt --init-from checkpoints/checkpoint_best.npz

The script will:
1. Read the corpus and build the character vocabulary
2. Split it into train/val/test and cut it into minibatches
3. Create (or resume) the model and the Adam optimizer
4. Train, logging the loss and saving checkpoints periodically
5. Report the final test loss

Press Ctrl-C to stop early; a checkpoint is saved before exiting.
"""

import argparse
import os
import sys
from dataclasses import fields

import numpy as np
from loguru import logger

from char_rnn.checkpoint import load_checkpoint
from char_rnn.data import CharDataLoader, read_text_file, split_data
from char_rnn.exceptions import CharRNNError, ConfigurationError
from char_rnn.logging_config import setup_logging
from char_rnn.model import CharRNNConfig, CharRNNModel
from char_rnn.optimizer import Adam
from char_rnn.trainer import NONFINITE_POLICIES, Trainer, TrainingConfig, evaluate
from char_rnn.vocabulary import CharVocabulary


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Train a character-level RNN/LSTM")
    model_defaults = CharRNNConfig()
    train_defaults = TrainingConfig()

    data = parser.add_argument_group("data")
    data.add_argument("--input-text", default=train_defaults.input_text)
    data.add_argument("--batch-size", type=int, default=train_defaults.batch_size)
    data.add_argument("--seq-length", type=int, default=train_defaults.seq_length)
    data.add_argument("--val-frac", type=float, default=train_defaults.val_frac)
    data.add_argument("--test-frac", type=float, default=train_defaults.test_frac)

    model = parser.add_argument_group("model")
    model.add_argument("--cell-type", choices=["rnn", "lstm"], default=model_defaults.cell_type)
    model.add_argument("--embedding-dim", type=int, default=model_defaults.embedding_dim)
    model.add_argument("--hidden-dim", type=int, default=model_defaults.hidden_dim)
    model.add_argument("--num-layers", type=int, default=model_defaults.num_layers)
    model.add_argument("--grad-clip", type=float, default=model_defaults.grad_clip)

    optim = parser.add_argument_group("optimization")
    optim.add_argument("--max-epochs", type=int, default=train_defaults.max_epochs)
    optim.add_argument("--learning-rate", type=float, default=train_defaults.learning_rate)
    optim.add_argument("--lr-decay-every", type=int, default=train_defaults.lr_decay_every)
    optim.add_argument("--lr-decay-factor", type=float, default=train_defaults.lr_decay_factor)
    optim.add_argument(
        "--remember-states",
        action=argparse.BooleanOptionalAction,
        default=train_defaults.remember_states,
        help="Carry hidden state across consecutive minibatches",
    )
    optim.add_argument(
        "--nonfinite-policy", choices=NONFINITE_POLICIES, default=train_defaults.nonfinite_policy
    )

    output = parser.add_argument_group("output")
    output.add_argument("--checkpoint-dir", default=train_defaults.checkpoint_dir)
    output.add_argument("--checkpoint-every", type=int, default=train_defaults.checkpoint_every)
    output.add_argument("--print-every", type=int, default=train_defaults.print_every)
    output.add_argument("--eval-max-batches", type=int, default=train_defaults.eval_max_batches)
    output.add_argument("--sample-length", type=int, default=train_defaults.sample_length)
    output.add_argument(
        "--sample-temperature", type=float, default=train_defaults.sample_temperature
    )
    output.add_argument("--init-from", default=None, help="Checkpoint to resume from")
    output.add_argument("--seed", type=int, default=train_defaults.seed)
    output.add_argument("--log-level", default=train_defaults.log_level)
    output.add_argument("--log-file", default=None)

    return parser


def configs_from_args(args: argparse.Namespace):
    """Split parsed arguments into (CharRNNConfig without vocab_size, TrainingConfig)."""
    values = vars(args)
    training = TrainingConfig(
        **{f.name: values[f.name] for f in fields(TrainingConfig) if f.name in values}
    )
    model_kwargs = {
        f.name: values[f.name]
        for f in fields(CharRNNConfig)
        if f.name in values and f.name != "vocab_size"
    }
    return model_kwargs, training


def main():
    """Main training function."""
    args = build_parser().parse_args()
    setup_logging(args.log_level, log_file=args.log_file)
    model_kwargs, config = configs_from_args(args)

    if config.seed is not None:
        np.random.seed(config.seed)

    # ==================== Data ====================
    logger.info(f"Loading data from {config.input_text}")
    text = read_text_file(config.input_text)
    logger.info(f"Loaded {len(text):,} characters of text")

    # ==================== Model ====================
    optimizer = None
    start_iteration = 0
    history = None

    if config.init_from:
        logger.info(f"Resuming from {config.init_from}")
        checkpoint = load_checkpoint(config.init_from)
        model, vocabulary = checkpoint.model, checkpoint.vocabulary
        start_iteration = checkpoint.iteration
        history = checkpoint.history or None

        optimizer = Adam(learning_rate=config.learning_rate)
        optimizer.initialize(model.get_parameters())
        if checkpoint.optimizer_state is not None:
            optimizer.load_state(checkpoint.optimizer_state)

        unknown = set(text) - set(vocabulary.characters)
        if unknown:
            raise ConfigurationError(
                "Corpus contains characters the checkpoint's vocabulary lacks",
                details=repr("".join(sorted(unknown))),
            )
    else:
        vocabulary = CharVocabulary.from_text(text)
        model = CharRNNModel(CharRNNConfig(vocab_size=len(vocabulary), **model_kwargs))

    logger.info(f"Vocabulary size: {len(vocabulary)}")
    os.makedirs(config.checkpoint_dir, exist_ok=True)
    vocabulary.save(os.path.join(config.checkpoint_dir, "vocabulary.json"))

    # ==================== Batches ====================
    splits = split_data(vocabulary.encode(text), config.val_frac, config.test_frac)
    loader = CharDataLoader(splits, config.batch_size, config.seq_length)
    for split in ("train", "val", "test"):
        logger.info(
            f"{split}: {len(splits[split]):,} chars, {loader.num_batches(split)} batches"
        )

    # ==================== Training ====================
    trainer = Trainer(
        model,
        vocabulary,
        loader,
        config,
        optimizer=optimizer,
        start_iteration=start_iteration,
        history=history,
    )
    trainer.run()

    test_loss = evaluate(
        model, loader, "test", config.eval_max_batches, remember_states=config.remember_states
    )
    if np.isfinite(test_loss):
        logger.info(f"Test loss: {test_loss:.4f}")
    logger.info(f"Training complete! Best validation loss: {trainer.best_val_loss:.4f}")


if __name__ == "__main__":
    try:
        main()
    except CharRNNError as e:
        logger.error(str(e))
        sys.exit(1)
