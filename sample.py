#!/usr/bin/env python3
"""
Sample Text from a Trained Character Model

Usage:
    python sample.py --checkpoint checkpoints/checkpoint_best.npz
    python sample.py --checkpoint ckpt.npz --start-text "ROMEO:" --temperature 0.5
    python sample.py --checkpoint ckpt.npz --no-sample      # argmax decoding

Lower temperatures give more conservative, repetitive text; higher ones
give more diverse text with more mistakes.
"""

import argparse
import sys

import numpy as np
from loguru import logger

from char_rnn.checkpoint import load_checkpoint
from char_rnn.exceptions import CharRNNError
from char_rnn.logging_config import setup_logging
from char_rnn.sampling import generate_indices


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sample from a trained character model")
    parser.add_argument("--checkpoint", required=True, help="Path to a .npz checkpoint")
    parser.add_argument("--length", type=int, default=2000, help="Characters to generate")
    parser.add_argument("--start-text", default="", help="Text to condition on")
    parser.add_argument(
        "--start-char",
        default=None,
        help="First input when there is no start text (default: first vocabulary entry)",
    )
    parser.add_argument("--temperature", type=float, default=1.0)
    parser.add_argument(
        "--sample",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Draw from the distribution; --no-sample takes the argmax",
    )
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--log-level", default="WARNING")
    return parser


def main():
    args = build_parser().parse_args()
    setup_logging(args.log_level)

    checkpoint = load_checkpoint(args.checkpoint)
    model, vocabulary = checkpoint.model, checkpoint.vocabulary
    logger.info(
        f"Loaded {model.config.cell_type} model ({model.count_parameters():,} parameters) "
        f"from iteration {checkpoint.iteration}"
    )

    rng = np.random.default_rng(args.seed)
    seed_indices = vocabulary.encode(args.start_text).tolist() if args.start_text else None
    start_index = vocabulary.char_to_index(args.start_char) if args.start_char else 0

    # Arguments are checked here, before anything is written
    indices = generate_indices(
        model,
        args.length,
        temperature=args.temperature,
        seed_indices=seed_indices,
        start_index=start_index,
        sample=args.sample,
        rng=rng,
    )

    if args.start_text:
        sys.stdout.write(args.start_text)

    # Stream characters as they are produced
    for index in indices:
        sys.stdout.write(vocabulary.index_to_char(index))
        sys.stdout.flush()
    sys.stdout.write("\n")


if __name__ == "__main__":
    try:
        main()
    except CharRNNError as e:
        logger.error(str(e))
        sys.exit(1)
