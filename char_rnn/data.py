"""
Data Loading for Character Language Modeling

Text is encoded to indices, split into train/val/test, and cut into
minibatches of shape (batch_size, seq_length).

Batches are laid out so that state can be carried across them. Each split
is reshaped into ``batch_size`` contiguous streams, and batch k takes the
next ``seq_length`` characters of every stream:

    stream 0: [ batch 0 | batch 1 | batch 2 | ... ]
    stream 1: [ batch 0 | batch 1 | batch 2 | ... ]
    ...

Row r of batch k+1 therefore continues exactly where row r of batch k
stopped, which is what makes "remember states" training meaningful.

Targets are the inputs shifted by one character:
    input:  [c_0, c_1, ..., c_{T-1}]
    target: [c_1, c_2, ..., c_T]

Classes:
    CharDataLoader: Stream-preserving minibatches with next_batch(split)

Functions:
    read_text_file: Read a UTF-8 corpus
    split_data: Split an index array into train/val/test by fraction
"""

from typing import Dict, Iterator, Tuple

import numpy as np

from char_rnn.exceptions import ConfigurationError


def read_text_file(path: str) -> str:
    """Read a corpus as UTF-8 text."""
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def split_data(
    encoded: np.ndarray, val_frac: float = 0.1, test_frac: float = 0.1
) -> Dict[str, np.ndarray]:
    """
    Split a 1D index array into contiguous train/val/test pieces.

    The split is in text order (train first, then val, then test), not
    shuffled: shuffling characters would destroy the sequences.

    Args:
        encoded: 1D array of character indices
        val_frac: Fraction of characters for validation
        test_frac: Fraction of characters for test

    Returns:
        Dict with "train", "val" and "test" arrays

    Raises:
        ConfigurationError: If the fractions are negative or leave no training data
    """
    if val_frac < 0 or test_frac < 0 or val_frac + test_frac >= 1:
        raise ConfigurationError(
            f"Invalid split fractions: val_frac={val_frac}, test_frac={test_frac}"
        )

    total = len(encoded)
    num_val = int(total * val_frac)
    num_test = int(total * test_frac)
    num_train = total - num_val - num_test

    return {
        "train": encoded[:num_train],
        "val": encoded[num_train : num_train + num_val],
        "test": encoded[num_train + num_val :],
    }


class CharDataLoader:
    """
    Minibatch loader over the train/val/test splits.

    Usage:
        loader = CharDataLoader(split_data(vocab.encode(text)), batch_size=50, seq_length=50)

        for epoch in range(num_epochs):
            loader.reset("train")
            for _ in range(loader.num_batches("train")):
                inputs, targets = loader.next_batch("train")

    Attributes:
        batch_size: Number of streams per batch (N)
        seq_length: Characters per stream per batch (T)
    """

    def __init__(self, splits: Dict[str, np.ndarray], batch_size: int, seq_length: int):
        """
        Args:
            splits: Dict of split name -> 1D index array
            batch_size: Sequences per batch
            seq_length: Time steps per sequence

        Raises:
            ConfigurationError: If batch_size or seq_length is not positive
        """
        if batch_size <= 0 or seq_length <= 0:
            raise ConfigurationError(
                f"batch_size and seq_length must be positive, got {batch_size}, {seq_length}"
            )
        self.batch_size = batch_size
        self.seq_length = seq_length

        self._inputs: Dict[str, np.ndarray] = {}
        self._targets: Dict[str, np.ndarray] = {}
        self._positions: Dict[str, int] = {}

        for name, data in splits.items():
            self._inputs[name], self._targets[name] = self._make_streams(np.asarray(data))
            self._positions[name] = 0

    def _make_streams(self, data: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        # One extra character is needed for the last target
        chunk = self.batch_size * self.seq_length
        usable = ((len(data) - 1) // chunk) * chunk if len(data) > 1 else 0

        inputs = data[:usable].reshape(self.batch_size, -1)
        targets = data[1 : usable + 1].reshape(self.batch_size, -1)
        return inputs, targets

    def num_batches(self, split: str) -> int:
        """Number of batches in one pass over ``split``."""
        self._check_split(split)
        return self._inputs[split].shape[1] // self.seq_length

    def next_batch(self, split: str) -> Tuple[np.ndarray, np.ndarray]:
        """
        Return the next (inputs, targets) batch of ``split``.

        Wraps around to the first batch after the last one.

        Returns:
            Tuple of int64 arrays, each of shape (batch_size, seq_length)

        Raises:
            ValueError: If the split is too short for a single batch
        """
        count = self.num_batches(split)
        if count == 0:
            raise ValueError(
                f"Split '{split}' is too short for one batch of "
                f"{self.batch_size} x {self.seq_length} characters"
            )

        index = self._positions[split]
        self._positions[split] = (index + 1) % count

        start = index * self.seq_length
        end = start + self.seq_length
        inputs = self._inputs[split][:, start:end].astype(np.int64)
        targets = self._targets[split][:, start:end].astype(np.int64)
        return inputs, targets

    def reset(self, split: str) -> None:
        """Rewind ``split`` to its first batch."""
        self._check_split(split)
        self._positions[split] = 0

    def iterate(self, split: str) -> Iterator[Tuple[np.ndarray, np.ndarray]]:
        """Yield every batch of ``split`` once, from the first."""
        self.reset(split)
        for _ in range(self.num_batches(split)):
            yield self.next_batch(split)

    def _check_split(self, split: str) -> None:
        if split not in self._inputs:
            raise KeyError(f"Unknown split '{split}', expected one of {sorted(self._inputs)}")
