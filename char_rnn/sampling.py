"""
Sampling Text from a Trained Character Model

Generation is autoregressive: the model reads one character, predicts a
distribution over the next one, we draw a character from it, and that
character becomes the next input.

    seed "ROM" -> step('R') -> step('O') -> step('M') -> logits
                                                          |
                 +----------------------------------------+
                 v
    softmax(logits / T) -> draw c1 -> step(c1) -> logits -> draw c2 -> ...

Temperature T:
    - T -> 0: distribution collapses onto the most likely character (argmax)
    - T = 1: sample from the model's own distribution
    - T > 1: flatter distribution, more diverse and more mistakes

T must be strictly positive; T = 0 would divide by zero and is rejected.
For deterministic decoding use ``sample=False`` (argmax) instead.

Sampling only uses ``CharRNNModel.step``: one time step at a time, with no
caches kept for a backward pass.

Functions:
    generate_indices: Generator yielding one sampled index per step
    sample_indices: List of ``length`` sampled indices
    sample: Decoded text of ``length`` sampled characters
"""

from typing import Iterator, List, Optional, Sequence

import numpy as np

from char_rnn.activations import softmax
from char_rnn.exceptions import InvalidSamplingArgumentError, OutOfVocabularyError
from char_rnn.model import CharRNNModel
from char_rnn.vocabulary import CharVocabulary


def _validate(length: int, temperature: float) -> None:
    if length < 0:
        raise InvalidSamplingArgumentError(f"length must be non-negative, got {length}")
    if not temperature > 0:
        raise InvalidSamplingArgumentError(
            f"temperature must be strictly positive, got {temperature}",
            details="use sample=False for argmax decoding",
        )


def generate_indices(
    model: CharRNNModel,
    length: int,
    temperature: float = 1.0,
    seed_indices: Optional[Sequence[int]] = None,
    start_index: int = 0,
    sample: bool = True,
    rng=None,
) -> Iterator[int]:
    """
    Lazily generate ``length`` character indices.

    Arguments are checked when this is called, before the first index is
    requested. The returned iterator can be stopped between any two steps.

    Args:
        model: Trained model
        length: Number of characters to generate
        temperature: Logits are divided by this before softmax. Must be > 0.
        seed_indices: Characters fed first to warm up the state. Not yielded.
        start_index: Input used for the first step when there is no seed
        sample: Draw from the distribution (True) or take the argmax (False)
        rng: Object with a ``choice(n, p=...)`` method, e.g. a
             ``np.random.Generator``. Defaults to the global ``np.random``.

    Returns:
        Iterator yielding one generated index per step

    Raises:
        InvalidSamplingArgumentError: If temperature <= 0 or length < 0
        OutOfVocabularyError: If a seed or start index is outside the vocabulary
    """
    _validate(length, temperature)
    warmup = [start_index]
    if seed_indices is not None and len(seed_indices) > 0:
        warmup = [int(i) for i in seed_indices]
    vocab_size = model.config.vocab_size
    bad = [i for i in warmup if not 0 <= i < vocab_size]
    if bad:
        raise OutOfVocabularyError(
            f"Start indices outside the vocabulary: {bad}", details=f"vocab_size={vocab_size}"
        )
    if rng is None:
        rng = np.random
    return _generate(model, length, temperature, warmup, sample, rng)


def _generate(
    model: CharRNNModel,
    length: int,
    temperature: float,
    warmup: List[int],
    sample: bool,
    rng,
) -> Iterator[int]:
    vocab_size = model.config.vocab_size
    state = model.initial_state(batch_size=1)

    # Warm up: feed the seed (or the start token) one character at a time
    logits = None
    for index in warmup:
        logits = model.step(np.array([index], dtype=np.int64), state)

    for step in range(length):
        scores = logits[0]
        if sample:
            probs = softmax(scores / temperature)
            next_index = int(rng.choice(vocab_size, p=probs))
        else:
            next_index = int(np.argmax(scores))

        yield next_index

        if step < length - 1:
            logits = model.step(np.array([next_index], dtype=np.int64), state)


def sample_indices(
    model: CharRNNModel,
    length: int,
    temperature: float = 1.0,
    seed_indices: Optional[Sequence[int]] = None,
    start_index: int = 0,
    sample: bool = True,
    rng=None,
) -> List[int]:
    """Generate ``length`` indices; see ``generate_indices`` for the arguments."""
    return list(
        generate_indices(
            model,
            length,
            temperature=temperature,
            seed_indices=seed_indices,
            start_index=start_index,
            sample=sample,
            rng=rng,
        )
    )


def sample(
    model: CharRNNModel,
    vocabulary: CharVocabulary,
    length: int,
    seed_text: Optional[str] = None,
    temperature: float = 1.0,
    start_char: Optional[str] = None,
    sample: bool = True,
    rng=None,
) -> str:
    """
    Generate text from the model.

    The returned string contains exactly ``length`` generated characters;
    the seed text is not included.

    Args:
        model: Trained model
        vocabulary: Vocabulary the model was trained with
        length: Number of characters to generate
        seed_text: Optional text to condition on
        temperature: Sampling temperature, must be > 0
        start_char: Start token when there is no seed (default: first vocabulary entry)
        sample: Draw from the distribution (True) or take the argmax (False)
        rng: Random source, see ``generate_indices``

    Returns:
        Generated text of length ``length``
    """
    _validate(length, temperature)
    seed_indices = vocabulary.encode(seed_text).tolist() if seed_text else None
    start_index = vocabulary.char_to_index(start_char) if start_char is not None else 0

    indices = generate_indices(
        model,
        length,
        temperature=temperature,
        seed_indices=seed_indices,
        start_index=start_index,
        sample=sample,
        rng=rng,
    )
    return vocabulary.decode(indices)
