"""
Character Vocabulary

Maps each distinct character of a corpus to a dense integer index and back.
The mapping is a bijection over 0..V-1, built from the sorted set of
characters so the same text always produces the same indices.

The vocabulary is saved next to checkpoints as JSON so that sampling can
decode indices without the training corpus.

Classes:
    CharVocabulary: Character <-> index mapping with encode/decode and save/load
"""

import json
from typing import Dict, Iterable, List, Sequence

import numpy as np

from char_rnn.exceptions import CheckpointError, ConfigurationError, OutOfVocabularyError


class CharVocabulary:
    """
    Bidirectional mapping between characters and indices.

    Example:
        vocab = CharVocabulary.from_text("hello")
        vocab.characters            # ['e', 'h', 'l', 'o']
        vocab.encode("hell")        # array([1, 0, 2, 2])
        vocab.decode([1, 0, 2, 2])  # 'hell'
    """

    def __init__(self, characters: Sequence[str]):
        """
        Args:
            characters: Characters in index order. Must be unique single characters.

        Raises:
            ConfigurationError: If the list is empty or not a bijection
        """
        characters = list(characters)
        if not characters:
            raise ConfigurationError("Vocabulary must contain at least one character")
        for char in characters:
            if not isinstance(char, str) or len(char) != 1:
                raise ConfigurationError(
                    f"Vocabulary entries must be single characters, got {char!r}"
                )
        if len(set(characters)) != len(characters):
            raise ConfigurationError("Vocabulary contains duplicate characters")

        self.characters: List[str] = characters
        self.token_to_id: Dict[str, int] = {c: i for i, c in enumerate(characters)}

    @classmethod
    def from_text(cls, text: str) -> "CharVocabulary":
        """Build a vocabulary of every distinct character in ``text``, sorted."""
        return cls(sorted(set(text)))

    @property
    def vocabulary_size(self) -> int:
        return len(self.characters)

    def __len__(self) -> int:
        return len(self.characters)

    def __contains__(self, char: str) -> bool:
        return char in self.token_to_id

    def char_to_index(self, char: str) -> int:
        try:
            return self.token_to_id[char]
        except KeyError:
            raise OutOfVocabularyError(f"Character {char!r} is not in the vocabulary") from None

    def index_to_char(self, index: int) -> str:
        if not 0 <= index < len(self.characters):
            raise OutOfVocabularyError(
                f"Index {index} out of range [0, {len(self.characters)})"
            )
        return self.characters[index]

    def encode(self, text: str) -> np.ndarray:
        """
        Convert text to an int64 array of indices.

        Raises:
            OutOfVocabularyError: If ``text`` contains an unknown character
        """
        return np.array([self.char_to_index(c) for c in text], dtype=np.int64)

    def decode(self, indices: Iterable[int]) -> str:
        """Convert indices back to text."""
        return "".join(self.index_to_char(int(i)) for i in indices)

    def to_dict(self) -> dict:
        return {"idx_to_token": {str(i): c for i, c in enumerate(self.characters)}}

    @classmethod
    def from_dict(cls, data: dict) -> "CharVocabulary":
        try:
            idx_to_token = {int(k): v for k, v in data["idx_to_token"].items()}
        except (KeyError, AttributeError, ValueError) as e:
            raise CheckpointError("Malformed vocabulary data", details=str(e)) from e
        if sorted(idx_to_token) != list(range(len(idx_to_token))):
            raise CheckpointError("Vocabulary indices must be contiguous from 0")
        return cls([idx_to_token[i] for i in range(len(idx_to_token))])

    def save(self, path: str) -> None:
        """
        Save vocabulary to a JSON file.

        Args:
            path: File path to save to
        """
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, ensure_ascii=False, indent=2)

    @classmethod
    def load(cls, path: str) -> "CharVocabulary":
        """
        Load vocabulary from a JSON file.

        Raises:
            CheckpointError: If the file is missing or malformed
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise CheckpointError(f"Could not read vocabulary from {path}", details=str(e)) from e
        return cls.from_dict(data)
