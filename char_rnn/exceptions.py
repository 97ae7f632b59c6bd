"""Exceptions raised by the char_rnn package."""

from typing import Optional


class CharRNNError(Exception):
    """Base exception for all char_rnn errors."""

    def __init__(self, message: str, details: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}\nDetails: {self.details}"
        return self.message


class ConfigurationError(CharRNNError, ValueError):
    """Raised when model dimensions or hyperparameters are inconsistent."""


class OutOfVocabularyError(CharRNNError, IndexError):
    """Raised when an index or character is outside the vocabulary."""


class InvalidSamplingArgumentError(CharRNNError, ValueError):
    """Raised when sampling is requested with an invalid temperature or length."""


class NumericalInstabilityError(CharRNNError, ArithmeticError):
    """Raised when gradients contain NaN or Inf values and the caller aborts."""


class CheckpointError(CharRNNError):
    """Raised when a checkpoint or vocabulary file cannot be read."""
