"""
Feed-Forward Layers for the Character Language Model

This module implements the two non-recurrent layers of the model: the
character embedding lookup at the bottom and the linear projection to
vocabulary logits at the top. Both have forward and backward passes.

Gradients are accumulated into caller-owned buffers (a dict of arrays passed
to ``backward``) rather than stored on the layer, so that one buffer can
collect contributions from several calls before an optimizer step.

All implementations are in pure NumPy for educational purposes.

Classes:
    Embedding: Character index to dense vector lookup table
    Linear: Fully connected layer (y = x @ W + b)
"""

from typing import Dict

import numpy as np

from char_rnn.exceptions import ConfigurationError, OutOfVocabularyError


def _copy_into(target: np.ndarray, value: np.ndarray, name: str) -> None:
    """Copy ``value`` into ``target`` in place after checking the shape."""
    value = np.asarray(value)
    if value.shape != target.shape:
        raise ConfigurationError(
            f"Shape mismatch for parameter '{name}'",
            details=f"expected {target.shape}, got {value.shape}",
        )
    target[...] = value


class Embedding:
    """
    Embedding Layer (Lookup Table).

    Converts character indices into dense vectors by looking up rows in a
    learned embedding matrix of shape (vocabulary_size, embedding_dimension).

    Looking up row i is the same as multiplying a one-hot vector for i by the
    table, but much cheaper.

    Attributes:
        embedding_table: Weight matrix of shape (V, D)
    """

    def __init__(self, vocabulary_size: int, embedding_dimension: int):
        """
        Initialize Embedding layer.

        Args:
            vocabulary_size: Number of characters in the vocabulary (V)
            embedding_dimension: Size of embedding vectors (D)
        """
        self.vocabulary_size = vocabulary_size
        self.embedding_dimension = embedding_dimension

        # Scale by 1/sqrt(d) keeps the first layer's pre-activations small
        scale = 1.0 / np.sqrt(embedding_dimension)
        self.embedding_table = (
            np.random.randn(vocabulary_size, embedding_dimension) * scale
        )

        self._token_ids_cache = None

    def _check_indices(self, token_ids: np.ndarray) -> np.ndarray:
        token_ids = np.asarray(token_ids)
        if not np.issubdtype(token_ids.dtype, np.integer):
            raise OutOfVocabularyError(
                f"Character indices must be integers, got dtype {token_ids.dtype}"
            )
        if token_ids.size and (
            token_ids.min() < 0 or token_ids.max() >= self.vocabulary_size
        ):
            bad = token_ids[(token_ids < 0) | (token_ids >= self.vocabulary_size)]
            raise OutOfVocabularyError(
                f"Index {int(bad.flat[0])} out of range [0, {self.vocabulary_size})"
            )
        return token_ids

    def lookup(self, token_ids: np.ndarray) -> np.ndarray:
        """Look up embeddings without recording anything for backward."""
        token_ids = self._check_indices(token_ids)
        return self.embedding_table[token_ids]

    def forward(self, token_ids: np.ndarray) -> np.ndarray:
        """
        Forward pass: look up embeddings for character indices.

        Args:
            token_ids: Integer array of shape (batch_size, sequence_length)
                      Values must be in range [0, vocabulary_size)

        Returns:
            embeddings: Float array of shape (..., embedding_dimension)

        Raises:
            OutOfVocabularyError: If any index is negative or >= vocabulary_size
        """
        embeddings = self.lookup(token_ids)
        self._token_ids_cache = np.asarray(token_ids)
        return embeddings

    def backward(
        self, upstream_gradient: np.ndarray, gradients: Dict[str, np.ndarray]
    ) -> None:
        """
        Backward pass: accumulate the gradient for the embedding table.

        Args:
            upstream_gradient: Gradient w.r.t. the forward output
            gradients: Buffer dict with a "weight" entry shaped like the table

        Note:
            - There's no input gradient to return (indices are discrete)
            - Gradients accumulate for characters that appear multiple times
        """
        flat_token_ids = self._token_ids_cache.reshape(-1)
        flat_gradient = upstream_gradient.reshape(-1, self.embedding_dimension)

        # np.add.at handles repeated indices correctly (accumulates)
        np.add.at(gradients["weight"], flat_token_ids, flat_gradient)

    def get_parameters(self) -> Dict[str, np.ndarray]:
        """Return dictionary of learnable parameters."""
        return {"weight": self.embedding_table}

    def set_parameters(self, params: Dict[str, np.ndarray]) -> None:
        """Copy parameters in place, keeping existing array identities."""
        if "weight" in params:
            _copy_into(self.embedding_table, params["weight"], "weight")

    @property
    def weight(self) -> np.ndarray:
        """Alias for embedding_table."""
        return self.embedding_table


class Linear:
    """
    Fully Connected (Linear) Layer.

    Computes the affine transformation: y = x @ W + b

    In the character model this is the output projection from the top
    recurrent layer's hidden state (H) to one score per vocabulary entry (V).
    It is applied independently at every time step.

    Attributes:
        weights: Weight matrix of shape (input_features, output_features)
        bias: Bias vector of shape (output_features,)

    Weight Initialization:
        Xavier/Glorot initialization: W ~ N(0, sqrt(2 / (fan_in + fan_out)))
    """

    def __init__(self, input_features: int, output_features: int):
        """
        Initialize Linear layer with Xavier initialization.

        Args:
            input_features: Size of input dimension (fan_in)
            output_features: Size of output dimension (fan_out)
        """
        self.input_features = input_features
        self.output_features = output_features

        weight_std = np.sqrt(2.0 / (input_features + output_features))
        self.weights = np.random.randn(input_features, output_features) * weight_std
        self.bias = np.zeros(output_features)

        self._input_cache = None

    def apply(self, input_tensor: np.ndarray) -> np.ndarray:
        """Compute x @ W + b without caching the input."""
        return input_tensor @ self.weights + self.bias

    def forward(self, input_tensor: np.ndarray) -> np.ndarray:
        """
        Forward pass: y = x @ W + b

        Args:
            input_tensor: Input of shape (..., input_features)
                         Usually 3D (batch, seq, hidden)

        Returns:
            output_tensor: Output of shape (..., output_features)
        """
        self._input_cache = input_tensor
        return self.apply(input_tensor)

    def backward(
        self, upstream_gradient: np.ndarray, gradients: Dict[str, np.ndarray]
    ) -> np.ndarray:
        """
        Backward pass: accumulate parameter gradients and return input gradient.

        Args:
            upstream_gradient: Gradient w.r.t. the output, shape (..., output_features)
            gradients: Buffer dict with "weight" and "bias" entries

        Returns:
            input_gradient: Gradient w.r.t. input, shape (..., input_features)

        Mathematical Derivation:
            Forward: y = x @ W + b

            d_loss/d_W = x^T @ upstream  (summed over batch and time)
            d_loss/d_b = sum(upstream)
            d_loss/d_x = upstream @ W^T
        """
        input_2d = self._input_cache.reshape(-1, self.input_features)
        upstream_2d = upstream_gradient.reshape(-1, self.output_features)

        gradients["weight"] += input_2d.T @ upstream_2d
        gradients["bias"] += np.sum(upstream_2d, axis=0)

        input_gradient = upstream_gradient @ self.weights.T
        return input_gradient

    def get_parameters(self) -> Dict[str, np.ndarray]:
        """Return dictionary of learnable parameters."""
        return {"weight": self.weights, "bias": self.bias}

    def set_parameters(self, params: Dict[str, np.ndarray]) -> None:
        """Copy parameters in place, keeping existing array identities."""
        if "weight" in params:
            _copy_into(self.weights, params["weight"], "weight")
        if "bias" in params:
            _copy_into(self.bias, params["bias"], "bias")

    @property
    def weight(self) -> np.ndarray:
        """Alias for weights."""
        return self.weights
