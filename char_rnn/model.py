"""
Character-Level Recurrent Language Model

This module stacks the pieces into a complete model that predicts the next
character at every position of its input.

Architecture Overview:
    Character indices (N, T)
           |
    [Embedding]                   (N, T, D)
           |
    [RecurrentLayer 1]            (N, T, H)   consumes D
           |
    [RecurrentLayer 2..L]         (N, T, H)   each consumes the layer below
           |
    [Linear Projection]           (N, T, V)   applied independently per step
           |
    [Softmax] -> Next-character probabilities

There are no skip connections: layer k sees only the output of layer k-1.

Reference:
    - "Generating Sequences With Recurrent Neural Networks" (Graves, 2013)
    - "The Unreasonable Effectiveness of Recurrent Neural Networks" (Karpathy, 2015)

Classes:
    CharRNNConfig: Configuration dataclass for model hyperparameters
    CharRNNModel: Complete stacked recurrent language model

Functions:
    cross_entropy_loss: Mean cross-entropy over all N*T predictions
    cross_entropy_loss_backward: Gradient of cross-entropy w.r.t. logits
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np

from char_rnn.activations import softmax
from char_rnn.cells import CELL_TYPES, create_cell
from char_rnn.exceptions import ConfigurationError
from char_rnn.layers import Embedding, Linear
from char_rnn.recurrent import ModelState, RecurrentLayer


@dataclass
class CharRNNConfig:
    """
    Configuration for the character model.

    Attributes:
        vocab_size: Number of distinct characters (V)
        embedding_dim: Dimension of character embeddings (D)
        hidden_dim: Dimension of every recurrent layer's state (H)
        num_layers: Number of stacked recurrent layers (L)
        cell_type: "rnn" for a vanilla RNN or "lstm"
        grad_clip: Parameter gradients are clamped to [-grad_clip, grad_clip]

    Typical configurations:
        - Tiny Shakespeare: vocab=65, embed=64, hidden=128, layers=2, lstm
        - Unit tests: vocab=5, embed=3, hidden=4, layers=2
    """

    vocab_size: int = 65
    embedding_dim: int = 64
    hidden_dim: int = 128
    num_layers: int = 2
    cell_type: str = "lstm"
    grad_clip: float = 5.0

    def validate(self) -> None:
        """
        Check that all dimensions are usable.

        Raises:
            ConfigurationError: On any non-positive size or unknown cell type
        """
        for name in ("vocab_size", "embedding_dim", "hidden_dim", "num_layers"):
            value = getattr(self, name)
            if not isinstance(value, (int, np.integer)) or value <= 0:
                raise ConfigurationError(
                    f"{name} must be a positive integer, got {value!r}"
                )
        if self.cell_type not in CELL_TYPES:
            raise ConfigurationError(
                f"Unknown cell type '{self.cell_type}'",
                details=f"expected one of {sorted(CELL_TYPES)}",
            )
        if self.grad_clip <= 0:
            raise ConfigurationError(f"grad_clip must be positive, got {self.grad_clip}")


class CharRNNModel:
    """
    Stacked recurrent character language model.

    The model supports:
    - Forward pass: character indices -> vocabulary logits for every step
    - Backward pass: gradients for every parameter, accumulated into
      caller-owned buffers
    - Single-step inference (``step``), used by the sampler

    Example usage:
        config = CharRNNConfig(vocab_size=65, cell_type="lstm")
        model = CharRNNModel(config)

        state = model.initial_state(batch_size=50)
        logits = model.forward(inputs, state)         # (50, T, 65); state updated
        loss = cross_entropy_loss(logits, targets)

        gradients = model.allocate_gradients()
        model.backward(cross_entropy_loss_backward(logits, targets), gradients)

    Attributes:
        config: Model configuration
        token_embedding: Character index -> vector
        rnn_layers: List of RecurrentLayer, bottom to top
        output_projection: Top hidden state -> vocabulary logits
    """

    def __init__(self, config: CharRNNConfig):
        """
        Initialize the model and check that all layer shapes line up.

        Args:
            config: CharRNNConfig with model hyperparameters

        Raises:
            ConfigurationError: If the configuration or layer chain is inconsistent
        """
        config.validate()
        self.config = config

        self.token_embedding = Embedding(
            vocabulary_size=config.vocab_size, embedding_dimension=config.embedding_dim
        )

        self.rnn_layers: List[RecurrentLayer] = []
        for layer_index in range(config.num_layers):
            input_size = config.embedding_dim if layer_index == 0 else config.hidden_dim
            cell = create_cell(config.cell_type, input_size, config.hidden_dim)
            self.rnn_layers.append(RecurrentLayer(cell))

        self.output_projection = Linear(
            input_features=config.hidden_dim, output_features=config.vocab_size
        )

        self._check_layer_chain()

    def _check_layer_chain(self) -> None:
        """Fail fast if any layer's input size differs from what feeds it."""
        feeding_size = self.token_embedding.embedding_dimension
        feeding_name = "token_embedding"
        for layer_index, layer in enumerate(self.rnn_layers):
            if layer.input_size != feeding_size:
                raise ConfigurationError(
                    f"rnn_layers.{layer_index} expects input size {layer.input_size} "
                    f"but {feeding_name} produces {feeding_size}"
                )
            feeding_size = layer.hidden_size
            feeding_name = f"rnn_layers.{layer_index}"

        if self.output_projection.input_features != feeding_size:
            raise ConfigurationError(
                f"output_projection expects input size "
                f"{self.output_projection.input_features} but {feeding_name} "
                f"produces {feeding_size}"
            )
        if self.output_projection.output_features != self.token_embedding.vocabulary_size:
            raise ConfigurationError(
                "output_projection must produce one logit per vocabulary entry"
            )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def initial_state(self, batch_size: int) -> ModelState:
        """Create a zero state for ``batch_size`` sequences."""
        return ModelState.zeros(self.rnn_layers, batch_size)

    def reset_state(self, state: ModelState) -> None:
        """Zero all layers' carried hidden/cell state (start of an epoch)."""
        state.reset()

    # ------------------------------------------------------------------
    # Forward / backward
    # ------------------------------------------------------------------

    def forward(
        self, input_tokens: np.ndarray, state: Optional[ModelState] = None
    ) -> np.ndarray:
        """
        Forward pass: character indices to vocabulary logits.

        Args:
            input_tokens: Integer indices, shape (batch_size, sequence_length)
            state: Carried state. If given, each layer starts from it and the
                   final state of each layer is written back into it. If None,
                   every layer starts from zeros and nothing is carried.

        Returns:
            Logits over vocabulary, shape (batch_size, sequence_length, vocab_size)

        Raises:
            OutOfVocabularyError: If any index is outside [0, vocab_size)
        """
        input_tokens = np.asarray(input_tokens)
        if input_tokens.ndim != 2:
            raise ValueError(
                f"Expected indices of shape (N, T), got {input_tokens.shape}"
            )
        if state is not None and len(state) != len(self.rnn_layers):
            raise ValueError(
                f"State has {len(state)} layers, model has {len(self.rnn_layers)}"
            )

        # (N, T) -> (N, T, D)
        hidden_states = self.token_embedding.forward(input_tokens)

        # Each layer's output sequence is the next layer's input sequence
        for layer_index, layer in enumerate(self.rnn_layers):
            initial = None if state is None else state.layers[layer_index].copy()
            hidden_states, final_state = layer.forward(hidden_states, initial)
            if state is not None:
                # Copied so an in-place reset cannot reach the step caches
                state.layers[layer_index] = final_state.copy()

        # (N, T, H) -> (N, T, V)
        return self.output_projection.forward(hidden_states)

    def backward(
        self,
        grad_logits: np.ndarray,
        gradients: Optional[Dict[str, np.ndarray]] = None,
    ) -> Dict[str, np.ndarray]:
        """
        Backward pass for the most recent forward call.

        Gradients are added into ``gradients`` (created with
        ``allocate_gradients``). The caller zeroes the buffers between
        optimizer steps; this method never does.

        Truncation: the gradient stops at each layer's initial state, so no
        gradient flows into the previous minibatch even when state is carried.

        Args:
            grad_logits: Gradient of loss w.r.t. logits, shape (N, T, V)
            gradients: Buffers to accumulate into. Fresh zeros if None.

        Returns:
            The gradient buffers, keyed like ``get_parameters``
        """
        if gradients is None:
            gradients = self.allocate_gradients()

        grad_hidden = self.output_projection.backward(
            grad_logits, _scoped(gradients, "output_projection")
        )

        for layer_index in reversed(range(len(self.rnn_layers))):
            layer = self.rnn_layers[layer_index]
            grad_hidden, _ = layer.backward(
                grad_hidden, _scoped(gradients, f"rnn_layers.{layer_index}")
            )

        self.token_embedding.backward(grad_hidden, _scoped(gradients, "token_embedding"))

        return gradients

    def step(self, token_ids: np.ndarray, state: ModelState) -> np.ndarray:
        """
        Single time-step forward pass for inference.

        Nothing is recorded for backward. ``state`` is advanced in place.

        Args:
            token_ids: Current character index per sequence, shape (batch_size,)
            state: Carried state, updated to the state after this step

        Returns:
            Logits for the next character, shape (batch_size, vocab_size)
        """
        hidden = self.token_embedding.lookup(np.asarray(token_ids))
        for layer_index, layer in enumerate(self.rnn_layers):
            state.layers[layer_index] = layer.step(hidden, state.layers[layer_index])
            hidden = state.layers[layer_index].hidden
        return self.output_projection.apply(hidden)

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    def get_parameters(self) -> Dict[str, np.ndarray]:
        """
        Get all model parameters.

        Returns:
            Dictionary mapping parameter names to the live parameter arrays
        """
        params = {}
        for name, param in self.token_embedding.get_parameters().items():
            params[f"token_embedding.{name}"] = param
        for layer_index, layer in enumerate(self.rnn_layers):
            for name, param in layer.get_parameters().items():
                params[f"rnn_layers.{layer_index}.{name}"] = param
        for name, param in self.output_projection.get_parameters().items():
            params[f"output_projection.{name}"] = param
        return params

    def set_parameters(self, params: Dict[str, np.ndarray]) -> None:
        """
        Set model parameters from dictionary (values are copied in place).

        Raises:
            ConfigurationError: If any array's shape does not match the model
        """
        self.token_embedding.set_parameters(_scoped(params, "token_embedding"))
        for layer_index, layer in enumerate(self.rnn_layers):
            layer.set_parameters(_scoped(params, f"rnn_layers.{layer_index}"))
        self.output_projection.set_parameters(_scoped(params, "output_projection"))

    def allocate_gradients(self) -> Dict[str, np.ndarray]:
        """Create zeroed gradient buffers, one per parameter."""
        return {name: np.zeros_like(param) for name, param in self.get_parameters().items()}

    def count_parameters(self) -> int:
        """Count total number of parameters in the model."""
        return sum(param.size for param in self.get_parameters().values())


def _scoped(arrays: Dict[str, np.ndarray], prefix: str) -> Dict[str, np.ndarray]:
    """Select the entries under ``prefix.`` and strip the prefix from their names."""
    # Same array objects as the caller's, so in-place += lands in their buffers
    start = len(prefix) + 1
    return {
        name[start:]: array
        for name, array in arrays.items()
        if name.startswith(prefix + ".")
    }


def cross_entropy_loss(logits: np.ndarray, targets: np.ndarray) -> float:
    """
    Compute cross-entropy loss for next-character prediction.

    Formula:
        loss = -mean over all N*T positions of log(softmax(logits)[target])

    Args:
        logits: Model output logits, shape (batch, seq_len, vocab_size)
        targets: Target indices (inputs shifted by one), shape (batch, seq_len)

    Returns:
        Scalar loss value (average cross-entropy per character)
    """
    vocab_size = logits.shape[-1]
    logits_flat = logits.reshape(-1, vocab_size)
    targets_flat = np.asarray(targets).reshape(-1)

    # log softmax via log-sum-exp, stable for large logits
    shifted = logits_flat - np.max(logits_flat, axis=-1, keepdims=True)
    log_norm = np.log(np.sum(np.exp(shifted), axis=-1))
    correct = shifted[np.arange(shifted.shape[0]), targets_flat]

    return float(np.mean(log_norm - correct))


def cross_entropy_loss_backward(logits: np.ndarray, targets: np.ndarray) -> np.ndarray:
    """
    Compute gradient of mean cross-entropy loss with respect to logits.

    The gradient has a simple form:
        d_loss/d_logits = (softmax(logits) - one_hot(targets)) / (N * T)

    Args:
        logits: Model output logits, shape (batch, seq_len, vocab_size)
        targets: Target indices, shape (batch, seq_len)

    Returns:
        Gradient w.r.t. logits, shape (batch, seq_len, vocab_size)
    """
    vocab_size = logits.shape[-1]
    grad = softmax(logits).reshape(-1, vocab_size)
    targets_flat = np.asarray(targets).reshape(-1)

    grad[np.arange(grad.shape[0]), targets_flat] -= 1.0
    grad /= grad.shape[0]

    return grad.reshape(logits.shape)


# =============================================================================
# EDUCATIONAL DEMO
# Run with: python -m char_rnn.model
# =============================================================================
if __name__ == "__main__":
    print("=" * 70)
    print("CHARACTER RNN MODEL DEMO")
    print("=" * 70)
    print()

    np.random.seed(42)
    config = CharRNNConfig(
        vocab_size=30, embedding_dim=16, hidden_dim=32, num_layers=2, cell_type="lstm"
    )
    model = CharRNNModel(config)

    print(f"Cell type: {config.cell_type}, layers: {config.num_layers}")
    print(f"Total parameters: {model.count_parameters():,}")
    for name, param in model.get_parameters().items():
        print(f"  {name:<28} {param.shape}")
    print()

    batch_size, seq_len = 4, 10
    inputs = np.random.randint(0, config.vocab_size, (batch_size, seq_len))
    targets = np.roll(inputs, -1, axis=1)

    state = model.initial_state(batch_size)
    logits = model.forward(inputs, state)
    loss = cross_entropy_loss(logits, targets)
    print(f"Logits shape: {logits.shape}")
    print(f"Initial loss: {loss:.4f} (uniform guess: {np.log(config.vocab_size):.4f})")
    print()

    gradients = model.backward(cross_entropy_loss_backward(logits, targets))
    print("Gradient norms:")
    for name, grad in gradients.items():
        print(f"  {name:<28} {np.linalg.norm(grad):.6f}")
    print()
    print("Carried state after the batch (layer 1, sequence 0, first 4 units):")
    print(f"  h: {state.layers[0].hidden[0, :4].round(4)}")
    print(f"  c: {state.layers[0].cell[0, :4].round(4)}")
