"""
Recurrent Cells: Vanilla RNN and LSTM

A recurrent cell is the single time-step state transition of a recurrent
network. Given the input vector at step t and the state left behind by step
t-1, it produces the state for step t. The same cell (same weights) is reused
at every step of the sequence.

This module defines a small interface with two operations and exactly two
implementations:

    step_forward(x, state)                      -> (next_state, cache)
    step_backward(grad_next_state, cache, grads) -> (grad_x, grad_prev_state)

Everything that runs a cell over time (see char_rnn.recurrent) only uses this
interface and never needs to know which variant it is driving.

All implementations are in pure NumPy for educational purposes.

Classes:
    RecurrentState: Hidden state (and LSTM cell state) for a batch
    RecurrentCell: Abstract single-step transition
    VanillaRNNCell: h_next = tanh(x @ W_x + h_prev @ W_h + b)
    LSTMCell: Gated cell with a separate long-term cell state

Reference:
    - "Long Short-Term Memory" (Hochreiter & Schmidhuber, 1997)
    - "Learning to Forget: Continual Prediction with LSTM" (Gers et al., 2000)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np

from char_rnn.activations import sigmoid, sigmoid_backward, tanh, tanh_backward
from char_rnn.exceptions import ConfigurationError


@dataclass
class RecurrentState:
    """
    State carried from one time step to the next.

    Attributes:
        hidden: Exposed hidden state, shape (batch_size, hidden_size)
        cell: LSTM cell state of the same shape, or None for a vanilla RNN

    The same structure is used for state gradients during backward.
    """

    hidden: np.ndarray
    cell: Optional[np.ndarray] = None

    @property
    def batch_size(self) -> int:
        return self.hidden.shape[0]

    def copy(self) -> "RecurrentState":
        return RecurrentState(
            hidden=self.hidden.copy(),
            cell=None if self.cell is None else self.cell.copy(),
        )

    def zero_(self) -> None:
        """Zero the state in place."""
        self.hidden.fill(0.0)
        if self.cell is not None:
            self.cell.fill(0.0)


class RecurrentCell(ABC):
    """
    Abstract single time-step recurrent transition.

    Parameters are laid out the same way for every variant, with G gate
    blocks of width H side by side:

        W_x: (input_size, G * hidden_size)   input-to-hidden
        W_h: (hidden_size, G * hidden_size)  hidden-to-hidden
        b:   (G * hidden_size,)

    G is 1 for the vanilla RNN and 4 for the LSTM.

    Subclasses implement ``step_forward`` and ``step_backward``.
    """

    gate_count = 1
    has_cell_state = False

    def __init__(self, input_size: int, hidden_size: int):
        """
        Initialize cell parameters.

        Args:
            input_size: Dimension of the input vector at each step (D, or H
                        for stacked layers above the first)
            hidden_size: Dimension of the hidden state (H)

        Raises:
            ConfigurationError: If either size is not a positive integer
        """
        if input_size <= 0 or hidden_size <= 0:
            raise ConfigurationError(
                "Recurrent cell sizes must be positive",
                details=f"input_size={input_size}, hidden_size={hidden_size}",
            )
        self.input_size = input_size
        self.hidden_size = hidden_size

        width = self.gate_count * hidden_size
        # Xavier/Glorot scaling per weight matrix
        scale_x = np.sqrt(2.0 / (input_size + hidden_size))
        scale_h = np.sqrt(2.0 / (hidden_size + hidden_size))

        self.W_x = np.random.randn(input_size, width) * scale_x
        self.W_h = np.random.randn(hidden_size, width) * scale_h
        self.b = np.zeros(width)

    def initial_state(self, batch_size: int) -> RecurrentState:
        """Return an all-zero state for ``batch_size`` sequences."""
        hidden = np.zeros((batch_size, self.hidden_size))
        cell = np.zeros((batch_size, self.hidden_size)) if self.has_cell_state else None
        return RecurrentState(hidden=hidden, cell=cell)

    def _affine(self, x: np.ndarray, h_prev: np.ndarray) -> np.ndarray:
        # One combined affine map of x and h_prev: (N, D) and (N, H) -> (N, G*H)
        return x @ self.W_x + h_prev @ self.W_h + self.b

    def _accumulate(
        self,
        d_affine: np.ndarray,
        x: np.ndarray,
        h_prev: np.ndarray,
        gradients: Dict[str, np.ndarray],
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Backward through the shared affine map.

        Adds this step's weight gradients to the caller's buffers and returns
        the gradients w.r.t. x and h_prev.
        """
        gradients["W_x"] += x.T @ d_affine
        gradients["W_h"] += h_prev.T @ d_affine
        gradients["b"] += np.sum(d_affine, axis=0)

        grad_x = d_affine @ self.W_x.T
        grad_h_prev = d_affine @ self.W_h.T
        return grad_x, grad_h_prev

    @abstractmethod
    def step_forward(
        self, x: np.ndarray, state: RecurrentState
    ) -> Tuple[RecurrentState, tuple]:
        """
        Advance one time step.

        Args:
            x: Input at this step, shape (batch_size, input_size)
            state: State from the previous step

        Returns:
            next_state: State after this step
            cache: Values needed by step_backward
        """

    @abstractmethod
    def step_backward(
        self,
        grad_next_state: RecurrentState,
        cache: tuple,
        gradients: Dict[str, np.ndarray],
    ) -> Tuple[np.ndarray, RecurrentState]:
        """
        Backpropagate one time step.

        Args:
            grad_next_state: Gradient of the loss w.r.t. the state this step produced
            cache: The cache returned by step_forward for this step
            gradients: Caller-owned buffers for W_x, W_h and b (accumulated into)

        Returns:
            grad_x: Gradient w.r.t. the step input, shape (batch_size, input_size)
            grad_prev_state: Gradient w.r.t. the previous state
        """

    def get_parameters(self) -> Dict[str, np.ndarray]:
        """Return dictionary of learnable parameters."""
        return {"W_x": self.W_x, "W_h": self.W_h, "b": self.b}

    def set_parameters(self, params: Dict[str, np.ndarray]) -> None:
        """Copy parameters in place after checking their shapes."""
        for name, target in self.get_parameters().items():
            if name not in params:
                continue
            value = np.asarray(params[name])
            if value.shape != target.shape:
                raise ConfigurationError(
                    f"Shape mismatch for parameter '{name}'",
                    details=f"expected {target.shape}, got {value.shape}",
                )
            target[...] = value


class VanillaRNNCell(RecurrentCell):
    """
    Vanilla (Elman) RNN cell.

    Forward:
        h_next = tanh(x @ W_x + h_prev @ W_h + b)

    A single nonlinearity and a single state vector. Gradients flowing back
    through many steps are multiplied by W_h and tanh' every step, which is
    why they tend to vanish or explode on long sequences.
    """

    gate_count = 1
    has_cell_state = False

    def step_forward(
        self, x: np.ndarray, state: RecurrentState
    ) -> Tuple[RecurrentState, tuple]:
        h_prev = state.hidden
        h_next = tanh(self._affine(x, h_prev))
        return RecurrentState(hidden=h_next), (x, h_prev, h_next)

    def step_backward(
        self,
        grad_next_state: RecurrentState,
        cache: tuple,
        gradients: Dict[str, np.ndarray],
    ) -> Tuple[np.ndarray, RecurrentState]:
        x, h_prev, h_next = cache

        # Through tanh: d_a = d_h * (1 - h_next^2)
        d_affine = tanh_backward(grad_next_state.hidden, h_next)

        grad_x, grad_h_prev = self._accumulate(d_affine, x, h_prev, gradients)
        return grad_x, RecurrentState(hidden=grad_h_prev)


class LSTMCell(RecurrentCell):
    """
    Long Short-Term Memory cell.

    Forward:
        a = x @ W_x + h_prev @ W_h + b          (4H pre-activations)
        f = sigmoid(a[:, 0H:1H])                 forget gate
        i = sigmoid(a[:, 1H:2H])                 input gate
        o = sigmoid(a[:, 2H:3H])                 output gate
        g = tanh(a[:, 3H:4H])                    candidate values

        c_next = f * c_prev + i * g
        h_next = o * tanh(c_next)

    Why it helps:
        dc_next/dc_prev = f. When the forget gate is near 1 the cell state is
        an (almost) linear path through time, so gradients can survive many
        steps without being squashed by a nonlinearity at every step.

    The forget gate bias starts at 1.0 so that cells remember by default.
    """

    gate_count = 4
    has_cell_state = True

    def __init__(self, input_size: int, hidden_size: int):
        super().__init__(input_size, hidden_size)
        self.b[:hidden_size] = 1.0

    def step_forward(
        self, x: np.ndarray, state: RecurrentState
    ) -> Tuple[RecurrentState, tuple]:
        h_prev, c_prev = state.hidden, state.cell
        H = self.hidden_size

        a = self._affine(x, h_prev)
        f = sigmoid(a[:, :H])
        i = sigmoid(a[:, H : 2 * H])
        o = sigmoid(a[:, 2 * H : 3 * H])
        g = tanh(a[:, 3 * H :])

        c_next = f * c_prev + i * g
        tanh_c = tanh(c_next)
        h_next = o * tanh_c

        cache = (x, h_prev, c_prev, f, i, o, g, tanh_c)
        return RecurrentState(hidden=h_next, cell=c_next), cache

    def step_backward(
        self,
        grad_next_state: RecurrentState,
        cache: tuple,
        gradients: Dict[str, np.ndarray],
    ) -> Tuple[np.ndarray, RecurrentState]:
        """
        Backpropagate one LSTM step.

        Derivation (d_ means dL/d):
            d_o      = d_h * tanh(c_next)
            d_c      = d_c_next + d_h * o * (1 - tanh(c_next)^2)
            d_f      = d_c * c_prev
            d_i      = d_c * g
            d_g      = d_c * i
            d_c_prev = d_c * f

        then through the gate nonlinearities (sigmoid' = s(1-s), tanh' = 1-t^2)
        to the stacked pre-activation gradient d_a, and through the affine map.
        """
        x, h_prev, c_prev, f, i, o, g, tanh_c = cache

        grad_h = grad_next_state.hidden
        grad_c_next = grad_next_state.cell
        if grad_c_next is None:
            grad_c_next = np.zeros_like(c_prev)

        d_o = grad_h * tanh_c
        d_c = grad_c_next + tanh_backward(grad_h * o, tanh_c)

        d_f = d_c * c_prev
        d_i = d_c * g
        d_g = d_c * i
        grad_c_prev = d_c * f

        d_affine = np.concatenate(
            [
                sigmoid_backward(d_f, f),
                sigmoid_backward(d_i, i),
                sigmoid_backward(d_o, o),
                tanh_backward(d_g, g),
            ],
            axis=1,
        )

        grad_x, grad_h_prev = self._accumulate(d_affine, x, h_prev, gradients)
        return grad_x, RecurrentState(hidden=grad_h_prev, cell=grad_c_prev)


CELL_TYPES = {
    "rnn": VanillaRNNCell,
    "lstm": LSTMCell,
}


def create_cell(cell_type: str, input_size: int, hidden_size: int) -> RecurrentCell:
    """
    Create a recurrent cell by name.

    Args:
        cell_type: "rnn" or "lstm"
        input_size: Input dimension
        hidden_size: Hidden dimension

    Raises:
        ConfigurationError: If the cell type is unknown
    """
    if cell_type not in CELL_TYPES:
        raise ConfigurationError(
            f"Unknown cell type '{cell_type}'",
            details=f"expected one of {sorted(CELL_TYPES)}",
        )
    return CELL_TYPES[cell_type](input_size, hidden_size)
