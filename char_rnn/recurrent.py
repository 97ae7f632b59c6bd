"""
Sequence Unrolling and Backpropagation Through Time

A RecurrentLayer runs one recurrent cell across the time dimension of a
minibatch:

    inputs (N, T, D) --> [cell] -> [cell] -> ... -> [cell] --> outputs (N, T, H)
                           h0        h1              h_{T-1}       final state

State flows strictly forward in time: the output at step t depends only on
inputs 0..t and the initial state.

The backward pass walks the steps in reverse order. At every step the state
gradient is the sum of
    - the gradient from above (the layer's output at step t feeds the next
      layer or the projection), and
    - the gradient carried back from step t+1 (through h_t -> h_{t+1}).
Weight gradients from every step are added into the same buffers, since the
weights are shared across time.

This module also defines ModelState, the explicit container for carried
state across minibatches (the "remember states" option). It is owned by the
caller and passed into every forward call.

Classes:
    RecurrentLayer: Generic sequence unroller over any RecurrentCell
    ModelState: Per-layer carried state for a stacked model
"""

from typing import Dict, List, Optional, Tuple

import numpy as np

from char_rnn.cells import RecurrentCell, RecurrentState


class RecurrentLayer:
    """
    One recurrent layer: a cell unrolled over T time steps.

    The layer is generic over the cell interface. It never checks whether the
    cell is a vanilla RNN or an LSTM; the cell's own ``initial_state`` decides
    what a zero state (or zero state gradient) looks like.

    Attributes:
        cell: The RecurrentCell applied at each step
        input_size: Per-step input dimension
        hidden_size: Per-step output dimension
    """

    def __init__(self, cell: RecurrentCell):
        self.cell = cell
        self.input_size = cell.input_size
        self.hidden_size = cell.hidden_size

        self._input_cache: Optional[np.ndarray] = None
        self._output_cache: Optional[np.ndarray] = None
        self._step_caches: List[tuple] = []

    def initial_state(self, batch_size: int) -> RecurrentState:
        return self.cell.initial_state(batch_size)

    def forward(
        self, inputs: np.ndarray, initial_state: Optional[RecurrentState] = None
    ) -> Tuple[np.ndarray, RecurrentState]:
        """
        Unroll the cell over the time dimension.

        Args:
            inputs: Input of shape (batch_size, seq_len, input_size)
            initial_state: State before step 0. Zeros if None.

        Returns:
            outputs: Hidden state at every step, shape (batch_size, seq_len, hidden_size)
            final_state: State after the last step
        """
        if inputs.ndim != 3 or inputs.shape[2] != self.input_size:
            raise ValueError(
                f"Expected input of shape (N, T, {self.input_size}), got {inputs.shape}"
            )
        batch_size, seq_len, _ = inputs.shape

        state = initial_state
        if state is None:
            state = self.cell.initial_state(batch_size)
        elif state.batch_size != batch_size:
            raise ValueError(
                f"Initial state batch size {state.batch_size} "
                f"does not match input batch size {batch_size}"
            )

        outputs = np.zeros((batch_size, seq_len, self.hidden_size))
        step_caches = []

        for t in range(seq_len):
            state, cache = self.cell.step_forward(inputs[:, t, :], state)
            outputs[:, t, :] = state.hidden
            step_caches.append(cache)

        self._input_cache = inputs
        self._output_cache = outputs
        self._step_caches = step_caches

        return outputs, state

    def step(self, x: np.ndarray, state: RecurrentState) -> RecurrentState:
        """Advance a single time step without recording anything for backward."""
        next_state, _ = self.cell.step_forward(x, state)
        return next_state

    def backward(
        self,
        grad_outputs: np.ndarray,
        gradients: Dict[str, np.ndarray],
        grad_final_state: Optional[RecurrentState] = None,
    ) -> Tuple[np.ndarray, RecurrentState]:
        """
        Backpropagation through time for the most recent forward call.

        Args:
            grad_outputs: Gradient w.r.t. outputs, shape (batch_size, seq_len, hidden_size)
            gradients: Caller-owned buffers for the cell parameters (accumulated into)
            grad_final_state: Gradient w.r.t. the final state, if the final
                              state was used downstream. Zeros if None.

        Returns:
            grad_inputs: Gradient w.r.t. inputs, shape (batch_size, seq_len, input_size)
            grad_initial_state: Gradient w.r.t. the initial state
        """
        if self._input_cache is None:
            raise RuntimeError("backward() called before forward()")

        batch_size, seq_len, _ = self._input_cache.shape
        grad_inputs = np.zeros_like(self._input_cache)

        if grad_final_state is None:
            grad_state = self.cell.initial_state(batch_size)
        else:
            grad_state = grad_final_state.copy()

        for t in reversed(range(seq_len)):
            # Gradient from above at this step plus what came back from t+1
            grad_state.hidden = grad_state.hidden + grad_outputs[:, t, :]
            grad_inputs[:, t, :], grad_state = self.cell.step_backward(
                grad_state, self._step_caches[t], gradients
            )

        return grad_inputs, grad_state

    @property
    def recorded_input(self) -> Optional[np.ndarray]:
        """Input tensor of the most recent forward call."""
        return self._input_cache

    @property
    def recorded_output(self) -> Optional[np.ndarray]:
        """Output tensor of the most recent forward call."""
        return self._output_cache

    def get_parameters(self) -> Dict[str, np.ndarray]:
        return self.cell.get_parameters()

    def set_parameters(self, params: Dict[str, np.ndarray]) -> None:
        self.cell.set_parameters(params)


class ModelState:
    """
    Carried recurrent state for every layer of a stacked model.

    When training with "remember states", the final state of one minibatch is
    the initial state of the next minibatch from the same text streams. This
    object holds that state between calls. Nothing is stored globally: the
    caller creates one, passes it to ``CharRNNModel.forward`` (which reads the
    initial state from it and writes the final state back), and calls
    ``reset()`` at epoch boundaries.

    Attributes:
        layers: One RecurrentState per recurrent layer, bottom to top
    """

    def __init__(self, layers: List[RecurrentState]):
        self.layers = layers

    @classmethod
    def zeros(cls, recurrent_layers: List[RecurrentLayer], batch_size: int) -> "ModelState":
        return cls([layer.initial_state(batch_size) for layer in recurrent_layers])

    @property
    def batch_size(self) -> int:
        return self.layers[0].batch_size

    def reset(self) -> None:
        """Zero every layer's hidden (and cell) state in place."""
        for layer_state in self.layers:
            layer_state.zero_()

    def copy(self) -> "ModelState":
        return ModelState([layer_state.copy() for layer_state in self.layers])

    def __len__(self) -> int:
        return len(self.layers)
