"""
Tests for the sequence unroller and carried model state.

Tests cover:
- Output shapes and the final state
- Causality: outputs depend only on earlier inputs
- Splitting a sequence and carrying the state gives the same outputs
- BPTT gradients for inputs, weights and the initial state
- ModelState reset and copy
"""

import numpy as np
import pytest

CELL_TYPES = ["rnn", "lstm"]


def _make_layer(cell_type, input_size=3, hidden_size=4):
    from char_rnn.cells import create_cell
    from char_rnn.recurrent import RecurrentLayer

    return RecurrentLayer(create_cell(cell_type, input_size, hidden_size))


@pytest.mark.parametrize("cell_type", CELL_TYPES)
class TestRecurrentLayerForward:
    """Forward unrolling over time."""

    def test_output_shape(self, cell_type):
        """(N, T, D) inputs produce (N, T, H) outputs."""
        layer = _make_layer(cell_type)
        outputs, final_state = layer.forward(np.random.randn(2, 5, 3))

        assert outputs.shape == (2, 5, 4)
        assert final_state.hidden.shape == (2, 4)

    def test_final_state_is_last_output(self, cell_type):
        """The final hidden state equals the output at the last step."""
        layer = _make_layer(cell_type)
        outputs, final_state = layer.forward(np.random.randn(3, 6, 3))

        assert np.allclose(final_state.hidden, outputs[:, -1, :])

    def test_forward_is_deterministic(self, cell_type):
        """Running the same input twice gives the same result."""
        layer = _make_layer(cell_type)
        inputs = np.random.randn(2, 4, 3)

        first, _ = layer.forward(inputs)
        second, _ = layer.forward(inputs)

        assert np.array_equal(first, second)

    def test_outputs_are_causal(self, cell_type):
        """Changing the input at step k leaves outputs before k untouched."""
        layer = _make_layer(cell_type)
        inputs = np.random.randn(1, 6, 3)
        changed = inputs.copy()
        changed[:, 3, :] += 1.0

        original, _ = layer.forward(inputs)
        modified, _ = layer.forward(changed)

        assert np.allclose(original[:, :3], modified[:, :3])
        assert not np.allclose(original[:, 3:], modified[:, 3:])

    def test_split_sequence_with_carried_state(self, cell_type):
        """Running T steps at once equals two halves with the state carried over."""
        layer = _make_layer(cell_type)
        inputs = np.random.randn(2, 8, 3)

        full, full_final = layer.forward(inputs)
        first, middle = layer.forward(inputs[:, :5])
        second, split_final = layer.forward(inputs[:, 5:], middle)

        assert np.allclose(full, np.concatenate([first, second], axis=1))
        assert np.allclose(full_final.hidden, split_final.hidden)
        if full_final.cell is not None:
            assert np.allclose(full_final.cell, split_final.cell)

    def test_step_matches_forward(self, cell_type):
        """Repeated single steps reproduce the unrolled outputs."""
        layer = _make_layer(cell_type)
        inputs = np.random.randn(2, 4, 3)
        outputs, _ = layer.forward(inputs)

        state = layer.initial_state(2)
        for t in range(4):
            state = layer.step(inputs[:, t, :], state)
            assert np.allclose(state.hidden, outputs[:, t, :])

    def test_rejects_wrong_input_size(self, cell_type):
        layer = _make_layer(cell_type)

        with pytest.raises(ValueError):
            layer.forward(np.random.randn(2, 4, 5))

    def test_rejects_mismatched_state_batch(self, cell_type):
        layer = _make_layer(cell_type)

        with pytest.raises(ValueError):
            layer.forward(np.random.randn(2, 4, 3), layer.initial_state(3))


@pytest.mark.parametrize("cell_type", CELL_TYPES)
class TestRecurrentLayerBackward:
    """Backpropagation through time against finite differences."""

    def test_bptt_numerical_gradient(self, cell_type):
        """Gradients for inputs, weights and the initial state all match."""
        from char_rnn.gradient_check import numerical_gradient, relative_error

        np.random.seed(3)
        layer = _make_layer(cell_type)
        inputs = np.random.randn(2, 5, 3)
        initial = layer.initial_state(2)
        initial.hidden[:] = np.random.randn(2, 4) * 0.5
        if initial.cell is not None:
            initial.cell[:] = np.random.randn(2, 4) * 0.5
        grad_outputs = np.random.randn(2, 5, 4)

        def loss_fn():
            outputs, _ = layer.forward(inputs, initial.copy())
            return float(np.sum(outputs * grad_outputs))

        layer.forward(inputs, initial.copy())
        gradients = {name: np.zeros_like(p) for name, p in layer.get_parameters().items()}
        grad_inputs, grad_initial = layer.backward(grad_outputs, gradients)

        assert relative_error(grad_inputs, numerical_gradient(loss_fn, inputs)) < 1e-6
        assert (
            relative_error(grad_initial.hidden, numerical_gradient(loss_fn, initial.hidden))
            < 1e-6
        )
        if initial.cell is not None:
            assert (
                relative_error(grad_initial.cell, numerical_gradient(loss_fn, initial.cell))
                < 1e-6
            )
        for name, param in layer.get_parameters().items():
            numeric = numerical_gradient(loss_fn, param)
            assert relative_error(gradients[name], numeric) < 1e-6, f"{name} mismatch"

    def test_gradient_from_final_state(self, cell_type):
        """A gradient on the final state flows back like one on the last output."""
        from char_rnn.cells import RecurrentState

        layer = _make_layer(cell_type)
        inputs = np.random.randn(1, 4, 3)
        layer.forward(inputs)
        upstream = np.random.randn(1, 4)

        via_outputs = np.zeros((1, 4, 4))
        via_outputs[:, -1, :] = upstream
        buffers_a = {name: np.zeros_like(p) for name, p in layer.get_parameters().items()}
        grad_a, _ = layer.backward(via_outputs, buffers_a)

        final_grad = layer.initial_state(1)
        final_grad = RecurrentState(hidden=upstream, cell=final_grad.cell)
        buffers_b = {name: np.zeros_like(p) for name, p in layer.get_parameters().items()}
        grad_b, _ = layer.backward(np.zeros((1, 4, 4)), buffers_b, final_grad)

        assert np.allclose(grad_a, grad_b)
        for name in buffers_a:
            assert np.allclose(buffers_a[name], buffers_b[name])

    def test_backward_before_forward(self, cell_type):
        layer = _make_layer(cell_type)

        with pytest.raises(RuntimeError):
            layer.backward(np.zeros((1, 1, 4)), {})


class TestModelState:
    """Carried state for a stack of layers."""

    def test_zeros_per_layer(self):
        from char_rnn.recurrent import ModelState

        layers = [_make_layer("lstm", 3, 4), _make_layer("lstm", 4, 4)]
        state = ModelState.zeros(layers, batch_size=5)

        assert len(state) == 2
        assert state.batch_size == 5
        for layer_state in state.layers:
            assert np.all(layer_state.hidden == 0.0)
            assert np.all(layer_state.cell == 0.0)

    def test_reset_zeros_everything(self):
        from char_rnn.recurrent import ModelState

        layers = [_make_layer("lstm", 3, 4)]
        state = ModelState.zeros(layers, batch_size=2)
        _, state.layers[0] = layers[0].forward(np.random.randn(2, 3, 3))
        assert not np.allclose(state.layers[0].hidden, 0.0)

        state.reset()

        assert np.all(state.layers[0].hidden == 0.0)
        assert np.all(state.layers[0].cell == 0.0)

    def test_copy_is_independent(self):
        from char_rnn.recurrent import ModelState

        state = ModelState.zeros([_make_layer("rnn")], batch_size=1)
        copied = state.copy()
        copied.layers[0].hidden += 1.0

        assert np.all(state.layers[0].hidden == 0.0)
