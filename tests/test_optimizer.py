"""
Tests for the optimizer module.

Tests cover:
- Adam: first step size, convergence on a quadratic, state round trip
- Gradient clamping to [-clip, clip]
- Zeroing of accumulation buffers
- NaN/Inf detection
- Step learning-rate decay
"""

import numpy as np
import pytest


class TestAdam:
    """
    Test suite for the Adam optimizer.

    Reference: "Adam: A Method for Stochastic Optimization" (Kingma & Ba, 2014)
    """

    def test_first_step_moves_by_learning_rate(self):
        """After bias correction the first update is lr * sign(grad)."""
        from char_rnn.optimizer import Adam

        params = {"w": np.array([1.0, -2.0, 3.0])}
        optimizer = Adam(learning_rate=0.1)
        optimizer.initialize(params)

        optimizer.step({"w": np.array([0.5, -4.0, 2.0])})

        assert np.allclose(params["w"], [0.9, -1.9, 2.9], atol=1e-6)

    def test_updates_in_place(self):
        from char_rnn.optimizer import Adam

        weights = np.ones(3)
        optimizer = Adam()
        optimizer.initialize({"w": weights})
        optimizer.step({"w": np.ones(3)})

        assert np.all(weights < 1.0)

    def test_minimizes_quadratic(self):
        """Adam drives a simple quadratic towards its minimum."""
        from char_rnn.optimizer import Adam

        params = {"w": np.array([5.0, -3.0])}
        optimizer = Adam(learning_rate=0.1)
        optimizer.initialize(params)

        for _ in range(500):
            optimizer.step({"w": 2 * params["w"]})

        assert np.allclose(params["w"], 0.0, atol=5e-2)

    def test_learning_rate_override(self):
        from char_rnn.optimizer import Adam

        params = {"w": np.zeros(1)}
        optimizer = Adam(learning_rate=1.0)
        optimizer.initialize(params)
        optimizer.step({"w": np.ones(1)}, learning_rate=0.01)

        assert np.isclose(params["w"][0], -0.01, atol=1e-6)

    def test_step_before_initialize(self):
        from char_rnn.optimizer import Adam

        with pytest.raises(RuntimeError):
            Adam().step({"w": np.ones(1)})

    def test_state_round_trip(self):
        """Restoring saved state continues with identical updates."""
        from char_rnn.optimizer import Adam

        params_a = {"w": np.array([1.0, 2.0])}
        optimizer_a = Adam(learning_rate=0.05)
        optimizer_a.initialize(params_a)
        for _ in range(3):
            optimizer_a.step({"w": params_a["w"].copy()})

        params_b = {"w": params_a["w"].copy()}
        optimizer_b = Adam(learning_rate=0.05)
        optimizer_b.initialize(params_b)
        optimizer_b.load_state(optimizer_a.get_state())

        optimizer_a.step({"w": np.array([0.3, -0.3])})
        optimizer_b.step({"w": np.array([0.3, -0.3])})

        assert optimizer_b.step_count == 4
        assert np.allclose(params_a["w"], params_b["w"])

    def test_saved_state_is_a_snapshot(self):
        """Later steps do not change a state already taken for a checkpoint."""
        from char_rnn.optimizer import Adam

        params = {"w": np.array([1.0, -1.0])}
        optimizer = Adam(learning_rate=0.1)
        optimizer.initialize(params)
        optimizer.step({"w": np.array([0.5, 0.5])})
        saved = optimizer.get_state()
        momentum = saved["momentum"]["w"].copy()

        optimizer.step({"w": np.array([-2.0, 4.0])})

        assert np.array_equal(saved["momentum"]["w"], momentum)
        assert saved["step_count"] == 1


class TestGradientUtilities:
    """Clamping, zeroing and finite checks."""

    def test_clamp_bounds_every_component(self):
        from char_rnn.optimizer import clamp_gradients

        gradients = {"a": np.array([-10.0, -5.0, 0.3, 5.0, 12.0]), "b": np.array([[7.0]])}
        clamp_gradients(gradients, 5.0)

        assert np.array_equal(gradients["a"], [-5.0, -5.0, 0.3, 5.0, 5.0])
        assert np.array_equal(gradients["b"], [[5.0]])

    def test_clamp_in_place(self):
        from char_rnn.optimizer import clamp_gradients

        buffer = np.array([100.0])
        result = clamp_gradients({"w": buffer}, 1.0)

        assert result["w"] is buffer
        assert buffer[0] == 1.0

    def test_clamp_maps_infinity_to_bound(self):
        from char_rnn.optimizer import clamp_gradients

        gradients = {"w": np.array([np.inf, -np.inf])}
        clamp_gradients(gradients, 5.0)

        assert np.array_equal(gradients["w"], [5.0, -5.0])

    def test_zero_gradients(self):
        from char_rnn.optimizer import zero_gradients

        buffer = np.ones((2, 2))
        zero_gradients({"w": buffer})

        assert np.all(buffer == 0.0)

    def test_find_nonfinite(self):
        from char_rnn.optimizer import find_nonfinite_gradients

        gradients = {
            "fine": np.ones(3),
            "nan": np.array([1.0, np.nan]),
            "inf": np.array([np.inf]),
        }

        assert sorted(find_nonfinite_gradients(gradients)) == ["inf", "nan"]
        assert find_nonfinite_gradients({"fine": np.ones(3)}) == []


class TestLearningRateDecay:
    """Step decay between epochs."""

    @pytest.mark.parametrize(
        "epoch, expected",
        [(0, 2e-3), (4, 2e-3), (5, 1e-3), (9, 1e-3), (10, 5e-4)],
    )
    def test_step_decay(self, epoch, expected):
        from char_rnn.optimizer import get_learning_rate_with_step_decay

        lr = get_learning_rate_with_step_decay(epoch, 2e-3, decay_every=5, decay_factor=0.5)

        assert np.isclose(lr, expected)

    def test_decay_disabled(self):
        from char_rnn.optimizer import get_learning_rate_with_step_decay

        assert get_learning_rate_with_step_decay(100, 2e-3, 0, 0.5) == 2e-3
