"""
Numerical Gradient Checking

Backpropagation through time is easy to get subtly wrong. A finite-difference
check compares the analytic gradients from ``backward`` with

    df/dx ~= (f(x + h) - f(x - h)) / (2h)

for every entry of every parameter. If they agree to ~1e-6 relative error
(float64), the backward pass is almost certainly right.

This is slow (two forward passes per parameter entry), so only use it on
tiny models.

Functions:
    numerical_gradient: Central-difference gradient of a scalar function
    relative_error: Normalized difference between two gradient arrays
    check_model_gradients: Compare analytic and numerical gradients of a model
"""

from typing import Callable, Dict

import numpy as np

from char_rnn.model import CharRNNModel, cross_entropy_loss, cross_entropy_loss_backward


def numerical_gradient(
    loss_fn: Callable[[], float], array: np.ndarray, epsilon: float = 1e-5
) -> np.ndarray:
    """
    Estimate d loss / d array by central differences.

    ``array`` is perturbed in place one entry at a time and restored
    afterwards, so ``loss_fn`` must read it (directly or through a model).

    Args:
        loss_fn: Zero-argument function returning the scalar loss
        array: Array to differentiate with respect to
        epsilon: Perturbation size

    Returns:
        Array of the same shape as ``array``
    """
    grad = np.zeros_like(array, dtype=np.float64)
    for index in np.ndindex(array.shape):
        original = array[index]

        array[index] = original + epsilon
        loss_plus = loss_fn()
        array[index] = original - epsilon
        loss_minus = loss_fn()
        array[index] = original

        grad[index] = (loss_plus - loss_minus) / (2 * epsilon)
    return grad


def relative_error(analytic: np.ndarray, numeric: np.ndarray) -> float:
    """
    ||a - n|| / max(||a|| + ||n||, tiny)

    Using norms over the whole array keeps tiny individual entries (where
    finite differences are mostly noise) from dominating the result.
    """
    denominator = max(np.linalg.norm(analytic) + np.linalg.norm(numeric), 1e-12)
    return float(np.linalg.norm(analytic - numeric) / denominator)


def check_model_gradients(
    model: CharRNNModel,
    inputs: np.ndarray,
    targets: np.ndarray,
    epsilon: float = 1e-5,
) -> Dict[str, float]:
    """
    Compare analytic and numerical gradients for every model parameter.

    Runs from a zero state and without clamping, so that the analytic
    gradient is the exact derivative of the loss.

    Args:
        model: Model to check (parameters are restored afterwards)
        inputs: Input indices, shape (N, T)
        targets: Target indices, shape (N, T)
        epsilon: Perturbation size

    Returns:
        Dict of parameter name -> relative error
    """
    logits = model.forward(inputs)
    analytic = model.backward(cross_entropy_loss_backward(logits, targets))

    def loss_fn() -> float:
        return cross_entropy_loss(model.forward(inputs), targets)

    errors = {}
    for name, param in model.get_parameters().items():
        numeric = numerical_gradient(loss_fn, param, epsilon)
        errors[name] = relative_error(analytic[name], numeric)
    return errors
