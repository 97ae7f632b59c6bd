"""
Activation Functions for Recurrent Networks

This module implements the nonlinearities used by the recurrent cells and the
sampler, with the backward helpers needed for backpropagation through time.

All implementations are in pure NumPy for educational purposes.

Functions:
    softmax: Converts logits to probability distribution
    sigmoid: Logistic function used by the LSTM gates
    tanh: Hyperbolic tangent used by the vanilla RNN and the LSTM candidate

Gradient Functions:
    sigmoid_backward: Gradient of sigmoid (expressed via its output)
    tanh_backward: Gradient of tanh (expressed via its output)

Reference:
    - "Long Short-Term Memory" (Hochreiter & Schmidhuber, 1997)
    - "The Unreasonable Effectiveness of Recurrent Neural Networks" (Karpathy, 2015)
"""

import numpy as np


def softmax(logits: np.ndarray, axis: int = -1) -> np.ndarray:
    """
    Compute softmax activation function.

    Converts a vector of arbitrary real values (logits) into a probability
    distribution where all values are positive and sum to 1.

    Mathematical Formula:
        softmax(x)_i = exp(x_i) / sum_j(exp(x_j))

    Numerical Stability:
        We subtract max(x) from all values before exponentiation to prevent
        overflow. This doesn't change the result because:
        exp(x_i - max) / sum(exp(x_j - max)) = exp(x_i) / sum(exp(x_j))

        This matters a lot for sampling at low temperature, where logits are
        divided by a small number and can become very large.

    Args:
        logits: Input array of any shape. Softmax is applied along the
                specified axis.
        axis: The axis along which to compute softmax. Default is -1 (last axis),
              which is the vocabulary axis for language model logits.

    Returns:
        probabilities: Array of same shape as input, with softmax applied along
                      the specified axis. Values along that axis sum to 1.

    Example:
        >>> logits = np.array([1.0, 2.0, 3.0])
        >>> probs = softmax(logits)
        >>> print(probs)  # [0.09, 0.24, 0.67]
    """
    max_logit = np.max(logits, axis=axis, keepdims=True)
    exponentials = np.exp(logits - max_logit)
    return exponentials / np.sum(exponentials, axis=axis, keepdims=True)


def sigmoid(x: np.ndarray) -> np.ndarray:
    """
    Compute the logistic sigmoid, 1 / (1 + exp(-x)).

    The LSTM uses sigmoid for its three gates (forget, input, output): each
    gate value lies in (0, 1) and scales how much of a signal passes through.

    Numerical Stability:
        For large negative x, exp(-x) overflows. We evaluate
        z = exp(-|x|), which is always in (0, 1], and use
            x >= 0: 1 / (1 + z)
            x <  0: z / (1 + z)
        Both branches are the same function, rearranged.

    Args:
        x: Input array of any shape.

    Returns:
        Output array of same shape with values in (0, 1).
    """
    z = np.exp(-np.abs(x))
    return np.where(x >= 0, 1.0 / (1.0 + z), z / (1.0 + z))


def sigmoid_backward(
    upstream_gradient: np.ndarray, sigmoid_output: np.ndarray
) -> np.ndarray:
    """
    Compute the gradient of sigmoid with respect to its input.

    d(sigmoid)/dx = sigmoid(x) * (1 - sigmoid(x))

    We take the forward output rather than the input, since the cells
    already keep the gate values around for the backward pass.

    Args:
        upstream_gradient: Gradient flowing back from the next operation.
        sigmoid_output: The output of the forward sigmoid.

    Returns:
        input_gradient: Gradient with respect to the sigmoid input.
    """
    return upstream_gradient * sigmoid_output * (1.0 - sigmoid_output)


def tanh(x: np.ndarray) -> np.ndarray:
    """Hyperbolic tangent, squashing values into (-1, 1)."""
    return np.tanh(x)


def tanh_backward(upstream_gradient: np.ndarray, tanh_output: np.ndarray) -> np.ndarray:
    """
    Compute the gradient of tanh with respect to its input.

    d(tanh)/dx = 1 - tanh(x)^2

    Repeated multiplication by this factor (always <= 1) across many time steps
    is one half of the vanishing gradient story for vanilla RNNs.

    Args:
        upstream_gradient: Gradient flowing back from the next operation.
        tanh_output: The output of the forward tanh.

    Returns:
        input_gradient: Gradient with respect to the tanh input.
    """
    return upstream_gradient * (1.0 - np.square(tanh_output))


# =============================================================================
# EDUCATIONAL DEMO
# Run with: python -m char_rnn.activations
# =============================================================================
if __name__ == "__main__":
    print("=" * 70)
    print("ACTIVATION FUNCTIONS DEMO")
    print("=" * 70)
    print()

    x = np.array([-5.0, -1.0, 0.0, 1.0, 5.0])
    print(f"x:          {x}")
    print(f"sigmoid(x): {sigmoid(x).round(4)}")
    print(f"tanh(x):    {tanh(x).round(4)}")
    print()

    print("Softmax at different temperatures (logits / T):")
    logits = np.array([2.0, 1.0, 0.1])
    for temperature in [0.1, 0.5, 1.0, 2.0, 10.0]:
        probs = softmax(logits / temperature)
        print(f"  T={temperature:<5} -> {probs.round(3)}")
    print()
    print("Low temperature -> nearly one-hot (argmax).")
    print("High temperature -> nearly uniform.")
