"""
Optimization for Training the Character Model

This module implements the Adam optimizer that drives the training loop,
together with the gradient utilities applied before every update:
clamping, zeroing of accumulation buffers and a NaN/Inf check. It also
includes the step learning-rate decay schedule used between epochs.

Reference:
    - "Adam: A Method for Stochastic Optimization" (Kingma & Ba, 2014)
    - "On the difficulty of training Recurrent Neural Networks" (Pascanu et al., 2013)

Classes:
    Adam: Adam optimizer (optional decoupled weight decay)

Functions:
    clamp_gradients: Clip every gradient component to [-clip, clip]
    zero_gradients: Reset accumulation buffers between optimizer steps
    find_nonfinite_gradients: Names of gradients containing NaN or Inf
    get_learning_rate_with_step_decay: Multiply LR by a factor every k epochs
"""

from typing import Dict, List, Optional

import numpy as np


class Adam:
    """
    Adam Optimizer.

    Adam keeps a running mean of the gradient (momentum) and of its square
    (velocity) for every parameter, and scales each update by the ratio of
    the two. Parameters with consistently large gradients take smaller steps.

    Algorithm (at each step t):
        m_t = beta1 * m_{t-1} + (1 - beta1) * g_t          # Momentum
        v_t = beta2 * v_{t-1} + (1 - beta2) * g_t^2       # Velocity (squared gradient)
        m_hat = m_t / (1 - beta1^t)                        # Bias correction
        v_hat = v_t / (1 - beta2^t)                        # Bias correction
        theta_t = theta_{t-1} - lr * (m_hat / (sqrt(v_hat) + eps) + wd * theta_{t-1})

    Weight decay is 0 by default, which gives plain Adam.

    Attributes:
        learning_rate: Default step size for updates
        beta1: Exponential decay rate for first moment (momentum)
        beta2: Exponential decay rate for second moment (velocity)
        epsilon: Small constant for numerical stability
        weight_decay: Decoupled L2 regularization coefficient
        momentum: First moment estimates for each parameter
        velocity: Second moment estimates for each parameter
        step_count: Number of optimization steps taken
    """

    def __init__(
        self,
        learning_rate: float = 2e-3,
        beta1: float = 0.9,
        beta2: float = 0.999,
        epsilon: float = 1e-8,
        weight_decay: float = 0.0,
    ):
        """
        Initialize Adam optimizer.

        Args:
            learning_rate: Learning rate (alpha). 2e-3 works well for char models
            beta1: First moment decay (momentum coefficient). Default 0.9
            beta2: Second moment decay (RMSprop-like). Default 0.999
            epsilon: Numerical stability constant. Default 1e-8
            weight_decay: Decoupled weight decay. Default 0 (plain Adam)
        """
        self.learning_rate = learning_rate
        self.beta1 = beta1
        self.beta2 = beta2
        self.epsilon = epsilon
        self.weight_decay = weight_decay

        self.momentum: Dict[str, np.ndarray] = {}
        self.velocity: Dict[str, np.ndarray] = {}
        self.step_count: int = 0

        # Live parameter arrays, updated in place
        self._params: Optional[Dict[str, np.ndarray]] = None

    def initialize(self, parameters: Dict[str, np.ndarray]) -> None:
        """
        Bind the optimizer to the model's live parameter arrays.

        ``parameters`` should come from ``CharRNNModel.get_parameters()``;
        updates are written into those arrays, so the model sees them without
        a ``set_parameters`` call. Moment buffers start at zero.
        """
        self._params = parameters
        self.step_count = 0
        self.momentum = {name: np.zeros_like(p) for name, p in parameters.items()}
        self.velocity = {name: np.zeros_like(p) for name, p in parameters.items()}

    def step(
        self, gradients: Dict[str, np.ndarray], learning_rate: Optional[float] = None
    ) -> None:
        """
        Apply one update from already clamped, finite gradients.

        Args:
            gradients: Accumulated gradients keyed like the model's parameters.
                Names the optimizer was not bound to are ignored.
            learning_rate: Rate for this step. The trainer passes the decayed
                per-epoch rate here; None falls back to ``self.learning_rate``.
        """
        if self._params is None:
            raise RuntimeError("Adam.step called before initialize()")

        self.step_count += 1
        lr = self.learning_rate if learning_rate is None else learning_rate
        m_scale = 1.0 / (1.0 - self.beta1**self.step_count)
        v_scale = 1.0 / (1.0 - self.beta2**self.step_count)

        for name, gradient in gradients.items():
            param = self._params.get(name)
            if param is None:
                continue
            m = self.momentum[name]
            v = self.velocity[name]

            m *= self.beta1
            m += (1.0 - self.beta1) * gradient
            v *= self.beta2
            v += (1.0 - self.beta2) * gradient * gradient

            update = (m * m_scale) / (np.sqrt(v * v_scale) + self.epsilon)
            if self.weight_decay:
                update += self.weight_decay * param
            param -= lr * update

    def get_state(self) -> dict:
        """Copy of the moment buffers and step count, for a checkpoint."""
        return {
            "momentum": {name: m.copy() for name, m in self.momentum.items()},
            "velocity": {name: v.copy() for name, v in self.velocity.items()},
            "step_count": self.step_count,
        }

    def load_state(self, state: dict) -> None:
        """
        Restore moments saved by ``get_state`` so a resumed run continues
        the same bias correction. Call after ``initialize``.
        """
        self.momentum = {name: np.array(m, copy=True) for name, m in state["momentum"].items()}
        self.velocity = {name: np.array(v, copy=True) for name, v in state["velocity"].items()}
        self.step_count = int(state["step_count"])


def clamp_gradients(
    gradients: Dict[str, np.ndarray], clip_value: float = 5.0
) -> Dict[str, np.ndarray]:
    """
    Clamp every gradient component to [-clip_value, clip_value], in place.

    Unlike clipping by global norm, this bounds each component separately.
    It is a blunt but effective guard against the exploding gradients that
    long recurrences produce.

    Args:
        gradients: Dictionary of parameter name -> gradient array
        clip_value: Bound on the magnitude of each component

    Returns:
        The same dictionary, for chaining
    """
    for gradient in gradients.values():
        np.clip(gradient, -clip_value, clip_value, out=gradient)
    return gradients


def zero_gradients(gradients: Dict[str, np.ndarray]) -> None:
    """Reset accumulation buffers to zero before the next backward pass."""
    for gradient in gradients.values():
        gradient.fill(0.0)


def find_nonfinite_gradients(gradients: Dict[str, np.ndarray]) -> List[str]:
    """
    Return the names of gradients containing NaN or Inf.

    This does not fix anything. The training loop decides whether to skip the
    update or abort.
    """
    return [name for name, gradient in gradients.items() if not np.all(np.isfinite(gradient))]


def get_learning_rate_with_step_decay(
    epoch: int,
    base_learning_rate: float,
    decay_every: int,
    decay_factor: float,
) -> float:
    """
    Compute the learning rate for an epoch under step decay.

    The learning rate is multiplied by ``decay_factor`` once every
    ``decay_every`` epochs:
        lr = base_lr * decay_factor ^ (epoch // decay_every)

    Args:
        epoch: Zero-based epoch index
        base_learning_rate: Learning rate for the first epochs
        decay_every: Number of epochs between decays (<= 0 disables decay)
        decay_factor: Multiplier applied at each decay

    Returns:
        Learning rate for the epoch
    """
    if decay_every <= 0:
        return base_learning_rate
    return base_learning_rate * (decay_factor ** (epoch // decay_every))
