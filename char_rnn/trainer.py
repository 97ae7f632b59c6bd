"""
Training Loop for the Character Model

One training iteration:

    inputs, targets = loader.next_batch("train")
    logits = model.forward(inputs, state)        # state carried if remember_states
    loss = cross_entropy_loss(logits, targets)
    zero_gradients(grads)
    model.backward(dlogits, grads)               # BPTT, accumulates into grads
    clamp_gradients(grads, 5)                    # every component in [-5, 5]
    check for NaN/Inf -> skip or abort
    optimizer.step(grads, lr)

At the start of every epoch the train split is rewound, the carried state is
reset to zero and the learning rate decay schedule is applied.

Classes:
    TrainingConfig: Hyperparameters of the training run
    Trainer: Runs epochs, evaluation, sampling and checkpointing

Functions:
    train_step: One forward/backward/update iteration
    evaluate: Mean loss over a split
"""

import os
import time
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np
from loguru import logger

from char_rnn.checkpoint import save_checkpoint
from char_rnn.data import CharDataLoader
from char_rnn.exceptions import ConfigurationError, NumericalInstabilityError
from char_rnn.model import CharRNNModel, cross_entropy_loss, cross_entropy_loss_backward
from char_rnn.optimizer import (
    Adam,
    clamp_gradients,
    find_nonfinite_gradients,
    get_learning_rate_with_step_decay,
    zero_gradients,
)
from char_rnn.recurrent import ModelState
from char_rnn.sampling import sample
from char_rnn.vocabulary import CharVocabulary

NONFINITE_POLICIES = ("skip", "abort")


@dataclass
class TrainingConfig:
    """
    Hyperparameters for a training run.

    Attributes:
        input_text: Path of the UTF-8 training corpus
        checkpoint_dir: Directory for checkpoint files
        batch_size: Sequences per minibatch (N), used to build the data loader.
            Trainer takes N from the loader it is given.
        seq_length: Time steps per sequence (T)
        val_frac: Fraction of the corpus held out for validation
        test_frac: Fraction of the corpus held out for test
        max_epochs: Number of passes over the training split
        learning_rate: Base learning rate for Adam
        lr_decay_every: Decay the learning rate every this many epochs (0 = never)
        lr_decay_factor: Multiplier applied at each decay
        remember_states: Carry state across consecutive minibatches
        print_every: Log training loss every this many iterations
        checkpoint_every: Evaluate, sample and save every this many iterations
        eval_max_batches: Cap on validation batches per evaluation (None = all)
        nonfinite_policy: "skip" the update or "abort" on NaN/Inf gradients
        sample_length: Characters to sample at each checkpoint (0 = none)
        sample_temperature: Temperature for those samples
        seed: Seed for NumPy's global random state (None = unseeded)
        log_level: Logging level for the CLI
        init_from: Checkpoint to resume from (None = fresh model)
    """

    input_text: str = "data/input.txt"
    checkpoint_dir: str = "checkpoints"
    batch_size: int = 50
    seq_length: int = 50
    val_frac: float = 0.1
    test_frac: float = 0.1
    max_epochs: int = 50
    learning_rate: float = 2e-3
    lr_decay_every: int = 5
    lr_decay_factor: float = 0.5
    remember_states: bool = True
    print_every: int = 1
    checkpoint_every: int = 1000
    eval_max_batches: Optional[int] = None
    nonfinite_policy: str = "skip"
    sample_length: int = 200
    sample_temperature: float = 1.0
    seed: Optional[int] = None
    log_level: str = "INFO"
    init_from: Optional[str] = None

    def validate(self) -> None:
        if self.max_epochs <= 0:
            raise ConfigurationError(f"max_epochs must be positive, got {self.max_epochs}")
        if self.learning_rate <= 0:
            raise ConfigurationError(f"learning_rate must be positive, got {self.learning_rate}")
        if self.print_every <= 0 or self.checkpoint_every <= 0:
            raise ConfigurationError("print_every and checkpoint_every must be positive")
        if self.nonfinite_policy not in NONFINITE_POLICIES:
            raise ConfigurationError(
                f"nonfinite_policy must be one of {NONFINITE_POLICIES}, "
                f"got '{self.nonfinite_policy}'"
            )
        if self.sample_length > 0 and not self.sample_temperature > 0:
            raise ConfigurationError(
                f"sample_temperature must be positive, got {self.sample_temperature}"
            )


def train_step(
    model: CharRNNModel,
    optimizer: Adam,
    inputs: np.ndarray,
    targets: np.ndarray,
    learning_rate: float,
    gradients: Dict[str, np.ndarray],
    state: Optional[ModelState] = None,
    nonfinite_policy: str = "skip",
) -> Tuple[float, bool]:
    """
    Perform a single training step.

    Args:
        model: Character model
        optimizer: Adam optimizer initialized with model.get_parameters()
        inputs: Input indices, shape (batch_size, seq_length)
        targets: Target indices, shape (batch_size, seq_length)
        learning_rate: Current learning rate
        gradients: Caller-owned gradient buffers (zeroed here before backward)
        state: Carried state, or None to start from zeros
        nonfinite_policy: "skip" or "abort" when gradients contain NaN/Inf

    Returns:
        (loss, updated): the loss before the update and whether the optimizer ran

    Raises:
        NumericalInstabilityError: If gradients are not finite and the policy is "abort"
    """
    logits = model.forward(inputs, state)
    loss = cross_entropy_loss(logits, targets)

    zero_gradients(gradients)
    model.backward(cross_entropy_loss_backward(logits, targets), gradients)
    clamp_gradients(gradients, model.config.grad_clip)

    bad = find_nonfinite_gradients(gradients)
    if bad:
        if nonfinite_policy == "abort":
            raise NumericalInstabilityError(
                "Non-finite gradients after clamping", details=", ".join(bad)
            )
        logger.warning(f"Skipping update: non-finite gradients in {', '.join(bad)}")
        return loss, False

    optimizer.step(gradients, learning_rate=learning_rate)
    return loss, True


def evaluate(
    model: CharRNNModel,
    loader: CharDataLoader,
    split: str = "val",
    max_batches: Optional[int] = None,
    remember_states: bool = True,
) -> float:
    """
    Mean loss over the batches of a split.

    Starts from a zero state; with ``remember_states`` the state is carried
    across the split's batches the same way as in training.
    """
    count = loader.num_batches(split)
    if max_batches is not None:
        count = min(count, max_batches)
    if count == 0:
        return float("nan")

    state = model.initial_state(loader.batch_size) if remember_states else None
    loader.reset(split)
    total_loss = 0.0
    for _ in range(count):
        inputs, targets = loader.next_batch(split)
        total_loss += cross_entropy_loss(model.forward(inputs, state), targets)
    loader.reset(split)

    return total_loss / count


class Trainer:
    """
    Runs a full training session.

    Example:
        trainer = Trainer(model, vocabulary, loader, TrainingConfig(max_epochs=5))
        history = trainer.run()
    """

    def __init__(
        self,
        model: CharRNNModel,
        vocabulary: CharVocabulary,
        loader: CharDataLoader,
        config: TrainingConfig,
        optimizer: Optional[Adam] = None,
        start_iteration: int = 0,
        history: Optional[Dict[str, List]] = None,
    ):
        config.validate()
        if loader.num_batches("train") == 0:
            raise ConfigurationError(
                "Training data is too short for a single batch",
                details=f"batch_size={loader.batch_size}, seq_length={loader.seq_length}",
            )

        self.model = model
        self.vocabulary = vocabulary
        self.loader = loader
        self.config = config

        if optimizer is None:
            optimizer = Adam(learning_rate=config.learning_rate)
            optimizer.initialize(model.get_parameters())
        self.optimizer = optimizer

        self.gradients = model.allocate_gradients()
        self.iteration = start_iteration
        self.history = history if history is not None else {"train_loss": [], "val_loss": []}
        self.best_val_loss = min(
            (loss for _, loss in self.history.get("val_loss", [])), default=float("inf")
        )

    @property
    def num_iterations(self) -> int:
        return self.config.max_epochs * self.loader.num_batches("train")

    def run(self) -> Dict[str, List]:
        """
        Train until max_epochs is reached or the user interrupts.

        Returns:
            History dict with (iteration, loss) pairs for "train_loss" and "val_loss"
        """
        config = self.config
        batches_per_epoch = self.loader.num_batches("train")
        total = self.num_iterations

        logger.info(
            f"Training {self.model.config.cell_type} model with "
            f"{self.model.count_parameters():,} parameters"
        )
        logger.debug(f"Model config: {asdict(self.model.config)}")
        logger.debug(f"Training config: {asdict(config)}")
        logger.info(f"Batches per epoch: {batches_per_epoch}, total iterations: {total}")

        state = self.model.initial_state(self.loader.batch_size)
        start_epoch = self.iteration // batches_per_epoch

        try:
            for epoch in range(start_epoch, config.max_epochs):
                self.loader.reset("train")
                self.model.reset_state(state)
                learning_rate = get_learning_rate_with_step_decay(
                    epoch, config.learning_rate, config.lr_decay_every, config.lr_decay_factor
                )
                epoch_start = time.time()

                # Skip batches already done when resuming mid-epoch
                for _ in range(self.iteration - epoch * batches_per_epoch):
                    self.loader.next_batch("train")

                while self.iteration < (epoch + 1) * batches_per_epoch:
                    inputs, targets = self.loader.next_batch("train")
                    loss, _ = train_step(
                        self.model,
                        self.optimizer,
                        inputs,
                        targets,
                        learning_rate,
                        self.gradients,
                        state if config.remember_states else None,
                        config.nonfinite_policy,
                    )
                    self.iteration += 1
                    self.history["train_loss"].append((self.iteration, loss))

                    if self.iteration % config.print_every == 0:
                        logger.info(
                            f"Epoch {epoch + 1}/{config.max_epochs} | "
                            f"Iter {self.iteration}/{total} | "
                            f"Loss: {loss:.4f} | LR: {learning_rate:.2e}"
                        )

                    if self.iteration % config.checkpoint_every == 0 or self.iteration == total:
                        self._checkpoint()

                logger.info(f"Epoch {epoch + 1} complete in {time.time() - epoch_start:.1f}s")

        except KeyboardInterrupt:
            logger.info("Training interrupted by user, saving checkpoint")
            self._checkpoint()

        return self.history

    def _checkpoint(self) -> None:
        config = self.config
        val_loss = evaluate(
            self.model,
            self.loader,
            "val",
            max_batches=config.eval_max_batches,
            remember_states=config.remember_states,
        )
        if np.isfinite(val_loss):
            self.history["val_loss"].append((self.iteration, val_loss))
            logger.info(f"Val loss at iteration {self.iteration}: {val_loss:.4f}")
        else:
            logger.warning("Validation split is too short for a batch, skipping evaluation")

        if config.sample_length > 0:
            text = sample(
                self.model,
                self.vocabulary,
                config.sample_length,
                temperature=config.sample_temperature,
            )
            logger.info(f"Sample:\n{text}")

        path = os.path.join(config.checkpoint_dir, f"checkpoint_{self.iteration}.npz")
        self._save(path)
        logger.info(f"Saved checkpoint to {path}")

        if np.isfinite(val_loss) and val_loss < self.best_val_loss:
            self.best_val_loss = val_loss
            best_path = os.path.join(config.checkpoint_dir, "checkpoint_best.npz")
            self._save(best_path)
            logger.info(f"New best model! Saved to {best_path}")

    def _save(self, path: str) -> None:
        save_checkpoint(
            path,
            self.model,
            self.vocabulary,
            iteration=self.iteration,
            optimizer_state=self.optimizer.get_state(),
            history=self.history,
        )
