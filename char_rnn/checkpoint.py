"""
Model Checkpointing

Saves and restores everything needed to resume training or sample later:
model parameters and configuration, the vocabulary, the iteration counter,
optimizer state and the loss history. Everything goes into one ``.npz``
file:

    param_<name>     one array per model parameter
    config           CharRNNConfig as a dict
    vocabulary       CharVocabulary.to_dict()
    iteration        training iteration at save time
    optimizer_state  Adam.get_state() (optional)
    history          {"train_loss": [...], "val_loss": [...]} (optional)

Classes:
    Checkpoint: Loaded checkpoint contents

Functions:
    save_checkpoint: Write a checkpoint file
    load_checkpoint: Read a checkpoint file and rebuild the model
"""

import os
import pickle
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

import numpy as np

from char_rnn.exceptions import CheckpointError, ConfigurationError
from char_rnn.model import CharRNNConfig, CharRNNModel
from char_rnn.vocabulary import CharVocabulary


@dataclass
class Checkpoint:
    """Contents of a checkpoint file."""

    model: CharRNNModel
    vocabulary: CharVocabulary
    iteration: int = 0
    optimizer_state: Optional[Dict[str, Any]] = None
    history: Dict[str, list] = field(default_factory=dict)


def save_checkpoint(
    filepath: str,
    model: CharRNNModel,
    vocabulary: CharVocabulary,
    iteration: int = 0,
    optimizer_state: Optional[Dict[str, Any]] = None,
    history: Optional[Dict[str, list]] = None,
) -> None:
    """
    Save a model checkpoint.

    Args:
        filepath: Path to save checkpoint (should end in .npz)
        model: Model to save
        vocabulary: Vocabulary the model was trained with
        iteration: Current training iteration
        optimizer_state: Optional optimizer state dictionary
        history: Optional loss history
    """
    save_dict = {}

    for name, param in model.get_parameters().items():
        save_dict[f"param_{name}"] = param

    # Dicts are wrapped in object arrays for npz
    save_dict["config"] = np.array([asdict(model.config)])
    save_dict["vocabulary"] = np.array([vocabulary.to_dict()])
    save_dict["iteration"] = np.array([iteration])

    if optimizer_state is not None:
        save_dict["optimizer_state"] = np.array([optimizer_state])
    if history is not None:
        save_dict["history"] = np.array([history])

    directory = os.path.dirname(filepath)
    if directory:
        os.makedirs(directory, exist_ok=True)
    np.savez(filepath, **save_dict)


def load_checkpoint(filepath: str) -> Checkpoint:
    """
    Load a checkpoint and rebuild the model it describes.

    Args:
        filepath: Path to checkpoint file

    Returns:
        Checkpoint with model, vocabulary, iteration, optimizer state and history

    Raises:
        CheckpointError: If the file is missing, unreadable or incomplete
    """
    if not os.path.exists(filepath):
        raise CheckpointError(f"Checkpoint not found: {filepath}")

    try:
        data = np.load(filepath, allow_pickle=True)
    except (OSError, ValueError, pickle.UnpicklingError) as e:
        raise CheckpointError(f"Could not read checkpoint {filepath}", details=str(e)) from e
    if not hasattr(data, "files"):
        raise CheckpointError(f"{filepath} is a single array, not a checkpoint archive")

    with data:
        for key in ("config", "vocabulary"):
            if key not in data.files:
                raise CheckpointError(f"Checkpoint {filepath} has no '{key}' entry")

        try:
            config = CharRNNConfig(**data["config"][0])
            model = CharRNNModel(config)
        except (TypeError, ConfigurationError) as e:
            raise CheckpointError("Checkpoint has an invalid model config", details=str(e)) from e

        vocabulary = CharVocabulary.from_dict(data["vocabulary"][0])
        if len(vocabulary) != config.vocab_size:
            raise CheckpointError(
                f"Vocabulary has {len(vocabulary)} characters "
                f"but the model expects {config.vocab_size}"
            )

        params = {
            key[len("param_") :]: data[key] for key in data.files if key.startswith("param_")
        }
        missing = set(model.get_parameters()) - set(params)
        if missing:
            raise CheckpointError(
                "Checkpoint is missing parameters", details=", ".join(sorted(missing))
            )
        try:
            model.set_parameters(params)
        except ConfigurationError as e:
            raise CheckpointError(
                "Checkpoint parameters do not match the config", details=str(e)
            ) from e

        iteration = int(data["iteration"][0]) if "iteration" in data.files else 0
        optimizer_state = (
            data["optimizer_state"][0] if "optimizer_state" in data.files else None
        )
        history = data["history"][0] if "history" in data.files else {}

    return Checkpoint(
        model=model,
        vocabulary=vocabulary,
        iteration=iteration,
        optimizer_state=optimizer_state,
        history=history,
    )
