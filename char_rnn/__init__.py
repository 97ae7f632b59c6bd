"""
Character-Level Recurrent Language Models from Scratch

This package provides a complete, working implementation of multi-layer
character-level RNN and LSTM language models using only NumPy. Every
forward and backward pass, including backpropagation through time, is
written out by hand so the computation can be read and checked.

Modules:
    activations: Softmax, sigmoid, tanh and their backward helpers
    layers: Embedding and Linear layers
    cells: Vanilla RNN and LSTM cells (one time step)
    recurrent: Sequence unroller with BPTT, and the carried ModelState
    model: Stacked character language model and its loss
    sampling: Temperature sampling and argmax decoding
    vocabulary: Character <-> index mapping
    data: Text splitting and stream-preserving minibatches
    optimizer: Adam, gradient clamping and learning-rate decay
    trainer: Training loop with evaluation and checkpointing
    gradient_check: Finite-difference gradient checking
    checkpoint: Saving and loading models
    logging_config: loguru setup for the command-line scripts

Reference:
    "The Unreasonable Effectiveness of Recurrent Neural Networks" (Karpathy, 2015)
    http://karpathy.github.io/2015/05/21/rnn-effectiveness/
"""

__version__ = "1.0.0"
__author__ = "Educational Char-RNN Project"
