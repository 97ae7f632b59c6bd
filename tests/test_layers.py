"""
Tests for the feed-forward layers module.

Tests cover:
- Embedding: lookup, bounds checking, gradient accumulation for repeated indices
- Linear: forward pass, backward pass against numerical gradients
- Parameter setting with shape checks
"""

import numpy as np
import pytest


class TestEmbedding:
    """
    Test suite for the character embedding lookup.

    Looking up row i equals one_hot(i) @ table.
    """

    def test_embedding_output_shape(self):
        """Embedding maps (N, T) indices to (N, T, D) vectors."""
        from char_rnn.layers import Embedding

        embedding = Embedding(vocabulary_size=10, embedding_dimension=4)
        output = embedding.forward(np.array([[0, 1, 2], [3, 4, 9]]))

        assert output.shape == (2, 3, 4)

    def test_embedding_lookup_matches_table(self):
        """Each output vector is the corresponding table row."""
        from char_rnn.layers import Embedding

        embedding = Embedding(vocabulary_size=6, embedding_dimension=3)
        token_ids = np.array([[5, 0, 5]])
        output = embedding.forward(token_ids)

        assert np.array_equal(output[0, 0], embedding.embedding_table[5])
        assert np.array_equal(output[0, 1], embedding.embedding_table[0])
        assert np.array_equal(output[0, 2], embedding.embedding_table[5])

    def test_embedding_equals_one_hot_product(self):
        """Lookup is equivalent to multiplying a one-hot matrix by the table."""
        from char_rnn.layers import Embedding

        embedding = Embedding(vocabulary_size=5, embedding_dimension=3)
        token_ids = np.array([2, 4, 0])
        one_hot = np.eye(5)[token_ids]

        assert np.allclose(embedding.lookup(token_ids), one_hot @ embedding.weight)

    @pytest.mark.parametrize("bad_index", [-1, 7, 100])
    def test_embedding_rejects_out_of_range(self, bad_index):
        """Indices outside [0, V) raise OutOfVocabularyError."""
        from char_rnn.exceptions import OutOfVocabularyError
        from char_rnn.layers import Embedding

        embedding = Embedding(vocabulary_size=7, embedding_dimension=2)

        with pytest.raises(OutOfVocabularyError):
            embedding.forward(np.array([[0, bad_index]]))

    def test_embedding_rejects_float_indices(self):
        """Non-integer index arrays are rejected."""
        from char_rnn.exceptions import OutOfVocabularyError
        from char_rnn.layers import Embedding

        embedding = Embedding(vocabulary_size=7, embedding_dimension=2)

        with pytest.raises(OutOfVocabularyError):
            embedding.lookup(np.array([0.0, 1.0]))

    def test_embedding_backward_accumulates_repeats(self):
        """Gradients of repeated indices add up in the same table row."""
        from char_rnn.layers import Embedding

        embedding = Embedding(vocabulary_size=4, embedding_dimension=2)
        embedding.forward(np.array([[1, 1, 3]]))

        upstream = np.array([[[1.0, 2.0], [3.0, 4.0], [5.0, 6.0]]])
        gradients = {"weight": np.zeros((4, 2))}
        embedding.backward(upstream, gradients)

        assert np.allclose(gradients["weight"][1], [4.0, 6.0])
        assert np.allclose(gradients["weight"][3], [5.0, 6.0])
        assert np.allclose(gradients["weight"][[0, 2]], 0.0)

    def test_embedding_backward_adds_to_existing_buffer(self):
        """Backward adds into the buffer instead of overwriting it."""
        from char_rnn.layers import Embedding

        embedding = Embedding(vocabulary_size=3, embedding_dimension=2)
        embedding.forward(np.array([[0]]))
        gradients = {"weight": np.ones((3, 2))}
        embedding.backward(np.ones((1, 1, 2)), gradients)

        assert np.allclose(gradients["weight"][0], 2.0)
        assert np.allclose(gradients["weight"][1:], 1.0)


class TestLinear:
    """
    Test suite for the Linear output projection.

    Linear layer computes: y = x @ W + b
    where W has shape (input_features, output_features)
    """

    def test_linear_3d_input(self):
        """Linear layer handles (batch, seq_len, features) input."""
        from char_rnn.layers import Linear

        linear_layer = Linear(input_features=8, output_features=16)
        output = linear_layer.forward(np.random.randn(2, 10, 8))

        assert output.shape == (2, 10, 16)

    def test_linear_matches_manual_computation(self):
        """Forward pass equals x @ W + b."""
        from char_rnn.layers import Linear

        linear_layer = Linear(input_features=3, output_features=2)
        linear_layer.bias[:] = [0.5, -0.5]
        x = np.random.randn(4, 3)

        assert np.allclose(linear_layer.forward(x), x @ linear_layer.weights + linear_layer.bias)

    def test_linear_backward_numerical_gradient(self):
        """Verify weight, bias and input gradients against numerical gradients."""
        from char_rnn.gradient_check import numerical_gradient
        from char_rnn.layers import Linear

        np.random.seed(42)

        linear_layer = Linear(input_features=3, output_features=2)
        linear_layer.bias[:] = np.random.randn(2)
        x = np.random.randn(2, 4, 3)
        upstream = np.random.randn(2, 4, 2)

        def loss_fn():
            return float(np.sum(linear_layer.apply(x) * upstream))

        linear_layer.forward(x)
        gradients = {"weight": np.zeros((3, 2)), "bias": np.zeros(2)}
        input_gradient = linear_layer.backward(upstream, gradients)

        assert np.allclose(
            gradients["weight"], numerical_gradient(loss_fn, linear_layer.weights), atol=1e-6
        )
        assert np.allclose(
            gradients["bias"], numerical_gradient(loss_fn, linear_layer.bias), atol=1e-6
        )
        assert np.allclose(input_gradient, numerical_gradient(loss_fn, x), atol=1e-6)

    def test_set_parameters_copies_in_place(self):
        """set_parameters keeps the existing arrays and copies values into them."""
        from char_rnn.layers import Linear

        linear_layer = Linear(input_features=2, output_features=3)
        weights_before = linear_layer.weights
        new_weights = np.arange(6, dtype=np.float64).reshape(2, 3)

        linear_layer.set_parameters({"weight": new_weights})

        assert linear_layer.weights is weights_before
        assert np.array_equal(linear_layer.weights, new_weights)

    def test_set_parameters_shape_mismatch(self):
        """A wrongly shaped array raises ConfigurationError."""
        from char_rnn.exceptions import ConfigurationError
        from char_rnn.layers import Linear

        linear_layer = Linear(input_features=2, output_features=3)

        with pytest.raises(ConfigurationError):
            linear_layer.set_parameters({"weight": np.zeros((3, 2))})
