"""
network.py
~~~~~~~~~~

Dense feedforward neural network trained by online gradient descent.

Every layer uses the sigmoid activation and the loss is the squared error
between the final activation and the target. Weights and biases are
``Matrix`` objects created once at construction and updated in place by
each training step.

For a network with architecture ``[n0, n1, ..., nL]``:

    weights[i]: (n(i+1) x n(i))
    biases[i]:  (n(i+1) x 1)
    z[i] = weights[i] * a[i] + biases[i]
    a[i+1] = sigmoid(z[i])
"""

import logging
import math
from collections import deque
from typing import List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from neuralvis.errors import DimensionMismatchError, InvalidArgumentError
from neuralvis.matrix import Matrix

logger = logging.getLogger(__name__)

# Uniform initialisation ranges, (low, high)
WEIGHT_INIT_RANGE = (-1.0, 1.0)
BIAS_INIT_RANGE = (-1.0, 1.0)


def sigmoid(x: float) -> float:
    """Logistic function 1 / (1 + e^-x), written to avoid overflow in exp."""
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    e = math.exp(x)
    return e / (1.0 + e)


def sigmoid_prime(x: float) -> float:
    """Derivative of the sigmoid, evaluated at the pre-activation ``x``."""
    s = sigmoid(x)
    return s * (1.0 - s)


def shuffled_indices(count: int, rng: np.random.Generator) -> List[int]:
    """
    Return a uniformly random permutation of ``range(count)``.

    Fisher-Yates, drawing every swap position from ``rng``.
    """
    order = list(range(count))
    for i in range(count - 1, 0, -1):
        j = int(rng.integers(0, i + 1))
        order[i], order[j] = order[j], order[i]
    return order


class ForwardPass(NamedTuple):
    """Result of one forward propagation, consumed by the backward step."""
    activations: Tuple[Matrix, ...]
    pre_activations: Tuple[Matrix, ...]


class ErrorSnapshot(NamedTuple):
    """Mean squared error over the dataset after ``epoch`` cumulative epochs."""
    epoch: int
    mse: float


class Network:
    """
    Feedforward network of fully connected sigmoid layers.

    The random source is injected so that weight initialisation and
    shuffling are reproducible under a fixed seed.
    """

    def __init__(
        self,
        architecture: Sequence[int],
        learning_rate: float,
        rng: Optional[np.random.Generator] = None
    ):
        """
        Args:
            architecture: Layer sizes, input width first and output width last
            learning_rate: Gradient descent step size
            rng: Random source for initialisation and shuffling. A fresh,
                unseeded generator is used when omitted.

        Raises:
            InvalidArgumentError: If there are fewer than two layers, a layer
                size is not positive, or the learning rate is not positive
        """
        sizes = list(architecture)
        if len(sizes) < 2:
            raise InvalidArgumentError(
                f"Architecture needs at least 2 layers, got {sizes}"
            )
        if any(int(size) != size or size < 1 for size in sizes):
            raise InvalidArgumentError(
                f"Layer sizes must be positive integers, got {sizes}"
            )
        if not learning_rate > 0:
            raise InvalidArgumentError(
                f"Learning rate must be positive, got {learning_rate}"
            )

        self._architecture = tuple(int(size) for size in sizes)
        self._learning_rate = float(learning_rate)
        self._rng = np.random.default_rng() if rng is None else rng

        self._weights: List[Matrix] = []
        self._biases: List[Matrix] = []
        for n_in, n_out in zip(self._architecture[:-1], self._architecture[1:]):
            self._weights.append(
                Matrix(n_out, n_in).randomize(*WEIGHT_INIT_RANGE, self._rng)
            )
            self._biases.append(
                Matrix(n_out, 1).randomize(*BIAS_INIT_RANGE, self._rng)
            )

        self._epoch_count = 0
        self._error_history = deque(maxlen=2)

        logger.debug(f"Initialised {self!r}")

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def architecture(self) -> Tuple[int, ...]:
        return self._architecture

    @property
    def learning_rate(self) -> float:
        return self._learning_rate

    @property
    def epoch_count(self) -> int:
        """Total epochs run by ``train`` so far."""
        return self._epoch_count

    def get_params(self) -> Tuple[List[Matrix], List[Matrix]]:
        """Return copies of ``(weights, biases)``."""
        return (
            [w.copy() for w in self._weights],
            [b.copy() for b in self._biases]
        )

    def set_params(self, weights: Sequence[Matrix], biases: Sequence[Matrix]) -> None:
        """
        Copy parameter values into the network's own matrices.

        Raises:
            InvalidArgumentError: If the number of layers differs
            DimensionMismatchError: If any matrix has the wrong shape. Nothing
                is changed in either case.
        """
        if len(weights) != len(self._weights) or len(biases) != len(self._biases):
            raise InvalidArgumentError(
                f"Expected {len(self._weights)} weight and bias matrices, "
                f"got {len(weights)} and {len(biases)}"
            )

        pairs = list(zip(self._weights + self._biases, list(weights) + list(biases)))
        for own, given in pairs:
            if own.shape != given.shape:
                raise DimensionMismatchError(
                    f"Parameter {given.dimension()} does not match {own.dimension()}"
                )
        for own, given in pairs:
            own.assign(given)

    def get_error(self) -> Tuple[Optional[ErrorSnapshot], Optional[ErrorSnapshot]]:
        """
        Return the ``(current, previous)`` error snapshots.

        Entries that have not been recorded yet are None, so a freshly
        constructed network returns ``(None, None)``.
        """
        history = list(self._error_history)
        current = history[-1] if history else None
        previous = history[-2] if len(history) == 2 else None
        return current, previous

    def __repr__(self) -> str:
        return (
            f"<Network architecture={list(self._architecture)}, "
            f"learning_rate={self._learning_rate}>"
        )

    def __str__(self) -> str:
        layers = "-".join(str(size) for size in self._architecture)
        return f"Architecture: {layers} | Learning rate: {self._learning_rate}"

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def _as_vector(self, values, expected: int, label: str) -> List[float]:
        try:
            array = np.asarray(values, dtype=float)
        except (TypeError, ValueError) as e:
            raise InvalidArgumentError(f"{label} is not a numeric vector: {e}") from e

        if array.ndim != 1:
            raise InvalidArgumentError(
                f"{label} must be a flat vector, got shape {array.shape}"
            )
        vector = array.tolist()

        if len(vector) != expected:
            raise InvalidArgumentError(
                f"{label} has {len(vector)} values, network expects {expected}"
            )
        return vector

    def _input_vector(self, values) -> List[float]:
        return self._as_vector(values, self._architecture[0], 'Input')

    def _target_vector(self, values) -> List[float]:
        return self._as_vector(values, self._architecture[-1], 'Target')

    # ------------------------------------------------------------------
    # Forward pass
    # ------------------------------------------------------------------

    def forward_propagate(self, input_column: Matrix) -> ForwardPass:
        """
        Propagate a column vector through every layer.

        Args:
            input_column: ``(architecture[0] x 1)`` input

        Returns:
            ForwardPass with ``len(architecture)`` activations (the first is
            the input itself) and ``len(architecture) - 1`` pre-activations

        Raises:
            InvalidArgumentError: If the input is not an
                ``(architecture[0] x 1)`` matrix
        """
        if input_column.shape != (self._architecture[0], 1):
            raise InvalidArgumentError(
                f"Input must be ({self._architecture[0]} x 1), "
                f"got {input_column.dimension()}"
            )

        activations = [input_column]
        pre_activations = []
        for w, b in zip(self._weights, self._biases):
            z = w * activations[-1] + b
            pre_activations.append(z)
            activations.append(z.apply(sigmoid))

        return ForwardPass(tuple(activations), tuple(pre_activations))

    def predict(self, inputs) -> List[float]:
        """Return the network output for a single input vector."""
        column = Matrix.column(self._input_vector(inputs))
        return self.forward_propagate(column).activations[-1].to_vector()

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def train_single(self, inputs, targets) -> None:
        """
        Run one stochastic gradient descent step on a single example.

        Raises:
            InvalidArgumentError: If either vector has the wrong length. The
                weights and biases are left untouched in that case.
        """
        x = self._input_vector(inputs)
        y = self._target_vector(targets)
        self._backpropagate(Matrix.column(x), Matrix.column(y))

    def _backpropagate(self, input_column: Matrix, target_column: Matrix) -> None:
        activations, zs = self.forward_propagate(input_column)
        layers = len(self._weights)

        # All deltas use the weights as they were before this step
        deltas: List[Optional[Matrix]] = [None] * layers
        deltas[-1] = (activations[-1] - target_column).hadamard(
            zs[-1].apply(sigmoid_prime)
        )
        for i in range(layers - 2, -1, -1):
            deltas[i] = (self._weights[i + 1].transpose() * deltas[i + 1]).hadamard(
                zs[i].apply(sigmoid_prime)
            )

        for i, delta in enumerate(deltas):
            grad_w = delta * activations[i].transpose()
            self._weights[i] -= self._learning_rate * grad_w
            self._biases[i] -= self._learning_rate * delta

    def train(
        self,
        inputs: Sequence,
        targets: Sequence,
        epochs: int,
        shuffle: bool = True,
        rng: Optional[np.random.Generator] = None
    ) -> ErrorSnapshot:
        """
        Train for ``epochs`` full passes over the dataset, one example at a time.

        Args:
            inputs: Input vectors
            targets: Target vectors, paired with ``inputs`` by position
            epochs: Number of passes over the data (may be 0)
            shuffle: Visit examples in a fresh random order every epoch
            rng: Random source for shuffling, defaults to the network's own

        Returns:
            The error snapshot recorded at the end of training

        Raises:
            InvalidArgumentError: If the dataset is empty, inputs and targets
                differ in count, any example has the wrong width, or
                ``epochs`` is not a non-negative integer. Validation happens
                before any weight is changed.
        """
        if isinstance(epochs, bool) or int(epochs) != epochs or epochs < 0:
            raise InvalidArgumentError(
                f"epochs must be a non-negative integer, got {epochs}"
            )
        if len(inputs) != len(targets):
            raise InvalidArgumentError(
                f"Got {len(inputs)} inputs but {len(targets)} targets"
            )
        if len(inputs) == 0:
            raise InvalidArgumentError("Cannot train on an empty dataset")

        examples = [
            (Matrix.column(self._input_vector(x)), Matrix.column(self._target_vector(y)))
            for x, y in zip(inputs, targets)
        ]
        rng = self._rng if rng is None else rng

        for _ in range(int(epochs)):
            order = shuffled_indices(len(examples), rng) if shuffle else range(len(examples))
            for index in order:
                self._backpropagate(*examples[index])

        self._epoch_count += int(epochs)
        mse = self.mean_squared_error(inputs, targets)
        snapshot = ErrorSnapshot(self._epoch_count, mse)
        self._error_history.append(snapshot)

        logger.debug(
            f"Trained {epochs} epoch(s), total {self._epoch_count}, mse={mse:.6f}"
        )
        return snapshot

    def mean_squared_error(self, inputs: Sequence, targets: Sequence) -> float:
        """
        Mean over examples and output dimensions of ``(prediction - target)^2``.
        """
        if len(inputs) != len(targets):
            raise InvalidArgumentError(
                f"Got {len(inputs)} inputs but {len(targets)} targets"
            )
        if len(inputs) == 0:
            raise InvalidArgumentError("Cannot compute error of an empty dataset")

        total = 0.0
        for x, y in zip(inputs, targets):
            prediction = self.predict(x)
            target = self._target_vector(y)
            total += sum((p - t) ** 2 for p, t in zip(prediction, target))

        return total / (len(inputs) * self._architecture[-1])
