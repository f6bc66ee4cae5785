"""
matrix.py
~~~~~~~~~

Dense two-dimensional matrix of floats with shape-checked arithmetic.

This is the linear algebra kernel used by the network engine. Entries are
stored row-major as a list of row lists and every operation is the naive
textbook definition; there is no blocking or vectorisation.
"""

from numbers import Integral, Real
from typing import Callable, Iterable, List, Sequence, Tuple

import numpy as np

from neuralvis.errors import (
    DimensionMismatchError,
    IndexOutOfRangeError,
    InvalidArgumentError,
)


class Matrix:
    """
    A ``rows x cols`` table of floats.

    The shape is fixed at construction. Operations that produce a different
    shape (``transpose``, matrix product) return a new Matrix.
    """

    __slots__ = ('_rows', '_cols', '_data')

    def __init__(self, rows: int, cols: int, fill: float = 0.0):
        """
        Create a constant-filled matrix.

        Args:
            rows: Number of rows (non-negative)
            cols: Number of columns (non-negative)
            fill: Value of every entry, 0.0 by default

        Raises:
            InvalidArgumentError: If either dimension is negative or not an integer
        """
        for dim in (rows, cols):
            if isinstance(dim, bool) or not isinstance(dim, Integral):
                raise InvalidArgumentError(
                    f"Matrix dimensions must be integers, got ({rows!r} x {cols!r})"
                )
        if rows < 0 or cols < 0:
            raise InvalidArgumentError(
                f"Matrix dimensions must be non-negative, got ({rows} x {cols})"
            )
        self._rows = int(rows)
        self._cols = int(cols)
        self._data = [[float(fill)] * self._cols for _ in range(self._rows)]

    # ------------------------------------------------------------------
    # Alternate constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_rows(cls, values: Sequence[Sequence[float]]) -> 'Matrix':
        """
        Build a matrix from a nested literal.

        The column count is taken from the first row; every other row must
        have the same length.

        Raises:
            InvalidArgumentError: If the rows are of unequal length
        """
        rows = [list(row) for row in values]
        cols = len(rows[0]) if rows else 0
        for index, row in enumerate(rows):
            if len(row) != cols:
                raise InvalidArgumentError(
                    f"Row {index} has {len(row)} entries, expected {cols}"
                )

        result = cls(len(rows), cols)
        result._data = [[float(value) for value in row] for row in rows]
        return result

    @classmethod
    def column(cls, values: Iterable[float]) -> 'Matrix':
        """Build an ``(n x 1)`` column matrix from a flat vector."""
        return cls.from_rows([[value] for value in values])

    @classmethod
    def identity(cls, size: int) -> 'Matrix':
        """Build the ``(size x size)`` identity matrix."""
        result = cls(size, size)
        for i in range(size):
            result._data[i][i] = 1.0
        return result

    # ------------------------------------------------------------------
    # Shape accessors
    # ------------------------------------------------------------------

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def cols(self) -> int:
        return self._cols

    @property
    def shape(self) -> Tuple[int, int]:
        return self._rows, self._cols

    def dimension(self) -> str:
        """Human readable shape, e.g. ``(2 x 3)``."""
        return f"({self._rows} x {self._cols})"

    # ------------------------------------------------------------------
    # Element access
    # ------------------------------------------------------------------

    def _check_index(self, key) -> Tuple[int, int]:
        try:
            row, col = key
        except (TypeError, ValueError):
            raise InvalidArgumentError(
                f"Matrix index must be a (row, col) pair, got {key!r}"
            ) from None

        for index in (row, col):
            if isinstance(index, bool) or not isinstance(index, Integral):
                raise InvalidArgumentError(
                    f"Matrix indices must be integers, got ({row!r}, {col!r})"
                )
        if not 0 <= row < self._rows or not 0 <= col < self._cols:
            raise IndexOutOfRangeError(
                f"Index ({row}, {col}) out of range for {self.dimension()} matrix"
            )
        return row, col

    def __getitem__(self, key) -> float:
        row, col = self._check_index(key)
        return self._data[row][col]

    def __setitem__(self, key, value: float) -> None:
        row, col = self._check_index(key)
        self._data[row][col] = float(value)

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def to_vector(self) -> List[float]:
        """
        Return the single column as a flat list.

        Raises:
            InvalidArgumentError: If the matrix has more or fewer than one column
        """
        if self._cols != 1:
            raise InvalidArgumentError(
                f"to_vector requires a single column, matrix is {self.dimension()}"
            )
        return [row[0] for row in self._data]

    def to_list(self) -> List[List[float]]:
        """Return a copy of the entries as nested lists."""
        return [list(row) for row in self._data]

    def to_array(self) -> np.ndarray:
        """Return a copy of the entries as a 2-D numpy array."""
        return np.array(self._data, dtype=float).reshape(self._rows, self._cols)

    def copy(self) -> 'Matrix':
        result = Matrix(self._rows, self._cols)
        result._data = self.to_list()
        return result

    def assign(self, other: 'Matrix') -> None:
        """Overwrite every entry with the matching entry of ``other``."""
        self._require_same_shape(other, 'assign')
        self._data = other.to_list()

    # ------------------------------------------------------------------
    # Elementwise operations
    # ------------------------------------------------------------------

    def _require_same_shape(self, other: 'Matrix', operation: str) -> None:
        if not isinstance(other, Matrix):
            raise InvalidArgumentError(
                f"Cannot {operation} a matrix and {type(other).__name__}"
            )
        if self.shape != other.shape:
            raise DimensionMismatchError(
                f"Cannot {operation} {self.dimension()} with {other.dimension()}"
            )

    def _zip_with(self, other: 'Matrix', func: Callable[[float, float], float]) -> 'Matrix':
        result = Matrix(self._rows, self._cols)
        result._data = [
            [func(a, b) for a, b in zip(left, right)]
            for left, right in zip(self._data, other._data)
        ]
        return result

    def transpose(self) -> 'Matrix':
        """Return the ``(cols x rows)`` transpose."""
        result = Matrix(self._cols, self._rows)
        if self._rows:
            result._data = [list(column) for column in zip(*self._data)]
        return result

    def hadamard(self, other: 'Matrix') -> 'Matrix':
        """
        Elementwise product of two equal-shaped matrices.

        Raises:
            DimensionMismatchError: If the shapes differ
        """
        self._require_same_shape(other, 'element-wise multiply')
        return self._zip_with(other, lambda a, b: a * b)

    def apply(self, func: Callable[[float], float]) -> 'Matrix':
        """Return a new matrix with ``func`` applied to every entry."""
        result = Matrix(self._rows, self._cols)
        result._data = [[float(func(value)) for value in row] for row in self._data]
        return result

    def randomize(self, low: float, high: float, rng: np.random.Generator) -> 'Matrix':
        """
        Fill every entry in place with an independent uniform draw.

        Args:
            low: Lower bound of the distribution
            high: Upper bound of the distribution
            rng: Random source the draws are taken from

        Returns:
            The matrix itself, to allow chaining after construction
        """
        if low > high:
            raise InvalidArgumentError(
                f"randomize range is empty: [{low}, {high}]"
            )
        self._data = [
            [float(rng.uniform(low, high)) for _ in range(self._cols)]
            for _ in range(self._rows)
        ]
        return self

    # ------------------------------------------------------------------
    # Operators
    # ------------------------------------------------------------------

    def __add__(self, other: 'Matrix') -> 'Matrix':
        self._require_same_shape(other, 'add')
        return self._zip_with(other, lambda a, b: a + b)

    def __sub__(self, other: 'Matrix') -> 'Matrix':
        self._require_same_shape(other, 'subtract')
        return self._zip_with(other, lambda a, b: a - b)

    def __iadd__(self, other: 'Matrix') -> 'Matrix':
        self._require_same_shape(other, 'add')
        for left, right in zip(self._data, other._data):
            for j, value in enumerate(right):
                left[j] += value
        return self

    def __isub__(self, other: 'Matrix') -> 'Matrix':
        self._require_same_shape(other, 'subtract')
        for left, right in zip(self._data, other._data):
            for j, value in enumerate(right):
                left[j] -= value
        return self

    def __mul__(self, other):
        if isinstance(other, Matrix):
            return self._matmul(other)
        if isinstance(other, Real):
            scalar = float(other)
            return self.apply(lambda value: value * scalar)
        return NotImplemented

    def __rmul__(self, other):
        if isinstance(other, Real):
            return self * other
        return NotImplemented

    def _matmul(self, other: 'Matrix') -> 'Matrix':
        if self._cols != other._rows:
            raise DimensionMismatchError(
                f"Cannot multiply {self.dimension()} with {other.dimension()}"
            )

        result = Matrix(self._rows, other._cols)
        for i in range(self._rows):
            row = self._data[i]
            out = result._data[i]
            for j in range(other._cols):
                total = 0.0
                for k in range(self._cols):
                    total += row[k] * other._data[k][j]
                out[j] = total
        return result

    def __eq__(self, other) -> bool:
        if not isinstance(other, Matrix):
            return NotImplemented
        return self.shape == other.shape and self._data == other._data

    __hash__ = None

    def __repr__(self) -> str:
        return f"<Matrix {self.dimension()}>"

    def __str__(self) -> str:
        if self._rows == 0 and self._cols == 0:
            return "{Empty Matrix}"
        return "\n".join(
            "| " + " ".join(f"{value:.6f}" for value in row) + " |"
            for row in self._data
        )
