"""
errors.py
~~~~~~~~~

Exceptions raised by the matrix kernel and the network engine.

Every one of these is a precondition violation detected at the operation
that triggers it. Nothing in the engine returns a placeholder result instead.
"""


class NeuralVisError(Exception):
    """Base class for all neuralvis errors."""


class DimensionMismatchError(NeuralVisError, ValueError):
    """Operand shapes are incompatible for the requested operation."""


class IndexOutOfRangeError(NeuralVisError, IndexError):
    """Matrix element access beyond its bounds."""


class InvalidArgumentError(NeuralVisError, ValueError):
    """An argument does not satisfy the operation's contract."""
