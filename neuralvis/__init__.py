"""
neuralvis package
~~~~~~~~~~~~~~~~~

Dense feedforward neural network trainer built from scratch.
Contains the matrix kernel, the backpropagation engine, the 2-D training
problems, and the presenters (training sessions, API server) that render
what a network has learnt.
"""

from neuralvis.errors import (
    NeuralVisError,
    DimensionMismatchError,
    IndexOutOfRangeError,
    InvalidArgumentError,
)
from neuralvis.matrix import Matrix
from neuralvis.network import Network, ErrorSnapshot, ForwardPass

__version__ = "1.0.0"
