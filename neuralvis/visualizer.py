"""
visualizer.py
~~~~~~~~~~~~~

Drives a network through a dataset and renders what it has learnt.

Training and rendering are kept apart: ``TrainingSession.advance`` runs a
small number of epochs and reports the error, while ``decision_surface`` and
``render_surface`` only read the network. Presenters (the web server, the
headless script) call ``advance`` once per cycle and render in between.
"""

import base64
import logging
from io import BytesIO
from typing import List, NamedTuple, Optional

import numpy as np

# Use non-GUI backend for matplotlib (rendering happens off-screen)
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from neuralvis.datasets import Dataset, validate_dataset
from neuralvis.errors import InvalidArgumentError
from neuralvis.network import Network

logger = logging.getLogger(__name__)

DEFAULT_RESOLUTION = 80


class TrainingReport(NamedTuple):
    """Error statistics after one training cycle."""
    epoch: int
    error: float
    previous_error: Optional[float]
    improvement: float


class TrainingSession:
    """
    A network paired with the dataset it is learning.

    The dataset is validated once here, before any training happens, so a
    shape problem surfaces when the session is created rather than midway
    through a render loop.
    """

    def __init__(self, dataset: Dataset, rng: Optional[np.random.Generator] = None):
        validate_dataset(dataset)

        self.dataset = dataset
        self.network = Network(dataset.architecture, dataset.learning_rate, rng=rng)

        logger.info(
            f"Created training session for '{dataset.display_name}' "
            f"({len(dataset)} examples, {self.network})"
        )

    def advance(self, epochs: Optional[int] = None) -> TrainingReport:
        """
        Train for ``epochs`` more epochs (the dataset's hint by default).

        Returns:
            TrainingReport with the new error and the improvement over the
            previous cycle (0.0 on the first cycle)
        """
        epochs = self.dataset.epochs_per_cycle if epochs is None else epochs
        self.network.train(
            self.dataset.inputs,
            self.dataset.targets,
            epochs,
            shuffle=True
        )
        return self.report()

    def report(self) -> Optional[TrainingReport]:
        """Latest error statistics, or None before the first cycle."""
        current, previous = self.network.get_error()
        if current is None:
            return None

        previous_error = previous.mse if previous is not None else None
        improvement = previous_error - current.mse if previous_error is not None else 0.0
        return TrainingReport(current.epoch, current.mse, previous_error, improvement)

    def status_lines(self) -> List[str]:
        """Text shown above the rendered surface."""
        report = self.report()
        epoch = report.epoch if report else 0
        error = report.error if report else 0.0
        improvement = report.improvement if report else 0.0

        return [
            f"Epoch: {epoch:4}",
            f"Network Error: {error * 100:.2f}%. "
            f"Training Improvement: {improvement * 100:.4f}",
            str(self.network)
        ]

    def decision_surface(self, resolution: int = DEFAULT_RESOLUTION) -> np.ndarray:
        """
        Sample the first network output over a grid of the unit square.

        Returns:
            Array of shape ``(resolution, resolution)`` where
            ``surface[j, i] = predict([i / resolution, j / resolution])[0]``
        """
        if resolution < 1:
            raise InvalidArgumentError(f"resolution must be positive, got {resolution}")

        surface = np.zeros((resolution, resolution))
        for i in range(resolution):
            for j in range(resolution):
                surface[j, i] = self.network.predict([i / resolution, j / resolution])[0]
        return surface

    def render_png(self, resolution: int = DEFAULT_RESOLUTION) -> bytes:
        """Render the decision surface, dataset overlay and status as PNG bytes."""
        surface = self.decision_surface(resolution)

        fig = plt.figure(figsize=(6, 6.6))
        try:
            plt.imshow(
                surface,
                cmap='gray',
                vmin=0.0,
                vmax=1.0,
                extent=(0.0, 1.0, 1.0, 0.0),
                interpolation='nearest'
            )
            if self.dataset.draw_overlay is not None:
                self.dataset.draw_overlay(plt.gca())
            plt.xlim(0.0, 1.0)
            plt.ylim(1.0, 0.0)
            plt.title("\n".join(self.status_lines()), fontsize=9, loc='left')
            plt.axis('off')

            buffer = BytesIO()
            plt.savefig(buffer, format='png', bbox_inches='tight')
        finally:
            plt.close(fig)
        return buffer.getvalue()

    def render_surface(self, resolution: int = DEFAULT_RESOLUTION) -> str:
        """Base64-encoded PNG of the current decision surface."""
        return base64.b64encode(self.render_png(resolution)).decode('utf-8')

    def save_surface(self, path: str, resolution: int = DEFAULT_RESOLUTION) -> None:
        """Write the current decision surface to a PNG file."""
        with open(path, 'wb') as f:
            f.write(self.render_png(resolution))
        logger.info(f"Saved decision surface to {path}")
