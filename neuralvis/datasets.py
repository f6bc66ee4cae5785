"""
datasets.py
~~~~~~~~~~~

Two-dimensional classification problems for the network to learn.

Each problem is a ``Dataset`` value: training points, the architecture and
hyper-parameters suited to it, and an optional hook that draws the problem's
points onto a matplotlib ``Axes``. Presenters pick one by name through
``get_dataset``.

Coordinates are normalised to the unit square, with y growing downwards to
match the on-screen orientation of rendered decision surfaces.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from neuralvis.errors import InvalidArgumentError

logger = logging.getLogger(__name__)

POSITIVE_COLOR = '#00ff00'
NEGATIVE_COLOR = '#ff0000'
BOUNDARY_COLOR = '#0000ff'


@dataclass(frozen=True)
class Dataset:
    """
    A training problem and the settings used to learn it.

    Attributes:
        name: Registry key, e.g. ``'xor'``
        display_name: Human readable title
        inputs: Input vectors, all of width ``architecture[0]``
        targets: Target vectors, all of width ``architecture[-1]``
        architecture: Layer sizes of the network trained on this problem
        learning_rate: Gradient descent step size
        epochs_per_cycle: Epochs to run between two renders
        draw_overlay: Optional callable drawing the problem onto an Axes
    """
    name: str
    display_name: str
    inputs: Tuple[Tuple[float, ...], ...]
    targets: Tuple[Tuple[float, ...], ...]
    architecture: Tuple[int, ...]
    learning_rate: float
    epochs_per_cycle: int
    draw_overlay: Optional[Callable] = None

    def __len__(self) -> int:
        return len(self.inputs)


def _freeze(vectors: Sequence[Sequence[float]]) -> Tuple[Tuple[float, ...], ...]:
    return tuple(tuple(float(value) for value in vector) for vector in vectors)


def validate_dataset(dataset: Dataset) -> None:
    """
    Check that a dataset can be trained on by a network built from it.

    Presenters call this once before the first training cycle.

    Raises:
        InvalidArgumentError: If the data and architecture are incompatible
    """
    architecture = list(dataset.architecture)
    if len(architecture) < 2:
        raise InvalidArgumentError(
            f"Dataset '{dataset.name}' architecture needs at least 2 layers, "
            f"got {architecture}"
        )
    if len(dataset.inputs) == 0:
        raise InvalidArgumentError(f"Dataset '{dataset.name}' has no examples")
    if len(dataset.inputs) != len(dataset.targets):
        raise InvalidArgumentError(
            f"Dataset '{dataset.name}' has {len(dataset.inputs)} inputs "
            f"but {len(dataset.targets)} targets"
        )

    for index, (x, y) in enumerate(zip(dataset.inputs, dataset.targets)):
        if len(x) != architecture[0]:
            raise InvalidArgumentError(
                f"Dataset '{dataset.name}' input {index} has width {len(x)}, "
                f"architecture expects {architecture[0]}"
            )
        if len(y) != architecture[-1]:
            raise InvalidArgumentError(
                f"Dataset '{dataset.name}' target {index} has width {len(y)}, "
                f"architecture expects {architecture[-1]}"
            )

    if not dataset.learning_rate > 0:
        raise InvalidArgumentError(
            f"Dataset '{dataset.name}' learning rate must be positive"
        )
    if dataset.epochs_per_cycle < 1:
        raise InvalidArgumentError(
            f"Dataset '{dataset.name}' epochs_per_cycle must be at least 1"
        )


# ============================================================================
# OVERLAYS
# ============================================================================

def _draw_points(ax, inputs, targets, limit: Optional[int] = None) -> None:
    points = np.array(inputs[:limit], dtype=float).reshape(-1, 2)
    labels = np.array([t[0] for t in targets[:limit]], dtype=float)
    colors = [POSITIVE_COLOR if label > 0.5 else NEGATIVE_COLOR for label in labels]
    ax.scatter(points[:, 0], points[:, 1], c=colors, s=18, edgecolors='black', linewidths=0.5)


def _point_overlay(inputs, targets, limit: Optional[int] = None) -> Callable:
    def draw(ax) -> None:
        _draw_points(ax, inputs, targets, limit)
    return draw


def _circle_overlay(inputs, targets, center, radius) -> Callable:
    def draw(ax) -> None:
        angles = np.radians(np.arange(0, 362, 2))
        ax.plot(
            center[0] + radius * np.cos(angles),
            center[1] + radius * np.sin(angles),
            color=BOUNDARY_COLOR,
            linewidth=1.5
        )
        _draw_points(ax, inputs, targets, limit=50)
    return draw


# ============================================================================
# PROBLEMS
# ============================================================================

def xor_dataset() -> Dataset:
    """The four-point exclusive-or truth table."""
    inputs = _freeze([[0, 0], [0, 1], [1, 0], [1, 1]])
    targets = _freeze([[0], [1], [1], [0]])

    return Dataset(
        name='xor',
        display_name='XOR Problem',
        inputs=inputs,
        targets=targets,
        architecture=(2, 8, 8, 1),
        learning_rate=0.7,
        epochs_per_cycle=10,
        draw_overlay=_point_overlay(inputs, targets)
    )


def circle_dataset(
    rng: Optional[np.random.Generator] = None,
    num_points: int = 100,
    center: Tuple[float, float] = (0.5, 0.5),
    radius: float = 0.3
) -> Dataset:
    """
    Points drawn uniformly from the unit square, labelled 1 inside a circle.

    Args:
        rng: Random source for the point positions
        num_points: Number of training points
        center: Circle centre
        radius: Circle radius
    """
    if num_points < 1:
        raise InvalidArgumentError(f"num_points must be positive, got {num_points}")
    rng = np.random.default_rng() if rng is None else rng

    inputs: List[List[float]] = []
    targets: List[List[float]] = []
    for _ in range(num_points):
        x, y = float(rng.random()), float(rng.random())
        inputs.append([x, y])
        inside = math.hypot(x - center[0], y - center[1]) <= radius
        targets.append([1.0 if inside else 0.0])

    inputs, targets = _freeze(inputs), _freeze(targets)
    return Dataset(
        name='circle',
        display_name='Circle Classification',
        inputs=inputs,
        targets=targets,
        architecture=(2, 8, 16, 8, 1),
        learning_rate=0.15,
        epochs_per_cycle=10,
        draw_overlay=_circle_overlay(inputs, targets, center, radius)
    )


def spiral_dataset(num_points: int = 200) -> Dataset:
    """
    Two interleaved spirals of ``num_points`` each.

    The first arm is labelled 1 and the second, rotated by pi, is labelled 0.
    """
    if num_points < 1:
        raise InvalidArgumentError(f"num_points must be positive, got {num_points}")

    inputs: List[List[float]] = []
    targets: List[List[float]] = []
    for i in range(num_points):
        t = i / num_points * 4 * math.pi
        r = t / (4 * math.pi)

        inputs.append([0.5 + r * math.cos(t) * 0.5, 0.5 + r * math.sin(t) * 0.5])
        targets.append([1.0])

        inputs.append([
            0.5 + r * math.cos(t + math.pi) * 0.5,
            0.5 + r * math.sin(t + math.pi) * 0.5
        ])
        targets.append([0.0])

    inputs, targets = _freeze(inputs), _freeze(targets)
    return Dataset(
        name='spiral',
        display_name='Spiral Classification',
        inputs=inputs,
        targets=targets,
        architecture=(2, 8, 8, 1),
        learning_rate=0.35,
        epochs_per_cycle=20,
        draw_overlay=_point_overlay(inputs, targets)
    )


# ============================================================================
# REGISTRY
# ============================================================================

DATASETS: Dict[str, Callable[..., Dataset]] = {
    'xor': lambda rng=None: xor_dataset(),
    'circle': lambda rng=None: circle_dataset(rng=rng),
    'spiral': lambda rng=None: spiral_dataset(),
}


def available_datasets() -> List[str]:
    """Names accepted by ``get_dataset``."""
    return sorted(DATASETS)


def get_dataset(name: str, rng: Optional[np.random.Generator] = None) -> Dataset:
    """
    Build the dataset registered under ``name``.

    Args:
        name: One of ``available_datasets()``
        rng: Random source for datasets that generate their points

    Raises:
        InvalidArgumentError: If no dataset has that name
    """
    try:
        factory = DATASETS[name]
    except (KeyError, TypeError):
        raise InvalidArgumentError(
            f"Unknown dataset {name!r}. Available: {', '.join(available_datasets())}"
        ) from None

    dataset = factory(rng=rng)
    logger.debug(f"Built dataset '{name}' with {len(dataset)} examples")
    return dataset
