"""
test_visualizer.py
~~~~~~~~~~~~~~~~~~

Tests for training sessions and decision surface rendering.
"""

import base64
import dataclasses

import matplotlib.pyplot as plt
import numpy as np
import pytest

from neuralvis.datasets import xor_dataset
from neuralvis.errors import InvalidArgumentError
from neuralvis.visualizer import TrainingReport, TrainingSession

PNG_SIGNATURE = b'\x89PNG\r\n\x1a\n'


@pytest.fixture
def session():
    """A small XOR session with a fixed seed."""
    dataset = dataclasses.replace(xor_dataset(), architecture=(2, 3, 1))
    return TrainingSession(dataset, rng=np.random.default_rng(17))


@pytest.mark.unit
class TestTrainingSession:
    """Test advancing training cycle by cycle."""

    def test_invalid_dataset_rejected_up_front(self):
        dataset = dataclasses.replace(xor_dataset(), architecture=(3, 1))
        with pytest.raises(InvalidArgumentError):
            TrainingSession(dataset)

    def test_network_built_from_dataset(self, session):
        assert session.network.architecture == (2, 3, 1)
        assert session.network.learning_rate == 0.7

    def test_no_report_before_training(self, session):
        assert session.report() is None
        assert session.status_lines()[0] == "Epoch:    0"

    def test_advance_uses_epoch_hint(self, session):
        report = session.advance()
        assert isinstance(report, TrainingReport)
        assert report.epoch == 10
        assert report.previous_error is None
        assert report.improvement == 0.0

    def test_advance_reports_improvement(self, session):
        first = session.advance(5)
        second = session.advance(5)
        assert second.epoch == 10
        assert second.previous_error == first.error
        assert second.improvement == pytest.approx(first.error - second.error)

    def test_status_lines(self, session):
        report = session.advance(2)
        lines = session.status_lines()
        assert lines[0] == "Epoch:    2"
        assert lines[1].startswith(f"Network Error: {report.error * 100:.2f}%.")
        assert "Training Improvement:" in lines[1]
        assert lines[2] == "Architecture: 2-3-1 | Learning rate: 0.7"


@pytest.mark.unit
class TestRendering:
    """Test the read-only rendering path."""

    def test_decision_surface_samples_grid(self, session):
        surface = session.decision_surface(resolution=4)
        assert surface.shape == (4, 4)
        # Row index is y, column index is x
        assert surface[3, 1] == pytest.approx(session.network.predict([0.25, 0.75])[0])
        assert np.all((surface > 0) & (surface < 1))

    def test_decision_surface_does_not_train(self, session):
        before = session.network.get_params()
        session.decision_surface(resolution=3)
        assert session.network.get_params() == before
        assert session.network.epoch_count == 0

    def test_invalid_resolution(self, session):
        with pytest.raises(InvalidArgumentError):
            session.decision_surface(resolution=0)

    def test_render_png(self, session):
        session.advance(1)
        assert session.render_png(resolution=5).startswith(PNG_SIGNATURE)

    def test_render_png_closes_figure_on_failure(self, session):
        """Test that a failing overlay does not leave a figure open."""
        def broken_overlay(ax):
            raise RuntimeError("overlay failed")

        session.dataset = dataclasses.replace(session.dataset, draw_overlay=broken_overlay)
        open_before = len(plt.get_fignums())
        with pytest.raises(RuntimeError):
            session.render_png(resolution=3)
        assert len(plt.get_fignums()) == open_before

    def test_render_surface_is_base64_png(self, session):
        image = session.render_surface(resolution=5)
        assert base64.b64decode(image).startswith(PNG_SIGNATURE)

    def test_save_surface(self, session, tmp_path):
        path = tmp_path / "surface.png"
        session.save_surface(str(path), resolution=5)
        assert path.read_bytes().startswith(PNG_SIGNATURE)
