"""
Tests for the Touch Surface Application
========================================
"""

import pytest
import cv2
import numpy as np
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import touchsurface.main as app_main
from touchsurface.events import Events
from touchsurface.main import AppConfig, SurfaceApplication
from touchsurface.pipeline import PipelineConfig
from touchsurface.recognition.shape_classifier import ShapeClassifierConfig
from touchsurface.types import BoundingBox, ContactEvent, Control, ControlType, PipelinePhase
from touchsurface.utils.visualization import VisualizerConfig


@pytest.fixture
def surface_image(tmp_path):
    path = tmp_path / "surface.png"
    image = np.full((120, 160, 3), 255, dtype=np.uint8)
    cv2.rectangle(image, (40, 30), (100, 90), (0, 0, 0), 3)
    cv2.imwrite(str(path), image)
    return str(path)


@pytest.fixture
def headless_config(tmp_path):
    return AppConfig(
        classifier=ShapeClassifierConfig(model_path=str(tmp_path / "no_model.yml")),
        pipeline=PipelineConfig(render=False),
        visualization=VisualizerConfig(show_window=False),
        samples_dir=str(tmp_path / "samples"),
    )


def press(monkeypatch, *keys):
    """Feed ``keys`` to cv2.waitKey, then report no key."""
    pending = [ord(k) for k in keys]
    monkeypatch.setattr(app_main.cv2, "waitKey", lambda delay=0: pending.pop(0) if pending else -1)


def contact_event():
    control = Control(ControlType.CIRCLE, BoundingBox(0, 0, 20, 20), reference_depth=900.0)
    return ContactEvent(control_index=0, control=control, difference=3.0)


class TestEventWiring:
    def test_contacts_logged_through_bus(self, headless_config, surface_image):
        app = SurfaceApplication(headless_config, image_path=surface_image)
        assert app.start()

        app.event_bus.emit(Events.CONTACT, event=contact_event())

        assert app.contact_logger.total_contacts == 1
        assert app.contact_logger.get_history()[0]["control_type"] == "circle"

    def test_contact_logging_can_be_switched_off(self, headless_config, surface_image):
        headless_config.log_contacts = False
        app = SurfaceApplication(headless_config, image_path=surface_image)
        assert app.start()

        app.event_bus.emit(Events.CONTACT, event=contact_event())

        assert app.event_bus.listener_count(Events.CONTACT) == 0
        assert app.contact_logger.total_contacts == 0

    def test_commit_summary_printed(self, headless_config, surface_image, capsys):
        app = SurfaceApplication(headless_config, image_path=surface_image)
        assert app.start()

        app._handle_key(ord('c'))

        assert "Shapes calibrated. Squares: 0, Circles: 0, Sliders: 0" in capsys.readouterr().out
        assert app.pipeline.phase is PipelinePhase.RUNNING

    def test_stop_unsubscribes(self, headless_config, surface_image):
        app = SurfaceApplication(headless_config, image_path=surface_image)
        assert app.start()
        app.stop()

        assert app.event_bus.listener_count(Events.CONTACT) == 0
        assert app.event_bus.listener_count(Events.CALIBRATION_COMMITTED) == 0


class TestHeadlessLoop:
    def test_keys_polled_without_window(self, headless_config, surface_image, monkeypatch):
        press(monkeypatch, "c", "q")
        app = SurfaceApplication(headless_config, image_path=surface_image)
        assert app.start()

        app._main_loop()

        assert app.pipeline.phase is PipelinePhase.RUNNING
        assert app.pipeline.frame_count == 2

    def test_commit_signal_applied_between_frames(self, headless_config, surface_image, monkeypatch):
        press(monkeypatch, "q")
        app = SurfaceApplication(headless_config, image_path=surface_image)
        assert app.start()

        app._commit_signal_handler(None, None)
        app._main_loop()

        assert app.pipeline.phase is PipelinePhase.RUNNING
        assert app.pipeline.frame_count == 1

    def test_sample_toggle_key(self, headless_config, surface_image, monkeypatch):
        press(monkeypatch, "s", "q")
        app = SurfaceApplication(headless_config, image_path=surface_image)
        assert app.start()

        app._main_loop()

        assert app.sample_writer.enabled


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
