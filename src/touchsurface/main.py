"""
Touch Surface - Main Application
=================================

Entry point for the depth-camera touch surface.
Calibrate by showing the printed controls to the sensor and pressing ``c``;
afterwards touches on the controls are reported.
"""

import argparse
import logging
import signal
import sys
from dataclasses import dataclass, field
from typing import Optional

import cv2

from .capture.sensor import OpenNISensor, SensorConfig, SensorSource, StillImageSensor
from .data.sample_collector import ShapeSampleWriter
from .detection.fingertip_tracker import FingertipTracker, FingertipTrackerConfig
from .detection.shape_detector import ShapeCandidateDetector, ShapeDetectorConfig
from .events import EventBus, Events
from .interaction.calibration import CalibrationController
from .interaction.contact_detector import ContactDetector, ContactDetectorConfig
from .mapping.spatial_mapper import MappingConfig, SpatialMapper
from .pipeline import PipelineConfig, SurfacePipeline
from .recognition.shape_classifier import ShapeClassifier, ShapeClassifierConfig
from .types import GeometryMismatchError
from .utils.config import load_config
from .utils.logger import ContactLogger, setup_logging
from .utils.performance import PerformanceMonitor
from .utils.visualization import SurfaceRenderer, VisualizerConfig, depth_to_display

logger = logging.getLogger(__name__)

WINDOW_NAME = "Touch Surface"
DEPTH_WINDOW_NAME = "Touch Surface - Depth"


@dataclass
class AppConfig:
    """Application configuration container."""
    sensor: SensorConfig = field(default_factory=SensorConfig)
    mapping: MappingConfig = field(default_factory=MappingConfig)
    shape_detection: ShapeDetectorConfig = field(default_factory=ShapeDetectorConfig)
    classifier: ShapeClassifierConfig = field(default_factory=ShapeClassifierConfig)
    fingertip: FingertipTrackerConfig = field(default_factory=FingertipTrackerConfig)
    contact: ContactDetectorConfig = field(default_factory=ContactDetectorConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    visualization: VisualizerConfig = field(default_factory=VisualizerConfig)
    samples_dir: str = "data/shape_samples"
    samples_enabled: bool = False
    log_level: str = "INFO"
    log_contacts: bool = True
    log_file: Optional[str] = None


def create_app_config(config_dict: dict) -> AppConfig:
    """Create AppConfig from configuration dictionary."""
    samples = config_dict.get("samples", {})
    logging_cfg = config_dict.get("logging", {})
    return AppConfig(
        sensor=SensorConfig.from_dict(config_dict.get("sensor", {})),
        mapping=MappingConfig.from_dict(config_dict.get("mapping", {})),
        shape_detection=ShapeDetectorConfig.from_dict(config_dict.get("shape_detection", {})),
        classifier=ShapeClassifierConfig.from_dict(config_dict.get("classifier", {})),
        fingertip=FingertipTrackerConfig.from_dict(config_dict.get("fingertip", {})),
        contact=ContactDetectorConfig.from_dict(config_dict.get("contact", {})),
        pipeline=PipelineConfig.from_dict(config_dict.get("pipeline", {})),
        visualization=VisualizerConfig.from_dict(config_dict.get("visualization", {})),
        samples_dir=samples.get("output_dir", "data/shape_samples"),
        samples_enabled=samples.get("enabled", False),
        log_level=logging_cfg.get("level", "INFO"),
        log_contacts=logging_cfg.get("contacts", True),
        log_file=logging_cfg.get("file"),
    )


def build_pipeline(config: AppConfig, event_bus: Optional[EventBus] = None,
                   sample_writer: Optional[ShapeSampleWriter] = None,
                   classifier: Optional[ShapeClassifier] = None) -> SurfacePipeline:
    """Wire every component from an AppConfig.

    The sensor geometry in ``config.sensor`` must already be final
    (still-image sources set it when they start).
    """
    event_bus = event_bus or EventBus()

    if classifier is None:
        classifier = ShapeClassifier(config.classifier)
        classifier.load()

    mapper = SpatialMapper(config.sensor.color_size, config.sensor.depth_size, config=config.mapping)
    calibration = CalibrationController(
        ShapeCandidateDetector(config.shape_detection),
        classifier,
        mapper,
        sample_writer=sample_writer,
        event_bus=event_bus,
    )
    return SurfacePipeline(
        config.sensor,
        mapper,
        calibration,
        FingertipTracker(config.fingertip),
        ContactDetector(mapper, config.contact),
        renderer=SurfaceRenderer(config.visualization),
        performance_monitor=PerformanceMonitor(),
        event_bus=event_bus,
        config=config.pipeline,
    )


class SurfaceApplication:
    """
    Main application class for the touch surface.

    Coordinates:
    - Sensor capture (OpenNI device or a still image)
    - The surface pipeline (calibration, then contact detection)
    - The operator window and keyboard

    Keyboard:
    - c: commit calibration
    - s: toggle shape sample capture
    - q/ESC: quit

    Without a window, SIGUSR1 commits the calibration.
    """

    def __init__(self, config: AppConfig, image_path: Optional[str] = None):
        self.config = config
        self.sensor: SensorSource = (
            StillImageSensor(image_path, config.sensor) if image_path else OpenNISensor(config.sensor)
        )
        self.sample_writer = ShapeSampleWriter(config.samples_dir, enabled=config.samples_enabled)
        self.event_bus = EventBus()
        self.contact_logger = ContactLogger()
        self.pipeline: Optional[SurfacePipeline] = None
        self._running = False
        self._commit_requested = False
        self._subscriptions = []

    def start(self) -> bool:
        """Start the sensor and build the pipeline for its geometry."""
        logger.info("Starting touch surface...")
        if not self.sensor.start():
            logger.error("Failed to start sensor")
            return False

        self.pipeline = build_pipeline(self.config, self.event_bus, self.sample_writer)
        self._subscribe(Events.CALIBRATION_COMMITTED, self._on_calibration_committed)
        if self.config.log_contacts:
            self._subscribe(Events.CONTACT, self._on_contact)
        self._running = True
        logger.info("Calibrating: show the controls to the sensor and press 'c'")
        return True

    def stop(self) -> None:
        logger.info("Stopping touch surface...")
        self._running = False
        self.sensor.stop()
        for event_name, callback in self._subscriptions:
            self.event_bus.unsubscribe(event_name, callback)
        self._subscriptions.clear()
        if self.config.visualization.show_window:
            cv2.destroyAllWindows()

    def run(self) -> None:
        if not self.start():
            return

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)
        if hasattr(signal, "SIGUSR1"):
            signal.signal(signal.SIGUSR1, self._commit_signal_handler)

        try:
            self._main_loop()
        finally:
            self.stop()
            self._print_final_report()

    def _subscribe(self, event_name: str, callback) -> None:
        self.event_bus.subscribe(event_name, callback)
        self._subscriptions.append((event_name, callback))

    # === Event handlers ===

    def _on_calibration_committed(self, summary, **kwargs) -> None:
        self.contact_logger.log_calibration(summary)
        print("Shapes calibrated. %s" % summary)

    def _on_contact(self, event, **kwargs) -> None:
        self.contact_logger.log_contact(event)

    # === Main loop ===

    def _main_loop(self) -> None:
        while self._running:
            if self._commit_requested:
                self._commit_requested = False
                self.pipeline.commit_calibration()

            with self.sensor.acquire() as frames:
                if frames is None:
                    self._poll_keyboard()
                    continue
                result = self.pipeline.process(frames)
                show = self.config.visualization.show_window
                if show and result is not None:
                    # Raw frame when rendering is off, so the window still takes keys
                    cv2.imshow(WINDOW_NAME, result.image if result.image is not None else frames.color)
                if self.config.visualization.show_depth:
                    cv2.imshow(DEPTH_WINDOW_NAME, depth_to_display(
                        frames.depth, frames.min_reliable_depth, frames.max_reliable_depth))

            self._poll_keyboard()

    def _poll_keyboard(self) -> None:
        key = cv2.waitKey(1)
        if key != -1:
            self._handle_key(key & 0xFF)

    def _handle_key(self, key: int) -> None:
        if key == ord('q') or key == 27:
            self._running = False
        elif key == ord('c'):
            self.pipeline.commit_calibration()
        elif key == ord('s'):
            self.sample_writer.toggle()

    def _signal_handler(self, signum, frame) -> None:
        logger.info("Received signal %d, shutting down...", signum)
        self._running = False

    def _commit_signal_handler(self, signum, frame) -> None:
        # Applied by the main loop between frames
        self._commit_requested = True

    def _print_final_report(self) -> None:
        if self.pipeline is None:
            return
        print("\n" + "=" * 50)
        print("FINAL PERFORMANCE REPORT")
        print("=" * 50)
        print(self.pipeline.performance.get_report())
        print("=" * 50)


def main(argv=None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Depth-camera touch surface",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Keyboard Controls:
  c         - Commit calibration
  s         - Toggle shape sample capture
  q/ESC     - Quit

Without a window, send SIGUSR1 to commit the calibration.

Examples:
  touchsurface
  touchsurface --image table.png --save-samples
  touchsurface --config custom_config.yaml --debug
        """
    )
    parser.add_argument("--config", "-c", default=None,
                        help="Path to configuration file (default: config/config.yaml)")
    parser.add_argument("--image", "-i", default=None,
                        help="Use a still colour image instead of the depth sensor")
    parser.add_argument("--save-samples", action="store_true",
                        help="Start with shape sample capture enabled")
    parser.add_argument("--debug", "-d", action="store_true",
                        help="Enable debug logging")
    args = parser.parse_args(argv)

    app_config = create_app_config(load_config(args.config))
    if args.save_samples:
        app_config.samples_enabled = True

    setup_logging("DEBUG" if args.debug else app_config.log_level, app_config.log_file)

    app = SurfaceApplication(app_config, image_path=args.image)
    try:
        app.run()
    except GeometryMismatchError as e:
        logger.error("Sensor geometry mismatch: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
