"""
Visualization Module
=====================

Overlays for the operator view: candidates, controls, fingertip and status.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Sequence, Tuple

import cv2
import numpy as np

from ..types import BoundingBox, ContactEvent, Control, ControlType, Fingertip, PipelinePhase, ShapeCandidate


@dataclass
class VisualizerConfig:
    """Visualization settings. Colours are BGR."""
    show_candidates: bool = True
    show_status: bool = True
    show_window: bool = True
    show_depth: bool = False

    candidate_color: Tuple[int, int, int] = (255, 0, 0)      # Blue
    square_color: Tuple[int, int, int] = (0, 0, 255)         # Red
    circle_color: Tuple[int, int, int] = (0, 255, 255)       # Yellow
    slider_color: Tuple[int, int, int] = (0, 255, 0)         # Green
    fingertip_color: Tuple[int, int, int] = (0, 255, 0)      # Green
    text_color: Tuple[int, int, int] = (255, 255, 255)

    line_thickness: int = 2
    contact_thickness: int = 5
    font_scale: float = 0.6

    @classmethod
    def from_dict(cls, config: dict) -> "VisualizerConfig":
        """Create config from dictionary."""
        colors = config.get("colors", {})
        return cls(
            show_candidates=config.get("show_candidates", True),
            show_status=config.get("show_status", True),
            show_window=config.get("show_window", True),
            show_depth=config.get("show_depth", False),
            candidate_color=tuple(colors.get("candidate", [255, 0, 0])),
            square_color=tuple(colors.get("square", [0, 0, 255])),
            circle_color=tuple(colors.get("circle", [0, 255, 255])),
            slider_color=tuple(colors.get("slider", [0, 255, 0])),
            fingertip_color=tuple(colors.get("fingertip", [0, 255, 0])),
            text_color=tuple(colors.get("text", [255, 255, 255])),
            line_thickness=config.get("line_thickness", 2),
            contact_thickness=config.get("contact_thickness", 5),
            font_scale=config.get("font_scale", 0.6),
        )

    def control_color(self, control_type: ControlType) -> Tuple[int, int, int]:
        return {
            ControlType.SQUARE: self.square_color,
            ControlType.CIRCLE: self.circle_color,
            ControlType.SLIDER: self.slider_color,
        }[control_type]


def _bgra(color: Tuple[int, int, int]) -> Tuple[int, int, int, int]:
    return (int(color[0]), int(color[1]), int(color[2]), 255)


def depth_to_display(depth: np.ndarray, min_depth: int = 500, max_depth: int = 4500) -> np.ndarray:
    """8-bit view of a depth frame.

    Depths in range are scaled linearly to 1..255; anything outside the
    reliable range, including zero, is black.
    """
    depth = np.asarray(depth)
    span = float(max(max_depth - min_depth, 1))
    scaled = (depth.astype(np.float32) - min_depth) * (254.0 / span) + 1.0
    reliable = (depth > 0) & (depth >= min_depth) & (depth <= max_depth)
    return np.where(reliable, np.clip(scaled, 1, 255), 0).astype(np.uint8)


class SurfaceRenderer:
    """
    Draws the pipeline's view of a frame onto a copy of the colour image.

    The input frame is never modified; ``render`` returns a new BGRA image
    owned by the caller.

    Example:
        >>> renderer = SurfaceRenderer(VisualizerConfig())
        >>> snapshot = renderer.render(frames.color, phase, candidates=candidates)
        >>> cv2.imshow("Touch Surface", snapshot)
    """

    def __init__(self, config: Optional[VisualizerConfig] = None):
        self.config = config or VisualizerConfig()
        self._font = cv2.FONT_HERSHEY_SIMPLEX

    def render(
        self,
        color: np.ndarray,
        phase: PipelinePhase,
        candidates: Iterable[ShapeCandidate] = (),
        controls: Sequence[Control] = (),
        fingertip: Optional[Fingertip] = None,
        contacts: Iterable[ContactEvent] = (),
        fps: float = 0.0,
        extra_info: Optional[Dict[str, str]] = None,
    ) -> np.ndarray:
        """
        Render one snapshot.

        Args:
            color: BGRA (or BGR) colour frame
            phase: Current pipeline phase
            candidates: Shapes outlined without a class
            controls: Classified controls
            fingertip: Fingertip of this frame, if any
            contacts: Contact events of this frame
            fps: Rolling frame rate for the status line
            extra_info: Additional key-value pairs for the status line

        Returns:
            New BGRA image
        """
        if color.ndim == 3 and color.shape[2] == 4:
            image = color.copy()
        else:
            image = cv2.cvtColor(color, cv2.COLOR_GRAY2BGRA if color.ndim == 2 else cv2.COLOR_BGR2BGRA)

        if self.config.show_candidates:
            self.draw_candidates(image, candidates)

        touched = {event.control_index for event in contacts}
        self.draw_controls(image, controls, touched)

        if fingertip is not None:
            self.draw_box(image, fingertip.bounds, self.config.fingertip_color, self.config.line_thickness)

        if self.config.show_status:
            self.draw_status(image, phase, len(controls), fps, extra_info)

        return image

    def draw_box(self, image: np.ndarray, box: BoundingBox, color, thickness: int) -> np.ndarray:
        cv2.rectangle(image, (box.x, box.y), (box.right, box.bottom), _bgra(color), thickness)
        return image

    def draw_candidates(self, image: np.ndarray, candidates: Iterable[ShapeCandidate]) -> np.ndarray:
        for candidate in candidates:
            polygon = candidate.polygon.reshape(-1, 1, 2).astype(np.int32)
            cv2.polylines(image, [polygon], True, _bgra(self.config.candidate_color),
                          self.config.line_thickness)
        return image

    def draw_controls(self, image: np.ndarray, controls: Sequence[Control], touched=()) -> np.ndarray:
        for index, control in enumerate(controls):
            thickness = self.config.contact_thickness if index in touched else self.config.line_thickness
            self.draw_box(image, control.bounds, self.config.control_color(control.control_type), thickness)
        return image

    def draw_status(self, image: np.ndarray, phase: PipelinePhase, control_count: int,
                    fps: float = 0.0, extra_info: Optional[Dict[str, str]] = None) -> np.ndarray:
        if phase is PipelinePhase.CALIBRATING:
            text = "Calibrating (press c to commit)"
        else:
            text = "Running"
        text += " | Controls: %d | FPS: %.1f" % (control_count, fps)
        if extra_info:
            text += "".join(" | %s: %s" % (key, value) for key, value in extra_info.items())

        cv2.putText(image, text, (10, 25), self._font, self.config.font_scale,
                    _bgra(self.config.text_color), 1, cv2.LINE_AA)
        return image
