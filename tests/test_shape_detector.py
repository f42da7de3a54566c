"""
Tests for Shape Candidate Detection
====================================
"""

import math

import pytest
import cv2
import numpy as np
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from touchsurface.detection.shape_detector import (
    ShapeCandidateDetector, ShapeDetectorConfig, _drop_twins, to_gray,
)
from touchsurface.types import BoundingBox, ShapeCandidate

BLACK = (0, 0, 0, 255)


def blank(width=200, height=200):
    """White BGRA canvas."""
    return np.full((height, width, 4), 255, dtype=np.uint8)


def star_points(center, outer, inner, spikes):
    cx, cy = center
    points = []
    for i in range(spikes * 2):
        radius = outer if i % 2 == 0 else inner
        angle = math.pi * i / spikes
        points.append((int(cx + radius * math.cos(angle)), int(cy + radius * math.sin(angle))))
    return np.array(points, dtype=np.int32)


class TestShapeDetectorConfig:
    def test_defaults(self):
        config = ShapeDetectorConfig()

        assert config.min_vertices == 4
        assert config.max_vertices == 19
        assert config.min_size == 20
        assert config.retrieval == "list"
        assert config.twin_margin == 10

    def test_from_dict_partial(self):
        config = ShapeDetectorConfig.from_dict({"min_size": 40, "retrieval": "external"})

        assert config.min_size == 40
        assert config.retrieval == "external"
        assert config.epsilon_ratio == 0.01

    def test_unknown_retrieval_falls_back(self):
        detector = ShapeCandidateDetector(ShapeDetectorConfig(retrieval="tree"))
        assert detector.config.retrieval == "list"


class TestShapeCandidateDetector:
    """Test suite for ShapeCandidateDetector."""

    @pytest.fixture
    def detector(self):
        return ShapeCandidateDetector()

    def test_square_is_one_candidate(self, detector):
        image = blank()
        cv2.rectangle(image, (50, 50), (149, 149), BLACK, -1)

        candidates = detector.detect_candidates(image)

        assert len(candidates) == 1
        candidate = candidates[0]
        assert candidate.vertex_count == 4
        assert abs(candidate.bounds.width - 100) <= 4
        assert abs(candidate.bounds.height - 100) <= 4
        assert abs(candidate.bounds.x - 50) <= 3

    def test_outlined_square_is_one_candidate(self, detector):
        image = blank()
        cv2.rectangle(image, (40, 40), (120, 120), BLACK, 3)

        assert len(detector.detect_candidates(image)) == 1

    def test_small_square_rejected(self, detector):
        image = blank()
        cv2.rectangle(image, (50, 50), (59, 59), BLACK, -1)

        assert detector.detect_candidates(image) == []

    def test_star_has_too_many_vertices(self, detector):
        image = blank(300, 300)
        cv2.fillPoly(image, [star_points((150, 150), 120, 60, 15)], BLACK)

        assert detector.detect_candidates(image) == []

    def test_circle_is_a_candidate(self, detector):
        image = blank()
        cv2.circle(image, (100, 100), 50, BLACK, -1)

        candidates = detector.detect_candidates(image)

        assert len(candidates) == 1
        assert 5 <= candidates[0].vertex_count <= 19

    def test_two_squares(self, detector):
        image = blank()
        cv2.rectangle(image, (20, 20), (70, 70), BLACK, -1)
        cv2.rectangle(image, (120, 120), (170, 170), BLACK, -1)

        assert len(detector.detect_candidates(image)) == 2

    def test_controls_inside_sheet_outline(self, detector):
        image = blank(300, 300)
        cv2.rectangle(image, (10, 10), (289, 289), BLACK, 3)
        cv2.rectangle(image, (60, 60), (120, 120), BLACK, -1)
        cv2.rectangle(image, (170, 170), (230, 230), BLACK, -1)

        boxes = [c.bounds for c in detector.detect_candidates(image)]

        assert len(boxes) == 3
        controls = [b for b in boxes if b.width < 100]
        assert len(controls) == 2
        xs = sorted(b.x for b in controls)
        assert abs(xs[0] - 60) <= 3
        assert abs(xs[1] - 170) <= 3
        sheet = [b for b in boxes if b.width > 250]
        assert len(sheet) == 1

    def test_external_mode_hides_nested_controls(self):
        detector = ShapeCandidateDetector(ShapeDetectorConfig(retrieval="external"))
        image = blank(300, 300)
        cv2.rectangle(image, (10, 10), (289, 289), BLACK, 3)
        cv2.rectangle(image, (60, 60), (120, 120), BLACK, -1)

        assert len(detector.detect_candidates(image)) == 1

    def test_thick_outline_keeps_outermost_ring(self, detector):
        image = blank()
        cv2.rectangle(image, (40, 40), (140, 140), BLACK, 5)

        candidates = detector.detect_candidates(image)

        assert len(candidates) == 1
        assert candidates[0].bounds.x <= 39
        assert candidates[0].bounds.width >= 101

    def test_blank_frame(self, detector):
        assert detector.detect_candidates(blank()) == []

    def test_detect_returns_edge_map(self, detector):
        image = blank()
        cv2.rectangle(image, (50, 50), (149, 149), BLACK, -1)

        candidates, edges = detector.detect(image)

        assert edges.shape == (200, 200)
        assert edges.dtype == np.uint8
        assert edges.max() == 255

    def test_polygon_layout(self, detector):
        image = blank()
        cv2.rectangle(image, (50, 50), (149, 149), BLACK, -1)

        polygon = detector.detect_candidates(image)[0].polygon

        assert polygon.shape == (4, 2)
        assert polygon.dtype == np.int32

    def test_input_not_modified(self, detector):
        image = blank()
        cv2.rectangle(image, (50, 50), (149, 149), BLACK, -1)
        before = image.copy()

        detector.detect(image)

        assert np.array_equal(image, before)

    def test_accepts_bgr(self, detector):
        image = np.full((200, 200, 3), 255, dtype=np.uint8)
        cv2.rectangle(image, (50, 50), (149, 149), (0, 0, 0), -1)

        assert len(detector.detect_candidates(image)) == 1


class TestDropTwins:
    @staticmethod
    def candidate(x, y, w, h):
        polygon = np.array([[x, y], [x + w, y], [x + w, y + h], [x, y + h]], dtype=np.int32)
        return ShapeCandidate(polygon=polygon, bounds=BoundingBox(x, y, w, h))

    def test_inner_ring_merged_into_outer(self):
        outer = self.candidate(10, 10, 100, 100)
        inner = self.candidate(13, 13, 94, 94)

        kept = _drop_twins([inner, outer], margin=10)

        assert [c.bounds for c in kept] == [outer.bounds]

    def test_nested_control_is_kept(self):
        sheet = self.candidate(0, 0, 280, 280)
        control = self.candidate(50, 50, 60, 60)

        kept = _drop_twins([sheet, control], margin=10)

        assert [c.bounds for c in kept] == [sheet.bounds, control.bounds]

    def test_identical_boxes_keep_first(self):
        first = self.candidate(10, 10, 50, 50)
        second = self.candidate(10, 10, 50, 50)

        kept = _drop_twins([first, second], margin=10)

        assert len(kept) == 1
        assert kept[0] is first

    def test_side_by_side_not_twins(self):
        left = self.candidate(0, 0, 50, 50)
        right = self.candidate(55, 0, 50, 50)

        assert len(_drop_twins([left, right], margin=10)) == 2


class TestToGray:
    def test_bgra(self):
        assert to_gray(blank(10, 8)).shape == (8, 10)

    def test_gray_passthrough(self):
        gray = np.zeros((8, 10), dtype=np.uint8)
        assert to_gray(gray) is gray


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
