"""
Shape Sample Collector
=======================

Saves the canonical patches of shape candidates so they can be sorted
into per-class folders and used to train the shape classifier.
"""

import logging
import uuid
from pathlib import Path
from typing import Iterable

import cv2
import numpy as np

logger = logging.getLogger(__name__)


class ShapeSampleWriter:
    """
    Writes candidate patches as PNG files under ``output_dir``.

    Files get random names; move them into ``square/``, ``circle/`` or
    ``slider/`` before training.

    Example:
        >>> writer = ShapeSampleWriter("data/shape_samples", enabled=True)
        >>> writer.save_all(candidates, edges, classifier)
    """

    def __init__(self, output_dir: str = "data/shape_samples", enabled: bool = False,
                 prefix: str = "shape_sample_"):
        self.output_dir = Path(output_dir)
        self.enabled = enabled
        self.prefix = prefix
        self._saved = 0

    def toggle(self) -> bool:
        self.enabled = not self.enabled
        logger.info("Shape sample capture %s", "on" if self.enabled else "off")
        return self.enabled

    @property
    def saved_count(self) -> int:
        return self._saved

    def save_patch(self, patch: np.ndarray) -> Path:
        """Save one canonical patch and return its path."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / ("%s%s.png" % (self.prefix, uuid.uuid4().hex[:12]))
        if not cv2.imwrite(str(path), patch):
            raise IOError("Could not write sample %s" % path)
        self._saved += 1
        return path

    def save_all(self, candidates: Iterable, scene: np.ndarray, classifier) -> int:
        """Save the preprocessed patch of every candidate. Returns how many were saved.

        A patch that cannot be written is skipped with a warning; storage
        problems never stop calibration.
        """
        saved = 0
        for candidate in candidates:
            patch = classifier.preprocess(candidate.bounds, scene)
            if patch is None:
                continue
            try:
                self.save_patch(patch)
            except OSError as e:
                logger.warning("Shape sample not saved: %s", e)
                continue
            saved += 1
        if saved:
            logger.debug("Saved %d shape samples to %s", saved, self.output_dir)
        return saved
