"""
Shape Classifier
=================

HOG + linear SVM recognizer that turns a shape candidate into a control
type (square, circle, slider).

The HOG descriptor settings are part of the model: features computed with a
different window, block, cell or stride layout are meaningless to a trained
SVM. The descriptor is therefore saved in a YAML sidecar next to the model
and checked on load.

Without a usable model the classifier reports itself unavailable and the
pipeline falls back to outlining candidates without registering controls.
"""

import os
import logging
from dataclasses import asdict, dataclass
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np
import yaml

from ..types import BoundingBox, ControlType, ShapeCandidate
from ..detection.shape_detector import to_gray

logger = logging.getLogger(__name__)

SIDECAR_SUFFIX = ".descriptor.yaml"


@dataclass(frozen=True)
class DescriptorConfig:
    """HOG layout and canonical patch size. Must match between training and inference."""
    patch_size: int = 128
    win_size: Tuple[int, int] = (32, 32)
    block_size: Tuple[int, int] = (4, 4)
    block_stride: Tuple[int, int] = (2, 2)
    cell_size: Tuple[int, int] = (4, 4)
    nbins: int = 9
    win_stride: Tuple[int, int] = (16, 16)
    padding: Tuple[int, int] = (0, 0)

    @classmethod
    def from_dict(cls, config: dict) -> "DescriptorConfig":
        defaults = cls()
        return cls(
            patch_size=int(config.get("patch_size", defaults.patch_size)),
            win_size=tuple(config.get("win_size", defaults.win_size)),
            block_size=tuple(config.get("block_size", defaults.block_size)),
            block_stride=tuple(config.get("block_stride", defaults.block_stride)),
            cell_size=tuple(config.get("cell_size", defaults.cell_size)),
            nbins=int(config.get("nbins", defaults.nbins)),
            win_stride=tuple(config.get("win_stride", defaults.win_stride)),
            padding=tuple(config.get("padding", defaults.padding)),
        )

    def to_dict(self) -> dict:
        return {key: list(value) if isinstance(value, tuple) else value
                for key, value in asdict(self).items()}


@dataclass
class ShapeClassifierConfig:
    """Shape classifier configuration."""
    model_path: str = "models/shape_svm.yml"
    inflate_ratio: float = 0.1
    # None: use whatever descriptor the model was trained with
    descriptor: Optional[DescriptorConfig] = None
    svm_c: float = 1.0

    @classmethod
    def from_dict(cls, config: dict) -> "ShapeClassifierConfig":
        descriptor = config.get("descriptor")
        return cls(
            model_path=config.get("model_path", "models/shape_svm.yml"),
            inflate_ratio=config.get("inflate_ratio", 0.1),
            descriptor=DescriptorConfig.from_dict(descriptor) if descriptor else None,
            svm_c=config.get("svm_c", 1.0),
        )


def sidecar_path(model_path: str) -> str:
    """Descriptor sidecar written next to a model file."""
    root, _ = os.path.splitext(model_path)
    return root + SIDECAR_SUFFIX


class ShapeClassifier:
    """
    Classifies shape candidates into control types.

    Example:
        >>> classifier = ShapeClassifier(ShapeClassifierConfig(model_path="models/shape_svm.yml"))
        >>> classifier.load()
        >>> if classifier.is_available:
        ...     control_type = classifier.classify(candidate, edges)
    """

    def __init__(self, config: Optional[ShapeClassifierConfig] = None):
        self.config = config or ShapeClassifierConfig()
        self.descriptor = self.config.descriptor or DescriptorConfig()
        self._hog = self._build_hog(self.descriptor)
        self._svm = None

    @staticmethod
    def _build_hog(descriptor: DescriptorConfig) -> cv2.HOGDescriptor:
        return cv2.HOGDescriptor(
            tuple(descriptor.win_size),
            tuple(descriptor.block_size),
            tuple(descriptor.block_stride),
            tuple(descriptor.cell_size),
            descriptor.nbins,
        )

    def _set_descriptor(self, descriptor: DescriptorConfig) -> None:
        self.descriptor = descriptor
        self._hog = self._build_hog(descriptor)

    @property
    def is_available(self) -> bool:
        """True once a trained model is loaded or fitted."""
        return self._svm is not None

    # ------------------------------------------------------------------
    # Model persistence
    # ------------------------------------------------------------------

    def load(self, model_path: Optional[str] = None) -> bool:
        """Load a trained model and check its descriptor.

        Returns:
            True if a usable model is loaded. Failure is logged, never raised.
        """
        model_path = model_path or self.config.model_path
        self._svm = None

        if not os.path.isfile(model_path):
            logger.warning("No shape model at %s; candidates will be outlined only", model_path)
            return False

        meta_path = sidecar_path(model_path)
        try:
            with open(meta_path, "r") as f:
                stored = DescriptorConfig.from_dict(yaml.safe_load(f) or {})
        except FileNotFoundError:
            logger.error("Descriptor sidecar %s missing; refusing model %s", meta_path, model_path)
            return False

        if self.config.descriptor is not None and stored != self.config.descriptor:
            logger.error("Model %s was trained with %s but %s is configured; refusing model",
                         model_path, stored, self.config.descriptor)
            return False

        try:
            svm = cv2.ml.SVM_load(model_path)
        except cv2.error as e:
            logger.error("Failed to load shape model %s: %s", model_path, e)
            return False
        if svm is None or not svm.isTrained():
            logger.error("Shape model %s is not trained", model_path)
            return False

        self._set_descriptor(stored)
        self._svm = svm
        logger.info("Shape model loaded from %s (patch %dpx, %d features)",
                    model_path, stored.patch_size, self.feature_length)
        return True

    def save(self, model_path: Optional[str] = None) -> str:
        """Write the model and its descriptor sidecar."""
        if self._svm is None:
            raise RuntimeError("No trained model to save")
        model_path = model_path or self.config.model_path
        model_dir = os.path.dirname(model_path)
        if model_dir:
            os.makedirs(model_dir, exist_ok=True)

        self._svm.save(model_path)
        with open(sidecar_path(model_path), "w") as f:
            yaml.safe_dump(self.descriptor.to_dict(), f, default_flow_style=None)
        logger.info("Shape model saved to %s", model_path)
        return model_path

    # ------------------------------------------------------------------
    # Features
    # ------------------------------------------------------------------

    @property
    def feature_length(self) -> int:
        d = self.descriptor
        windows_x = (d.patch_size + 2 * d.padding[0] - d.win_size[0]) // d.win_stride[0] + 1
        windows_y = (d.patch_size + 2 * d.padding[1] - d.win_size[1]) // d.win_stride[1] + 1
        return int(self._hog.getDescriptorSize()) * windows_x * windows_y

    def preprocess(self, bounds: BoundingBox, scene: np.ndarray) -> Optional[np.ndarray]:
        """Canonical patch: inflated, clipped, cropped and resized.

        Returns None when the box falls entirely outside the scene.
        """
        height, width = scene.shape[:2]
        box = BoundingBox(*bounds)
        box = box.inflate(int(box.width * self.config.inflate_ratio),
                          int(box.height * self.config.inflate_ratio))
        box = box.clip(width, height)
        if box.area == 0:
            return None

        patch = to_gray(scene[box.y:box.bottom, box.x:box.right])
        size = self.descriptor.patch_size
        return cv2.resize(patch, (size, size), interpolation=cv2.INTER_AREA)

    def extract_features(self, patch: np.ndarray) -> np.ndarray:
        """Fixed-length HOG vector of a canonical patch."""
        size = self.descriptor.patch_size
        if patch.shape[:2] != (size, size):
            patch = cv2.resize(patch, (size, size), interpolation=cv2.INTER_AREA)
        patch = to_gray(patch)
        features = self._hog.compute(
            patch,
            winStride=tuple(self.descriptor.win_stride),
            padding=tuple(self.descriptor.padding),
        )
        return np.asarray(features, dtype=np.float32).reshape(-1)

    # ------------------------------------------------------------------
    # Inference
    # ------------------------------------------------------------------

    def predict_patch(self, patch: np.ndarray) -> Optional[ControlType]:
        """Classify a canonical patch. None for labels outside the control set."""
        if self._svm is None:
            return None
        features = self.extract_features(patch).reshape(1, -1)
        _, result = self._svm.predict(features)
        label = int(round(float(result.ravel()[0])))
        return ControlType.from_label(label)

    def classify(self, candidate: ShapeCandidate, scene: np.ndarray) -> Optional[ControlType]:
        """Control type of a candidate, or None if unknown or no model is loaded."""
        if self._svm is None:
            return None
        patch = self.preprocess(candidate.bounds, scene)
        if patch is None:
            return None
        control_type = self.predict_patch(patch)
        if control_type is None:
            logger.debug("Candidate %r classified as unknown", candidate.bounds)
        return control_type

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def fit(self, patches: Sequence[np.ndarray], labels: Sequence[int]) -> float:
        """Train a linear C-SVC on canonical patches.

        Returns:
            Accuracy on the training set
        """
        if len(patches) == 0 or len(patches) != len(labels):
            raise ValueError("Need the same, non-zero number of patches and labels")
        if len(set(int(label) for label in labels)) < 2:
            raise ValueError("Need samples from at least two shape classes")

        samples = np.vstack([self.extract_features(p) for p in patches]).astype(np.float32)
        responses = np.asarray(labels, dtype=np.int32).reshape(-1, 1)

        svm = cv2.ml.SVM_create()
        svm.setType(cv2.ml.SVM_C_SVC)
        svm.setKernel(cv2.ml.SVM_LINEAR)
        svm.setC(self.config.svm_c)
        svm.setTermCriteria((cv2.TERM_CRITERIA_MAX_ITER + cv2.TERM_CRITERIA_EPS, 1000, 1e-6))
        svm.train(samples, cv2.ml.ROW_SAMPLE, responses)
        self._svm = svm

        _, predicted = svm.predict(samples)
        accuracy = float(np.mean(predicted.ravel().astype(np.int32) == responses.ravel()))
        logger.info("Trained shape SVM on %d samples (%d features), training accuracy %.3f",
                    len(patches), samples.shape[1], accuracy)
        return accuracy


