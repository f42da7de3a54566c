#!/usr/bin/env python3
"""
Standalone training script for the shape classifier.

Usage::

    # Train from sorted sample patches
    python -m touchsurface.training.train_classifier

    # With custom options
    python -m touchsurface.training.train_classifier --samples-dir data/shape_samples --output-dir models

The samples directory holds one sub-directory per control type::

    data/shape_samples/square/*.png
    data/shape_samples/circle/*.png
    data/shape_samples/slider/*.png

After training, the following files are saved to the output directory:
    - shape_svm.yml                (OpenCV SVM model)
    - shape_svm.descriptor.yaml    (HOG layout the model was trained with)
"""

import os
import time
import logging
import argparse
from typing import Dict, List, Tuple

import cv2
import numpy as np

from ..recognition.shape_classifier import DescriptorConfig, ShapeClassifier, ShapeClassifierConfig
from ..types import ControlType
from ..utils.config import get_value, load_config
from ..utils.logger import setup_logging

logger = logging.getLogger(__name__)

MODEL_FILENAME = "shape_svm.yml"
IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".bmp")


def class_directories(samples_dir: str) -> Dict[ControlType, str]:
    """Sub-directory of ``samples_dir`` for every control type."""
    return {control_type: os.path.join(samples_dir, control_type.name.lower())
            for control_type in ControlType}


def load_samples(samples_dir: str, patch_size: int = 128) -> Tuple[List[np.ndarray], List[int]]:
    """Read labelled patches as grey ``patch_size`` squares.

    Returns:
        (patches, labels) with labels taken from ``ControlType`` values
    """
    patches, labels = [], []
    for control_type, class_dir in class_directories(samples_dir).items():
        if not os.path.isdir(class_dir):
            logger.warning("No samples for %s (%s missing)", control_type.name.lower(), class_dir)
            continue

        count = 0
        for name in sorted(os.listdir(class_dir)):
            if not name.lower().endswith(IMAGE_EXTENSIONS):
                continue
            image = cv2.imread(os.path.join(class_dir, name), cv2.IMREAD_GRAYSCALE)
            if image is None:
                logger.warning("Skipping unreadable sample %s", name)
                continue
            if image.shape != (patch_size, patch_size):
                image = cv2.resize(image, (patch_size, patch_size), interpolation=cv2.INTER_AREA)
            patches.append(image)
            labels.append(control_type.value)
            count += 1
        logger.info("  %-7s %d samples", control_type.name.lower(), count)

    return patches, labels


def confusion_matrix(classifier: ShapeClassifier, patches, labels) -> np.ndarray:
    n = len(ControlType)
    matrix = np.zeros((n, n), dtype=np.int32)
    for patch, label in zip(patches, labels):
        predicted = classifier.predict_patch(patch)
        if predicted is not None:
            matrix[label, predicted.value] += 1
    return matrix


def print_confusion_matrix(matrix: np.ndarray) -> None:
    names = [t.name.lower() for t in ControlType]
    logger.info("%10s %s", "", " ".join("%8s" % n for n in names))
    for name, row in zip(names, matrix):
        logger.info("%10s %s", name, " ".join("%8d" % v for v in row))


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Train the shape classifier")
    parser.add_argument("--samples-dir", default="data/shape_samples",
                        help="Directory with square/, circle/ and slider/ sample folders")
    parser.add_argument("--output-dir", default="models",
                        help="Directory to save the trained model")
    parser.add_argument("--config", default=None,
                        help="Config file providing classifier.descriptor and svm_c")
    parser.add_argument("--svm-c", type=float, default=None,
                        help="SVM margin parameter C (overrides config)")
    return parser.parse_args(argv)


def train(samples_dir: str, output_dir: str, config: ShapeClassifierConfig) -> Tuple[str, float]:
    """Train and save a model. Returns (model path, training accuracy).

    Raises:
        ValueError: not enough samples to train
    """
    classifier = ShapeClassifier(config)
    logger.info("Loading samples from %s", samples_dir)
    patches, labels = load_samples(samples_dir, classifier.descriptor.patch_size)
    if not patches:
        raise ValueError("No training samples found under %s" % samples_dir)

    accuracy = classifier.fit(patches, labels)
    print_confusion_matrix(confusion_matrix(classifier, patches, labels))

    model_path = classifier.save(os.path.join(output_dir, MODEL_FILENAME))
    return model_path, accuracy


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging("INFO")

    config_dict = load_config(args.config) if args.config else {}
    classifier_config = ShapeClassifierConfig.from_dict(get_value(config_dict, "classifier", {}) or {})
    if classifier_config.descriptor is None:
        classifier_config.descriptor = DescriptorConfig()
    if args.svm_c is not None:
        classifier_config.svm_c = args.svm_c

    start_time = time.time()
    try:
        model_path, accuracy = train(args.samples_dir, args.output_dir, classifier_config)
    except ValueError as e:
        logger.error("Training failed: %s", e)
        return 1

    logger.info("=" * 60)
    logger.info("Training complete in %.1f seconds", time.time() - start_time)
    logger.info("Training accuracy: %.4f", accuracy)
    logger.info("Model saved to: %s", model_path)
    logger.info("=" * 60)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
