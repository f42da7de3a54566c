"""
Structured logging with contact event logging.
"""

import os
import logging
import logging.handlers
import time
from functools import wraps


def setup_logging(level="INFO", log_file=None, max_size_mb=10, backup_count=3):
    """Configure structured logging for the application."""
    console_format = "%(asctime)s  %(levelname)-5s  %(message)s"
    file_format = "%(asctime)s [%(levelname)-7s] %(name)-25s | %(message)s"
    date_format = "%H:%M:%S"

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    root_logger.handlers.clear()

    console = logging.StreamHandler()
    console.setLevel(root_logger.level)
    console.setFormatter(logging.Formatter(console_format, datefmt=date_format))
    root_logger.addHandler(console)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(file_format, datefmt=date_format))
        root_logger.addHandler(file_handler)

    return root_logger


class ContactLogger:
    """Records contact events for later inspection."""

    def __init__(self, max_history: int = 1000):
        self.logger = logging.getLogger("contact_events")
        self._history = []
        self._max_history = max_history

    def log_contact(self, event):
        """Log a ContactEvent."""
        entry = {
            "timestamp": event.timestamp,
            "control_index": event.control_index,
            "control_type": event.control.control_type.name.lower(),
            "difference": event.difference,
        }
        self._history.append(entry)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history:]
        self.logger.info(
            "Contact: control %-3d | %-7s | depth diff %+.1f mm",
            event.control_index,
            entry["control_type"],
            event.difference,
        )

    def log_calibration(self, summary):
        """Log a committed calibration summary."""
        self.logger.info(
            "Calibrated: %d squares, %d circles, %d sliders",
            summary.squares, summary.circles, summary.sliders,
        )

    def get_history(self, last_n=None):
        """Get recent contact history."""
        if last_n:
            return self._history[-last_n:]
        return self._history.copy()

    @property
    def total_contacts(self):
        return len(self._history)


def log_timing(func):
    """Decorator to log function execution time."""
    logger = logging.getLogger(func.__module__)

    @wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        result = func(*args, **kwargs)
        elapsed = (time.perf_counter() - start) * 1000
        logger.debug("%s took %.2fms", func.__name__, elapsed)
        return result

    return wrapper
