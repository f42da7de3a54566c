#!/usr/bin/env python3
"""
Touch Surface - depth-camera touch panel
Application launcher for running from a source checkout.

Usage:
    python main.py                          # OpenNI sensor
    python main.py --image table.png        # Still image, no sensor needed
    python main.py --save-samples           # Collect classifier training patches
    python main.py --config my_config.yaml --debug
"""

import os
import sys

# Add src to path
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, os.path.join(PROJECT_ROOT, "src"))

from touchsurface.main import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
