"""Test configuration for ensuring package imports."""

import os
import sys

# Add the repository root to ``sys.path`` so ``skillswap`` imports without an install.
ROOT_DIR = os.path.abspath(os.path.dirname(__file__))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)
