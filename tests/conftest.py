"""
pytest configuration for btk-check tests

This file ensures tests can find the btk_check module regardless of environment
"""

import sys
from pathlib import Path

# Add parent directory to path so tests can import btk_check
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

# Shared fakes live next to this file
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))
