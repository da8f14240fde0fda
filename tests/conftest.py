"""Pytest conftest: path setup so tests can import leaderboard_bot and helpers."""

import sys
from pathlib import Path

# Repo root, so `import leaderboard_bot` works without installing.
ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

# tests/, so `from helpers import ...` works
TESTS_DIR = Path(__file__).resolve().parent
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))
