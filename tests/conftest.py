import os
import sys

# Ensure project root is on sys.path so top-level modules import in tests
ROOT = os.path.dirname(os.path.abspath(__file__))
PROJ = os.path.abspath(os.path.join(ROOT, os.pardir))
if PROJ not in sys.path:
    sys.path.insert(0, PROJ)


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "slow: spawns worker subprocesses (deselect with '-m \"not slow\"')",
    )
