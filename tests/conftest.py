"""
Shared fixtures. Qt runs on the offscreen platform so tests need no display.
"""

import os
import sys

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest
from PyQt6.QtWidgets import QApplication

from models import DiagramData
from undo import UndoManager


# Initialize QApplication for PyQt6 tests
@pytest.fixture(scope="session")
def qapp():
    app = QApplication.instance()
    if app is None:
        app = QApplication(sys.argv)
    yield app


@pytest.fixture
def history():
    """A fresh history per test, so no state leaks between tests."""
    return UndoManager()


@pytest.fixture
def diagram():
    return DiagramData()
