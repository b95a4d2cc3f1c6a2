"""Shared fixtures: a headless Qt core application and isolated settings."""
from __future__ import annotations

import pytest
from PyQt6.QtCore import QCoreApplication

from settings import SettingsManager, reset_settings


@pytest.fixture(scope="session")
def qapp():
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path):
    """Every test gets default settings backed by a throwaway directory."""
    manager = SettingsManager(settings_dir=tmp_path / "config")
    reset_settings(manager)
    yield manager
    reset_settings(None)
