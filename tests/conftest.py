"""Shared fixtures, pytest markers, and env-var-based skip logic."""

import os

import pytest


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "e2e: needs real serial devices or a broker (SELENE_TEST_E2E=1)"
    )


def pytest_collection_modifyitems(config, items):
    # e2e is opt-in; set SELENE_TEST_E2E=1 to enable
    for item in items:
        if "e2e" in item.keywords and not os.environ.get("SELENE_TEST_E2E"):
            item.add_marker(
                pytest.mark.skip(reason="Set SELENE_TEST_E2E=1 to run")
            )
