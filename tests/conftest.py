"""Shared pytest configuration."""

import pytest

from questboard.services import vision_classifier


@pytest.fixture(autouse=True)
def reset_classifier_singleton():
    """Each test starts without a cached classifier instance."""
    vision_classifier._ClassifierState.instance = None
    yield
    vision_classifier._ClassifierState.instance = None
