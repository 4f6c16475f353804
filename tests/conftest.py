"""Shared fixtures for the docgraph test suite."""

import pytest

from docgraph.config import get_settings
from docgraph.node import discard_notifications
from docgraph.registry import registry

import fakes


@pytest.fixture(autouse=True)
def reset_state():
    """Drop cached schemas, validators, settings and queued notifications around every test."""
    get_settings.cache_clear()
    registry.reset()
    discard_notifications()
    yield
    discard_notifications()
    registry.reset()
    get_settings.cache_clear()


@pytest.fixture
def gallery_schema() -> fakes.FakeSchema:
    return fakes.Gallery.definition()


@pytest.fixture
def image_schema() -> fakes.FakeSchema:
    return fakes.Image.definition()


@pytest.fixture
def image_tag_schema() -> fakes.FakeSchema:
    return fakes.ImageTag.definition()


@pytest.fixture
def tag_schema() -> fakes.FakeSchema:
    return fakes.Tag.definition()
