"""Fixtures for end-to-end dispatch tests"""
import pytest

from src.dispatcher import UpdateDispatcher


@pytest.fixture
def dispatcher(services):
    return UpdateDispatcher(services)
