"""Shared fixtures for the grading engine tests.

Builds a small karate style, its yellow belt curriculum and a testing
event with three registered participants. Builders live in
tests/factories.py so test modules can import them directly.
"""

import os
import sys

# Add project root and tests dir to path
TESTS_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(TESTS_DIR)
for _p in (PROJECT_ROOT, TESTS_DIR):
    if _p not in sys.path:
        sys.path.insert(0, _p)

import pytest

from factories import make_curriculum, make_event, make_style


@pytest.fixture
def style():
    return make_style()


@pytest.fixture
def curriculum():
    return make_curriculum()


@pytest.fixture
def event():
    return make_event()


@pytest.fixture
def lookup(curriculum):
    """Curriculum lookup that only knows the yellow belt test."""
    def _lookup(rank_id, style_id):
        if (rank_id, style_id) == ('rank-yellow', 'style-karate'):
            return [curriculum]
        return []
    return _lookup
