"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import json
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (fake Gemini client)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


def make_question(number, answered=True, options=True):
    """Build one question dict in the wire format."""
    question = {
        "questionNumber": str(number),
        "questionText": f"Question {number}?",
        "svg": None,
    }
    if options:
        question["options"] = [
            {"label": label, "text": f"Option {label}", "svg": None} for label in "ABCD"
        ]
    if answered:
        question["solution"] = {"answer": "A", "steps": ["Step 1", "Answer is A"], "svg": None}
    return question


def make_mock(numbers_per_set, total=None, continuation=None, title="Mock Test 1"):
    """
    Build a mock document dict.

    Args:
        numbers_per_set: list of sections, each a list of question sets,
            each a list of question numbers, e.g. [[[1, 2], [3]], [[4]]]
        total: examDetails.totalQuestions (omitted when None)
        continuation: continuation_needed flag (omitted when None)
    """
    doc = {
        "examTitle": title,
        "examDetails": {"timeAllotted": "60 minutes", "maxMarks": 50},
        "instructions": {"title": "Instructions", "points": ["Answer all questions"]},
        "sections": [
            {
                "sectionTitle": f"Section {s + 1}",
                "questionSets": [
                    {"type": "single", "questions": [make_question(n) for n in numbers]}
                    for numbers in sets
                ],
            }
            for s, sets in enumerate(numbers_per_set)
        ],
    }
    if total is not None:
        doc["examDetails"]["totalQuestions"] = total
    if continuation is not None:
        doc["continuation_needed"] = continuation
    return doc


@pytest.fixture
def api_keys():
    """Three valid-looking API keys."""
    return [f"AIzaSyTestKey{i:04d}abcdef" for i in range(3)]


@pytest.fixture
def complete_mock():
    """A complete 4-question mock in two sections."""
    return make_mock([[[1, 2]], [[3, 4]]], total=4)


@pytest.fixture
def complete_mock_text(complete_mock):
    return json.dumps(complete_mock)


@pytest.fixture
def mock_factory():
    """The make_mock() builder, for tests that need custom layouts."""
    return make_mock


@pytest.fixture
def question_factory():
    """The make_question() builder."""
    return make_question
