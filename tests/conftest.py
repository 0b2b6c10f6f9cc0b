"""
Shared test fixtures.

OpenAI counting loads tiktoken encodings, which are downloaded on first
use. Tests run against a whitespace encoding instead, except those marked
with @pytest.mark.tiktoken.
"""

from unittest.mock import patch

import pytest


class WhitespaceEncoding:
    """Stand-in encoding: one token per whitespace-separated word."""

    def __init__(self, name):
        self.name = name

    def encode(self, text, disallowed_special=()):
        return text.split()


@pytest.fixture(autouse=True)
def offline_encoding(request):
    """Serve OpenAI token counts from WhitespaceEncoding."""
    if request.node.get_closest_marker("tiktoken"):
        yield None
        return
    with patch('tokentracker.providers.openai._load_encoding', side_effect=WhitespaceEncoding) as mock_load:
        yield mock_load
