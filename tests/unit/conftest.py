"""Shared fixtures for scoring unit tests."""

import pytest

from recdedup.engine import DedupConfig
from recdedup.scoring import MatchScorer


@pytest.fixture
def scorer(config: DedupConfig) -> MatchScorer:
    """Match scorer over the default test configuration."""
    return MatchScorer(config)
