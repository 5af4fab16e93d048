"""
Shared pytest fixtures for all tests.
"""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Modules live at the repository root
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import Settings
from field_classifier import FieldClassifier
from models import CandidateRecord
from record_extractor import RecordExtractor


# =============================================================================
# Core Fixtures
# =============================================================================

@pytest.fixture
def settings():
    """Default settings, isolated from any .env in the working directory."""
    return Settings(_env_file=None)


@pytest.fixture
def classifier(settings):
    return FieldClassifier(settings)


@pytest.fixture
def extractor(settings):
    return RecordExtractor(settings)


@pytest.fixture
def fixed_now():
    return datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# Record Fixtures
# =============================================================================

def make_candidate(title="Empath and Psychic Abilities", **kwargs):
    kwargs.setdefault("observed_at", datetime(2025, 3, 1, tzinfo=timezone.utc))
    return CandidateRecord(title=title, **kwargs)


@pytest.fixture
def candidate_factory():
    return make_candidate
