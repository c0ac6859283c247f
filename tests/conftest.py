"""
Shared pytest fixtures for bracket engine tests.

Running tests:
    pytest tests/                  - full suite
    pytest tests/ -m "not slow"   - skip exhaustive field-size sweeps
"""
import pytest
import sys
import os

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from bracket_engine.models import Entrant
from bracket_engine.service import TournamentService
from bracket_engine.store import MemoryStore, YamlStore


@pytest.fixture
def eight_seeds():
    """Team names in seed order 1..8."""
    return [f"Team {i}" for i in range(1, 9)]


@pytest.fixture
def eight_players():
    """Individual players in seed order."""
    return ['Ana', 'Ben', 'Cy', 'Dee', 'Eli', 'Fay', 'Gus', 'Hal']


@pytest.fixture
def entrants_by_id():
    return {
        'e1': Entrant('e1', 'One', 1),
        'e2': Entrant('e2', 'Two', 2),
        'e3': Entrant('e3', 'Three', 3),
        'e4': Entrant('e4', 'Four', 4),
    }


@pytest.fixture
def memory_service():
    return TournamentService(MemoryStore())


@pytest.fixture
def yaml_service(tmp_path):
    return TournamentService(YamlStore(str(tmp_path / 'store')))

