"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
Every test that touches the store gets its own SQLite file under tmp_path.
"""
import sys
from datetime import datetime
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (require database)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def db_url(tmp_path):
    """File-backed SQLite database private to one test."""
    return f"sqlite:///{tmp_path / 'v2e_notes.db'}"


@pytest.fixture
def engine(db_url):
    """Engine with all tables created."""
    from src.db.database import create_store_engine, init_db

    engine = create_store_engine(db_url, busy_timeout=30)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    from src.db.database import make_session_factory

    return make_session_factory(engine)


@pytest.fixture
def sm2_config():
    from src.learning.sm2 import SM2Config

    return SM2Config()


@pytest.fixture
def services(session_factory, sm2_config):
    """All learning services bound to the test database."""
    from src.learning.container import LearningServices

    return LearningServices.create(session_factory, sm2_config)


@pytest.fixture
def bookmark_with_card(services):
    """A freshly created CVE bookmark and its auto-created card."""
    return services.bookmarks.create_bookmark(
        "g-1", "CVE", "CVE-2024-0001", "Heap overflow in parser", "Bounds check missing"
    )


@pytest.fixture
def now():
    return datetime(2024, 5, 1, 12, 0, 0)
