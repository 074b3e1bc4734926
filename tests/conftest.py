import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)


@pytest.fixture(autouse=True)
def _fresh_session_store():
    """Give every test its own in-memory session store."""
    from src.codewriter.infrastructure import session_store

    session_store.reset_session_store(session_store.InMemorySessionStore())
    yield
    session_store.reset_session_store(None)
