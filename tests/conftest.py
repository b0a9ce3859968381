"""
Shared test fixtures and configuration for pytest.
"""

import logging
import sys
from pathlib import Path

import pytest

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gardensync.photos import PhotoLocker, PrivateDirectoryBackend  # noqa: E402
from gardensync.remote import InMemoryDocumentStore, RemoteMirrorClient, StaticSession  # noqa: E402
from gardensync.storage import MemoryKeyValueStore, SerializedLocalStore  # noqa: E402


logger = logging.getLogger(__name__)


# ============================================================================
# Pytest hooks
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "concurrency: Tests that exercise worker threads")
    config.addinivalue_line("markers", "slow: Tests that take a long time to run")


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def no_sleep():
    """A sleep function that records requested delays instead of sleeping."""
    delays = []

    def sleep(seconds):
        delays.append(seconds)

    sleep.delays = delays
    return sleep


@pytest.fixture
def kv_backend():
    """Fixture providing an empty in-memory key/value backend."""
    return MemoryKeyValueStore()


@pytest.fixture
def local_store(kv_backend, no_sleep):
    """Fixture providing a serialized local store over an in-memory backend."""
    store = SerializedLocalStore(kv_backend, sleep=no_sleep)
    yield store
    store.close(timeout=5)


@pytest.fixture
def photos_dir(tmp_path) -> Path:
    path = tmp_path / "photos"
    path.mkdir()
    return path


@pytest.fixture
def locker(photos_dir):
    """Fixture providing a photo locker over a private photo directory."""
    return PhotoLocker(PrivateDirectoryBackend(photos_dir))


@pytest.fixture
def session():
    """Fixture providing a signed-in session."""
    return StaticSession("user-1", token="token-1")


@pytest.fixture
def document_store():
    return InMemoryDocumentStore()


@pytest.fixture
def mirror(document_store, session, no_sleep):
    """Fixture providing a mirror client over an in-memory document store."""
    client = RemoteMirrorClient(
        document_store,
        session,
        timeout_ms=2000,
        max_retries=2,
        base_delay_ms=10,
        sleep=no_sleep,
    )
    yield client
    client.close()


@pytest.fixture
def sample_image(tmp_path) -> Path:
    """Fixture providing a small fake JPEG on disk."""
    path = tmp_path / "picked.jpg"
    path.write_bytes(b"\xff\xd8\xff\xe0fake-jpeg-bytes")
    return path
