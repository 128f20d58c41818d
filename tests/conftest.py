"""Pytest configuration and fixtures"""
import pytest
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from fakes import FakeFetcher, make_image_bytes  # noqa: E402


@pytest.fixture
def image_bytes():
    """Factory fixture for in-memory test images"""
    return make_image_bytes


@pytest.fixture
def fake_fetcher():
    """Factory fixture for FakeFetcher"""
    return FakeFetcher


@pytest.fixture
def source_url():
    """Default origin image URL for tests"""
    return "https://images.example.com/photos/cat.png"


@pytest.fixture
def proxy_base_url():
    """Default image-proxy fallback base URL for tests"""
    return "https://proxy.example.net/proxy"
