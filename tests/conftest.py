"""
Pytest configuration and fixtures for P2P Chat tests.

Created by orpheus497

Provides common fixtures and test utilities for unit and integration tests.
"""

import shutil
import socket
import tempfile
from pathlib import Path
from typing import Generator

import pytest


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for test data.

    Yields:
        Path: Temporary directory path

    Cleanup:
        Automatically removes directory after test
    """
    tmp = Path(tempfile.mkdtemp(prefix="p2pchat_test_"))
    try:
        yield tmp
    finally:
        shutil.rmtree(tmp, ignore_errors=True)


def _ipv6_loopback_available() -> bool:
    if not socket.has_ipv6:
        return False
    try:
        with socket.socket(socket.AF_INET6, socket.SOCK_STREAM) as sock:
            sock.bind(("::1", 0))
    except OSError:
        return False
    return True


@pytest.fixture(scope="session")
def ipv6_loopback() -> str:
    """
    Loopback address for socket tests.

    Skips the test on hosts without IPv6 loopback.
    """
    if not _ipv6_loopback_available():
        pytest.skip("IPv6 loopback not available")
    return "::1"


@pytest.fixture
def sample_peer() -> dict:
    """
    Provide a sample peer address and its join code.

    Returns:
        dict: Address, port and code
    """
    return {
        'address': '::1',
        'port': 5000,
        'code': 'AAAAAAAAAAAAAAAAAAAAAROI',
    }


# Pytest marks
def pytest_configure(config):
    """
    Configure pytest markers.

    Args:
        config: Pytest configuration object
    """
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


# Test collection hooks
def pytest_collection_modifyitems(config, items):
    """
    Modify test collection to add markers based on test location.

    Args:
        config: Pytest configuration
        items: List of collected test items
    """
    for item in items:
        # Add unit marker to tests in unit/ directory
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

        # Socket tests talk over real loopback connections
        if "test_network" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
