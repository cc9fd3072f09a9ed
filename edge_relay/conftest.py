import pytest

from edge_relay.utils_tests.fake_backend import make_config


@pytest.fixture
def relay_config():
    """ProxyConfig pointing at the fake backend origin."""
    return make_config()
