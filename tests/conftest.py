import dns.exception
import pytest

from srvsync.configurator.controllers.base import ControllerError

from fakes import CACHE_TEMPLATE, FakeController, FakeDNSResolver


@pytest.fixture
def cache_template_source():
    return CACHE_TEMPLATE


@pytest.fixture
def fake_dns():
    return FakeDNSResolver(
        srv = {"cache.svc": [("b", 80, 0, 0), ("a", 80, 0, 0)]},
        a = {"a": ["10.0.0.1"], "b": ["10.0.0.2"]}
    )


@pytest.fixture
def controller():
    return FakeController()


@pytest.fixture
def failing_reload_controller():
    return FakeController(reload_error = ControllerError("reload failed"))


@pytest.fixture
def dns_timeout():
    return dns.exception.Timeout()
