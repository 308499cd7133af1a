# pyright: reportUnknownParameterType=false, reportUnknownMemberType=false
# pyright: reportPrivateUsage=false
import logging
import ssl
from unittest.mock import Mock, patch

import pytest
import requests
from requests.adapters import HTTPAdapter
from requests.certs import where as default_ca_bundle

from persistent_http.config import HttpClientConfig
from persistent_http.connection import ConnectionManager, TLSAdapter
from persistent_http.errors import ConfigurationError, ConnectionError
from persistent_http.models import Endpoint, OutboundRequest

LOG = logging.getLogger("persistent_http.tests")


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _manager(url="https://api.example.com", clock=None, **config):
    return ConnectionManager(
        Endpoint.parse(url),
        HttpClientConfig(name="test", **config),
        LOG,
        clock=clock or FakeClock(),
    )


def _mock_response(*, content=b"", status=200, reason="OK"):
    response = Mock()
    response.content = content
    response.status_code = status
    response.reason = reason
    response.url = "https://api.example.com/users"
    response.headers = {"Content-Type": "application/json"}
    return response


def test_secure_connection_pins_tls_settings():
    connection = _manager().build_connection()

    adapter = connection.session.get_adapter("https://api.example.com/")
    assert isinstance(adapter, TLSAdapter)
    context = adapter._ssl_context
    assert context.minimum_version is ssl.TLSVersion.TLSv1_2
    assert context.verify_mode == ssl.CERT_REQUIRED
    assert context.check_hostname is True
    assert connection.session.verify is True


def test_minimum_tls_version_is_configurable():
    connection = _manager(min_tls_version=ssl.TLSVersion.TLSv1_3).build_connection()

    adapter = connection.session.get_adapter("https://api.example.com/")
    assert adapter._ssl_context.minimum_version is ssl.TLSVersion.TLSv1_3


def test_peer_verification_can_be_disabled():
    connection = _manager(verify_peer=False).build_connection()

    adapter = connection.session.get_adapter("https://api.example.com/")
    assert adapter._ssl_context.verify_mode == ssl.CERT_NONE
    assert adapter._ssl_context.check_hostname is False
    assert connection.session.verify is False


def test_hostname_verification_can_be_disabled():
    connection = _manager(verify_hostname=False).build_connection()

    adapter = connection.session.get_adapter("https://api.example.com/")
    assert adapter._ssl_context.check_hostname is False
    assert adapter._ssl_context.verify_mode == ssl.CERT_REQUIRED
    assert adapter._tls_kwargs()["assert_hostname"] is False


def test_ca_file_is_used_for_verification():
    ca_file = default_ca_bundle()

    connection = _manager(ca_file=ca_file).build_connection()

    assert connection.session.verify == ca_file


def test_missing_ca_file_fails_on_open():
    manager = _manager(ca_file="/nonexistent/ca.pem")

    with pytest.raises(ConfigurationError, match="cannot build connection"):
        manager.open()


def test_plain_connection_skips_tls_and_sizes_pool():
    connection = _manager("http://api.example.com", pool_size=4).build_connection()

    adapter = connection.session.get_adapter("http://api.example.com/")
    assert type(adapter) is HTTPAdapter
    assert adapter._pool_maxsize == 4


def test_proxy_and_supported_extra_options_are_applied():
    connection = _manager(
        proxy="http://proxy.example.com:8080",
        extra_options={"trust_env": False, "cert": "/tmp/client.pem"},
    ).build_connection()

    assert connection.session.proxies == {
        "http": "http://proxy.example.com:8080",
        "https": "http://proxy.example.com:8080",
    }
    assert connection.session.trust_env is False
    assert connection.session.cert == "/tmp/client.pem"


def test_unsupported_extra_options_are_logged_and_ignored(caplog):
    manager = _manager(extra_options={"keep_alive_magic": 3})

    with caplog.at_level(logging.DEBUG, logger=LOG.name):
        connection = manager.build_connection()

    assert not hasattr(connection.session, "keep_alive_magic")
    assert "Ignoring unsupported option: keep_alive_magic" in caplog.text


def test_current_connection_is_reused():
    manager = _manager()
    first = manager.open()

    assert manager.current_connection() is first
    assert manager.current_connection() is first


def test_idle_connection_is_replaced():
    clock = FakeClock()
    manager = _manager(clock=clock, idle_timeout_seconds=5.0)
    first = manager.open()

    clock.now += 4.0
    assert manager.current_connection() is first

    clock.now += 6.0
    second = manager.current_connection()
    assert second is not first


def test_idle_expiry_can_be_disabled():
    clock = FakeClock()
    manager = _manager(clock=clock, idle_timeout_seconds=None)
    first = manager.open()

    clock.now += 3600.0
    assert manager.current_connection() is first


def test_rebuild_replaces_and_closes_old_connection():
    manager = _manager()
    first = manager.open()

    with patch.object(first, "close", wraps=first.close) as close:
        second = manager.rebuild()

    close.assert_called_once_with()
    assert second is not first
    assert manager.current_connection() is second


def test_rebuild_failure_is_a_connection_error():
    manager = _manager()
    manager.open()

    with patch.object(manager, "build_connection", side_effect=OSError("no fd")):
        with pytest.raises(ConnectionError, match="failed to rebuild"):
            manager.rebuild()


def test_invalidate_builds_lazily_on_next_use():
    manager = _manager()
    first = manager.open()

    manager.invalidate()

    assert manager.current_connection() is not first


def test_closed_manager_fails_fast():
    manager = _manager()
    manager.open()

    manager.close()
    manager.close()

    assert manager.closed
    with pytest.raises(ConfigurationError, match="closed"):
        manager.current_connection()
    with pytest.raises(ConfigurationError):
        manager.rebuild()


@patch("requests.Session.send")
def test_send_prepares_request_and_wraps_response(mock_send):
    clock = FakeClock()
    connection = _manager(
        clock=clock, open_timeout_seconds=1.0, read_timeout_seconds=3.0
    ).build_connection()
    mock_send.return_value = _mock_response(content=b"[]")
    request = OutboundRequest(
        method="POST",
        target="/users",
        headers={"host": "api.example.com", "content-type": "application/json"},
        body=b'{"name":"Jo"}',
    )

    clock.now += 2.0
    response = connection.send(request)

    prepared = mock_send.call_args.args[0]
    assert prepared.method == "POST"
    assert prepared.url == "https://api.example.com/users"
    assert prepared.headers["content-type"] == "application/json"
    assert prepared.body == b'{"name":"Jo"}'
    assert mock_send.call_args.kwargs == {
        "timeout": (1.0, 3.0),
        "allow_redirects": False,
    }
    assert response.status_code == 200
    assert response.body == b"[]"
    assert response.headers["content-type"] == "application/json"
    assert connection.last_used_at == clock.now
    assert connection.idle_for() == 0.0


@patch("requests.Session.send")
def test_in_flight_connection_is_not_expired(mock_send):
    clock = FakeClock()
    manager = _manager(clock=clock, idle_timeout_seconds=5.0)
    first = manager.open()
    seen = []

    def long_send(*args, **kwargs):
        clock.now += 6.0
        seen.append(manager.current_connection())
        return _mock_response()

    mock_send.side_effect = long_send
    request = OutboundRequest(
        method="GET", target="/slow", headers={"host": "api.example.com"}
    )

    with patch.object(first, "close", wraps=first.close) as close:
        first.send(request)

    assert seen == [first]
    close.assert_not_called()
    assert first.in_flight == 0

    clock.now += 6.0
    assert manager.current_connection() is not first


@patch("requests.Session.send")
def test_failed_send_releases_in_flight_slot(mock_send):
    connection = _manager().build_connection()
    mock_send.side_effect = requests.exceptions.ConnectionError("reset")
    request = OutboundRequest(
        method="GET", target="/x", headers={"host": "api.example.com"}
    )

    with pytest.raises(requests.exceptions.ConnectionError):
        connection.send(request)

    assert connection.in_flight == 0
