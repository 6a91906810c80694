"""Tests for CDP endpoint discovery."""

import time
from unittest.mock import patch

import pytest

from browserlock.errors import ResourceUnavailable
from browserlock.services import discover_cdp_port, discover_cdp_url
from browserlock.services.discovery import ports_from_processes


def test_ports_from_processes(spawn) -> None:
    spawn("import time; time.sleep(60)", "--remote-debugging-port=45994")
    time.sleep(0.2)
    assert 45994 in ports_from_processes()


def test_process_inspection_comes_first() -> None:
    with patch("browserlock.services.discovery.ports_from_processes", return_value=[9555]):
        assert discover_cdp_port(environ={"CDP_PORT": "18800"}) == 9555


def test_env_var_fallback() -> None:
    with patch("browserlock.services.discovery.ports_from_processes", return_value=[]):
        assert discover_cdp_url(environ={"CDP_PORT": "18801"}) == "http://127.0.0.1:18801"


def test_probes_well_known_ports() -> None:
    with (
        patch("browserlock.services.discovery.ports_from_processes", return_value=[]),
        patch(
            "browserlock.services.discovery.health_check",
            side_effect=lambda port: port == 9222,
        ),
    ):
        assert discover_cdp_port(environ={}) == 9222


def test_nothing_found() -> None:
    with (
        patch("browserlock.services.discovery.ports_from_processes", return_value=[]),
        patch("browserlock.services.discovery.health_check", return_value=False),
        pytest.raises(ResourceUnavailable, match="CDP port not found"),
    ):
        discover_cdp_port(environ={})
