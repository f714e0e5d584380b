from __future__ import annotations

import asyncio

import pytest

from ism7ctl.api import Client, TransportConnectError, ValueUpdate


class FakeConnector:
    async def open(self, host: str):
        raise TransportConnectError(f"cannot reach {host}")


async def _ignore(update: ValueUpdate, stop: asyncio.Event) -> None:
    return None


def test_public_client_requires_certificate_or_connector() -> None:
    with pytest.raises(TransportConnectError):
        Client("192.0.2.10", _ignore)


def test_public_client_exposes_telegram_map(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    client = Client("192.0.2.10", _ignore, connector=FakeConnector())
    assert "0x08" in client.telegram_map.devices
    assert client.load_warnings == ()
    assert client.devices == {}


@pytest.mark.asyncio
async def test_public_client_run_propagates_transport_errors(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    client = Client("192.0.2.10", _ignore, connector=FakeConnector())
    with pytest.raises(TransportConnectError, match="192.0.2.10"):
        await client.run("secret")
