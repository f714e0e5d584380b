from __future__ import annotations

import ssl
from pathlib import Path

import pytest

from ism7ctl.core.errors import TransportConnectError
from ism7ctl.transports import tls


def test_missing_client_certificate_raises_clean_error(tmp_path: Path) -> None:
    with pytest.raises(TransportConnectError):
        tls.build_ssl_context(tmp_path / "missing.pem")


def test_context_skips_gateway_verification(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(ssl.SSLContext, "load_cert_chain", lambda self, certfile, keyfile=None: None)
    context = tls.build_ssl_context(Path("client.pem"))
    assert context.check_hostname is False
    assert context.verify_mode == ssl.CERT_NONE


@pytest.mark.asyncio
async def test_connect_failure_is_wrapped(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(tls, "build_ssl_context", lambda certfile, keyfile=None: ssl.create_default_context())

    async def refuse(*args, **kwargs):
        raise ConnectionRefusedError("refused")

    monkeypatch.setattr(tls.asyncio, "open_connection", refuse)
    connector = tls.TLSConnector(Path("client.pem"))
    with pytest.raises(TransportConnectError):
        await connector.open("192.0.2.10")
