from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from ism7ctl import cli
from ism7ctl.core.errors import AuthenticationError
from ism7ctl.core.model import ValueUpdate

runner = CliRunner()

UPDATE = ValueUpdate(
    topic="ism7/boiler/flow_temperature",
    bus_address="0x08",
    device_id="0x41",
    info_number=3,
    name="flow_temperature",
    value=42.5,
    unit="°C",
)


class FakeService:
    instances: list["FakeService"] = []

    def __init__(self, host, connector, consumer, *, telegram_map=None, debug_sink=None) -> None:
        self.host = host
        self.connector = connector
        self.consumer = consumer
        self.telegram_map = telegram_map
        self.debug_sink = debug_sink
        self.passwords: list[str] = []
        FakeService.instances.append(self)

    async def run(self, password, stop=None):
        self.passwords.append(password)
        if self.debug_sink is not None:
            self.debug_sink("> <direct-logon-request />")
        await self.consumer(UPDATE, stop)


@pytest.fixture(autouse=True)
def _isolated(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    FakeService.instances.clear()


def test_params_command():
    result = runner.invoke(cli.app, ["params"])
    assert result.exit_code == 0
    assert "0x08: boiler" in result.stdout
    assert "3: flow_temperature (int16) [°C]" in result.stdout


def test_params_command_reports_invalid_file(tmp_path: Path):
    bad = tmp_path / "bad.yaml"
    bad.write_text("devices: nope\n", encoding="utf-8")
    result = runner.invoke(cli.app, ["params", "--file", str(bad)])
    assert result.exit_code == 1
    assert "Error: Schema validation failed" in result.stderr
    assert "Traceback" not in result.stdout


def test_watch_prints_values(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(cli, "GatewayService", FakeService)
    result = runner.invoke(
        cli.app,
        ["watch", "--host", "192.0.2.10", "--password", "pw", "--cert", "client.pem"],
    )
    assert result.exit_code == 0
    assert "ism7/boiler/flow_temperature=42.5 °C" in result.stdout
    service = FakeService.instances[0]
    assert service.host == "192.0.2.10"
    assert service.passwords == ["pw"]
    assert service.connector.certfile == Path("client.pem")
    assert service.debug_sink is None


def test_watch_json_and_debug(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(cli, "GatewayService", FakeService)
    monkeypatch.setenv("ISM7_PASSWORD", "from-env")
    result = runner.invoke(
        cli.app,
        ["watch", "--host", "gw", "--cert", "client.pem", "--json", "--debug"],
    )
    assert result.exit_code == 0
    assert json.loads(result.stdout.strip()) == {
        "topic": "ism7/boiler/flow_temperature",
        "bus_address": "0x08",
        "device_id": "0x41",
        "info_number": 3,
        "name": "flow_temperature",
        "value": 42.5,
        "unit": "°C",
    }
    assert "> <direct-logon-request />" in result.stderr
    assert FakeService.instances[0].passwords == ["from-env"]


def test_watch_error_is_clean(monkeypatch: pytest.MonkeyPatch):
    class FailingService(FakeService):
        async def run(self, password, stop=None):
            raise AuthenticationError("invalid login state 'error'")

    monkeypatch.setattr(cli, "GatewayService", FailingService)
    result = runner.invoke(cli.app, ["watch", "--host", "gw", "--password", "x", "--cert", "c.pem"])
    assert result.exit_code == 1
    assert "Error: invalid login state 'error'" in result.stderr
    assert "Traceback" not in result.stdout
    assert "Traceback" not in result.stderr
