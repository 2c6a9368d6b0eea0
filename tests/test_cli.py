from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from shbctl import cli
from shbctl.core.model import AppConfig, DiscoveredDevice, StreamResult, Subscription, SubscriptionMode

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolated_xdg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))


class FakeService:
    instances: list["FakeService"] = []

    def __init__(self, *, config: AppConfig, sink, prompt, wait_for_stop, notify) -> None:
        self.config = config
        self.sink = sink
        self.prompt = prompt
        self.wait_for_stop = wait_for_stop
        self.notify = notify
        self.runtime_warnings = ()
        FakeService.instances.append(self)

    def list_devices(self):
        self.notify("Found device: SHB1000 [AA:AA]")
        return [
            DiscoveredDevice(identifier="SHB1000", address="AA:AA", connectable=True),
            DiscoveredDevice(identifier="OTHER", address="BB:BB", connectable=True),
        ]

    def stream(self):
        self.notify("Indication active on characteristic f62a9f56-f29e-48a8-a317-47ee37a58999.")
        self.sink(bytes.fromhex("0a0b"))
        self.wait_for_stop()
        self.notify("Disconnected. Exiting.")
        return StreamResult(
            device=self.list_devices()[0],
            subscription=Subscription("svc", self.config.characteristic_uuid, SubscriptionMode.INDICATE),
        )


@pytest.fixture(autouse=True)
def _reset_instances() -> None:
    FakeService.instances.clear()


def test_run_without_arguments_streams_until_enter(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "StreamService", FakeService)
    result = runner.invoke(cli.app, [], input="\n")
    assert result.exit_code == 0
    assert "Indication (2 bytes): 0A 0B" in result.stdout
    assert "Press Enter to stop..." in result.stdout
    assert "Disconnected. Exiting." in result.stdout


def test_options_override_config(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "StreamService", FakeService)
    result = runner.invoke(
        cli.app,
        ["--timeout", "3", "--target", "SHB2000", "--characteristic", "00002A37-0000-1000-8000-00805F9B34FB", "--no-diagnose"],
        input="\n",
    )
    assert result.exit_code == 0
    config = FakeService.instances[0].config
    assert config.scan_timeout_s == 3.0
    assert config.target_identifier == "SHB2000"
    assert config.characteristic_uuid == "00002a37-0000-1000-8000-00805f9b34fb"
    assert config.diagnostics is False


def test_invalid_characteristic_option_is_clean_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "StreamService", FakeService)
    result = runner.invoke(cli.app, ["--characteristic", "zz"])
    assert result.exit_code == 1
    assert "Error: --characteristic must be" in result.stderr


def test_devices_command_marks_targets(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "StreamService", FakeService)
    result = runner.invoke(cli.app, ["devices"])
    assert result.exit_code == 0
    assert "AA:AA SHB1000 <target>" in result.stdout
    assert "BB:BB OTHER\n" in result.stdout
    assert "Found device" not in result.stdout


def test_fatal_error_exits_non_zero_without_traceback(monkeypatch: pytest.MonkeyPatch) -> None:
    class FailingService(FakeService):
        def stream(self):
            from shbctl.core.errors import NoConnectablePeripheralsError

            raise NoConnectablePeripheralsError("No connectable peripherals discovered.")

    monkeypatch.setattr(cli, "StreamService", FailingService)
    result = runner.invoke(cli.app, [])
    assert result.exit_code == 1
    assert "Error: No connectable peripherals discovered." in result.stderr
    assert "Traceback" not in result.stdout
    assert "Traceback" not in result.stderr


def test_runtime_warning_is_printed(monkeypatch: pytest.MonkeyPatch) -> None:
    class WarnService(FakeService):
        def __init__(self, **kwargs) -> None:
            super().__init__(**kwargs)
            self.runtime_warnings = ("bluetoothctl not found",)

    monkeypatch.setattr(cli, "StreamService", WarnService)
    result = runner.invoke(cli.app, ["devices"])
    assert result.exit_code == 0
    assert "Warning: bluetoothctl not found" in result.stderr


def test_prompt_integer_returns_none_for_garbage(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli.typer, "prompt", lambda *args, **kwargs: "two")
    assert cli.prompt_integer("Select device index", 1) is None

    monkeypatch.setattr(cli.typer, "prompt", lambda *args, **kwargs: " 0 ")
    assert cli.prompt_integer("Select device index", 1) == 0
