from __future__ import annotations

from pathlib import Path

import pytest
from fakes import FakeAdapter, FakePeripheral, device

from shbctl.api import Client, SubscriptionMode, format_hex


def test_public_client_uses_packaged_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    client = Client(sink=lambda _: None)
    assert client.config.target_identifier == "SHB1000"
    assert client.load_warnings == ()


def test_public_client_streams_to_custom_sink(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    frames: list[str] = []
    peripheral = FakePeripheral("AA:AA", payloads=(b"\xde\xad",))
    adapter = FakeAdapter([device("AA:AA")], {"AA:AA": peripheral})

    client = Client(
        sink=lambda data: frames.append(format_hex(data)),
        adapter_locator=lambda **_: adapter,
    )
    client.stop()
    result = client.stream()

    assert result.subscription.mode is SubscriptionMode.INDICATE
    assert frames == ["DE AD"]
    assert peripheral.count("disconnect") == 1


def test_public_client_lists_and_selects(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    adapter = FakeAdapter([device("AA:AA"), device("BB:BB", "OTHER"), device("CC:CC")])
    client = Client(
        sink=lambda _: None,
        prompt=lambda _text, _default: 0,
        adapter_locator=lambda **_: adapter,
    )

    devices = client.list_devices()
    assert [d.address for d in devices] == ["AA:AA", "BB:BB", "CC:CC"]
    assert client.select(devices).address == "AA:AA"
