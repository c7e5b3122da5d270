from __future__ import annotations

import pytest

from pkgindex.exceptions import PkgIndexLoadError
from pkgindex.notifier import ChangeNotifierBridge
from pkgindex.servers import InMemoryServerListProvider, ServerRecord


def _servers(*ports: int) -> list[ServerRecord]:
    return [ServerRecord(host="cm.example.net", port=port) for port in ports]


def test_bridge_forwards_each_update() -> None:
    provider = InMemoryServerListProvider()
    calls: list[str] = []
    bridge = ChangeNotifierBridge(provider, lambda: calls.append("save"))

    provider.update_servers(_servers(27017))
    provider.update_servers(_servers(27018))

    assert calls == ["save", "save"]
    assert bridge.is_attached


def test_unchanged_server_list_does_not_signal() -> None:
    provider = InMemoryServerListProvider(_servers(27017))
    calls: list[str] = []
    ChangeNotifierBridge(provider, lambda: calls.append("save"))

    assert not provider.update_servers(_servers(27017))
    assert calls == []


def test_close_removes_subscription() -> None:
    provider = InMemoryServerListProvider()
    calls: list[str] = []
    bridge = ChangeNotifierBridge(provider, lambda: calls.append("save"))

    bridge.close()
    bridge.close()
    provider.update_servers(_servers(27017))

    assert calls == []
    assert not bridge.is_attached
    assert provider.subscriber_count == 0


def test_failing_subscriber_does_not_block_others() -> None:
    provider = InMemoryServerListProvider()
    calls: list[str] = []

    def broken() -> None:
        raise RuntimeError("subscriber bug")

    provider.subscribe(broken)
    provider.subscribe(lambda: calls.append("ok"))

    provider.update_servers(_servers(27017))

    assert calls == ["ok"]


def test_subscription_handle_close_is_idempotent() -> None:
    provider = InMemoryServerListProvider()
    subscription = provider.subscribe(lambda: None)

    subscription.close()
    subscription.close()

    assert not subscription.active
    assert provider.subscriber_count == 0


def test_server_state_round_trips() -> None:
    provider = InMemoryServerListProvider(_servers(27017, 27018))

    restored = InMemoryServerListProvider.from_state(provider.dump_state())

    assert restored.fetch_servers() == provider.fetch_servers()
    assert provider.dump_state()["servers"][0] == {"host": "cm.example.net", "port": 27017, "protocol": "tcp"}


def test_invalid_server_state_is_a_load_error() -> None:
    with pytest.raises(PkgIndexLoadError):
        InMemoryServerListProvider.from_state({"servers": [{"host": "", "port": 0}]})
