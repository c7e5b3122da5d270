from __future__ import annotations

import asyncio
import json
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from pkgindex.config import IndexConfig
from pkgindex.database import DatabaseState, LoadOutcome, PackageIndexDatabase
from pkgindex.exceptions import PkgIndexConfigError, PkgIndexLoadError
from pkgindex.persistence import temp_path_for
from pkgindex.servers import ServerRecord

if TYPE_CHECKING:
    from conftest import RecordingSink

APP_A = 10
APP_B = 20


async def _resolve_scenario(package_ids: frozenset[int]) -> dict[int, set[int]]:
    owners = {100: APP_A, 101: APP_B}
    result: dict[int, set[int]] = {}
    for package_id in package_ids:
        if package_id in owners:
            result.setdefault(owners[package_id], set()).add(package_id)
    return result


def _read(path: Path) -> dict[str, object]:
    return json.loads(path.read_text(encoding="utf-8"))


def test_load_creates_and_persists_missing_database(tmp_path: Path, sink: RecordingSink) -> None:
    path = tmp_path / "config" / "index.json"

    result = PackageIndexDatabase.load(path, diagnostics=sink)

    assert result.ok
    assert result.outcome is LoadOutcome.CREATED
    database = result.database
    assert database is not None
    assert database.origin is LoadOutcome.CREATED
    assert database.cell_id == 0
    assert len(database.entries) == 0
    assert _read(path)["guid"] == str(database.guid)
    assert sink.exceptions == []


def test_reload_keeps_guid(tmp_path: Path) -> None:
    path = tmp_path / "index.json"
    created = PackageIndexDatabase.load(path).database
    assert created is not None

    loaded = PackageIndexDatabase.load(path)

    assert loaded.outcome is LoadOutcome.LOADED
    assert loaded.database is not None
    assert loaded.database.guid == created.guid


@pytest.mark.asyncio
async def test_scenario_refresh_is_persisted(tmp_path: Path) -> None:
    path = tmp_path / "index.json"
    database = PackageIndexDatabase.load(path, enricher=_resolve_scenario).database
    assert database is not None

    await database.refresh_package_ids({100, 101})

    assert database.get_package_ids(APP_A) == frozenset({100})
    assert database.get_package_ids(APP_B) == frozenset({101})
    assert _read(path)["app_ids_to_package_ids"] == {"10": [100], "20": [101]}


@pytest.mark.asyncio
async def test_save_load_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "index.json"
    database = PackageIndexDatabase.load(path, enricher=_resolve_scenario).database
    assert database is not None
    await database.refresh_package_ids({100, 101})
    database.cell_id = 7
    database.close()

    reloaded = PackageIndexDatabase.load(path).database

    assert reloaded is not None
    assert reloaded.entries.snapshot() == database.entries.snapshot()
    assert reloaded.guid == database.guid
    assert reloaded.cell_id == 7


def test_cell_id_zero_or_same_value_does_not_save(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    database = PackageIndexDatabase.load(tmp_path / "index.json").database
    assert database is not None
    saves: list[int] = []
    monkeypatch.setattr(database, "save", lambda: saves.append(database.cell_id) or True)

    assert not database.set_cell_id(0)
    assert database.set_cell_id(5)
    assert not database.set_cell_id(5)
    database.cell_id = 0

    assert saves == [5]
    assert database.cell_id == 5


def test_invalid_cell_id_is_reported(tmp_path: Path, sink: RecordingSink) -> None:
    database = PackageIndexDatabase.load(tmp_path / "index.json", diagnostics=sink).database
    assert database is not None

    assert not database.set_cell_id(-3)

    assert sink.invalid_arguments == ["cell_id"]
    assert database.cell_id == 0


def test_server_list_update_triggers_save_until_closed(tmp_path: Path) -> None:
    path = tmp_path / "index.json"
    database = PackageIndexDatabase.load(path).database
    assert database is not None

    database.server_list.update_servers([ServerRecord(host="cm.example.net", port=27017)])
    assert _read(path)["server_list"] == {
        "servers": [{"host": "cm.example.net", "port": 27017, "protocol": "tcp"}],
    }

    database.close()
    database.server_list.update_servers([ServerRecord(host="cm.example.net", port=27018)])

    assert _read(path)["server_list"]["servers"][0]["port"] == 27017  # type: ignore[index]
    assert database.state is DatabaseState.DISPOSED
    assert database.server_list.subscriber_count == 0


@pytest.mark.asyncio
async def test_refresh_after_close_is_rejected(tmp_path: Path, sink: RecordingSink) -> None:
    calls: list[frozenset[int]] = []

    async def enricher(package_ids: frozenset[int]) -> dict[int, set[int]]:
        calls.append(package_ids)
        return {1: set(package_ids)}

    with PackageIndexDatabase.load(tmp_path / "index.json", diagnostics=sink, enricher=enricher).database as database:
        pass

    await database.refresh_package_ids({1})

    assert calls == []
    assert sink.invalid_arguments == ["database (disposed)"]


@pytest.mark.asyncio
async def test_state_reports_refreshing(tmp_path: Path) -> None:
    release = asyncio.Event()

    async def slow(package_ids: frozenset[int]) -> dict[int, set[int]]:
        await release.wait()
        return {1: set(package_ids)}

    database = PackageIndexDatabase.load(tmp_path / "index.json", enricher=slow).database
    assert database is not None
    assert database.state is DatabaseState.IDLE

    task = asyncio.create_task(database.refresh_package_ids({5}))
    await asyncio.sleep(0)
    assert database.state is DatabaseState.REFRESHING

    release.set()
    await task
    assert database.state is DatabaseState.IDLE


def test_corrupt_file_is_unusable(tmp_path: Path, sink: RecordingSink) -> None:
    path = tmp_path / "index.json"
    path.write_text(json.dumps({"app_ids_to_package_ids": {}}), encoding="utf-8")

    result = PackageIndexDatabase.load(path, diagnostics=sink)

    assert not result.ok
    assert result.outcome is LoadOutcome.UNUSABLE
    assert isinstance(result.error, PkgIndexLoadError)
    assert len(sink.exceptions) == 1


def test_invalid_server_list_state_is_unusable(tmp_path: Path, sink: RecordingSink) -> None:
    path = tmp_path / "index.json"
    path.write_text(
        json.dumps(
            {
                "app_ids_to_package_ids": {"10": [1]},
                "guid": "0f8fad5b-d9cb-469f-a165-70867728950e",
                "server_list": {"servers": [{"host": "", "port": 0}]},
                "cell_id": 0,
            }
        ),
        encoding="utf-8",
    )

    result = PackageIndexDatabase.load(path, diagnostics=sink)

    assert result.outcome is LoadOutcome.UNUSABLE
    assert result.database is None


@pytest.mark.parametrize("path", [None, "", "   "])
def test_empty_path_is_invalid_argument(path: str | None, sink: RecordingSink) -> None:
    result = PackageIndexDatabase.load(path, diagnostics=sink)

    assert result.outcome is LoadOutcome.UNUSABLE
    assert isinstance(result.error, PkgIndexConfigError)
    assert sink.invalid_arguments == ["path"]


def test_from_config_applies_settings(tmp_path: Path) -> None:
    path = tmp_path / "index.json"
    config = IndexConfig(database_path=str(path), temp_suffix=".tmp", json_indent=2)

    database = PackageIndexDatabase.from_config(config).database

    assert database is not None
    assert database.path == path
    assert path.read_text(encoding="utf-8").startswith("{\n  ")
    assert not (tmp_path / "index.json.tmp").exists()


def test_inaccessible_path_is_unusable(tmp_path: Path, sink: RecordingSink) -> None:
    path = tmp_path / ("x" * 300) / "index.json"

    result = PackageIndexDatabase.load(path, diagnostics=sink)

    assert result.outcome is LoadOutcome.UNUSABLE
    assert result.database is None
    assert isinstance(result.error, PkgIndexLoadError)
    assert result.error.path == path
    assert len(sink.exceptions) == 1


def test_concurrent_saves_are_serialized(tmp_path: Path, sink: RecordingSink) -> None:
    path = tmp_path / "index.json"
    database = PackageIndexDatabase.load(path, diagnostics=sink).database
    assert database is not None

    def worker(app_id: int) -> list[bool]:
        results = []
        for package_id in range(1, 51):
            database.entries.merge({app_id: [app_id * 1000 + package_id]})
            results.append(database.save())
        return results

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = [ok for batch in pool.map(worker, range(1, 9)) for ok in batch]

    assert len(outcomes) == 400
    assert all(outcomes)
    assert sink.exceptions == []
    assert not temp_path_for(path, ".new").exists()

    reloaded = PackageIndexDatabase.load(path).database
    assert reloaded is not None
    for app_id in range(1, 9):
        assert reloaded.get_package_ids(app_id) == frozenset(app_id * 1000 + p for p in range(1, 51))
