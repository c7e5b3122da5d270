#!/usr/bin/env python3
"""Print the contents of a pkgindex database file.

The file is only read; a missing file is reported rather than created.

Usage
-----
::

    python scripts/inspect_database.py config/pkgindex.json

Options::

    --app APPID          Only show the packages granting APPID
    --package PACKAGEID  Only show the apps granted by PACKAGEID
    --json               Output as machine-readable JSON
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pkgindex.exceptions import PkgIndexLoadError  # noqa: E402
from pkgindex.models import DatabaseSnapshot  # noqa: E402
from pkgindex.persistence import load_snapshot  # noqa: E402


def _section(title: str) -> str:
    line = "=" * 60
    return f"\n{line}\n  {title}\n{line}"


def _filter_entries(snapshot: DatabaseSnapshot, app_id: int | None, package_id: int | None) -> dict[int, list[int]]:
    entries: dict[int, list[int]] = {}
    for app, packages in sorted(snapshot.app_ids_to_package_ids.items()):
        if app_id is not None and app != app_id:
            continue
        if package_id is not None and package_id not in packages:
            continue
        entries[app] = sorted(packages)
    return entries


def _print_text(snapshot: DatabaseSnapshot, entries: dict[int, list[int]]) -> None:
    print(_section("Database"))
    print(f"  guid: {snapshot.guid}")
    print(f"  cell_id: {snapshot.cell_id}")
    print(f"  apps: {len(snapshot.app_ids_to_package_ids)}")
    servers = snapshot.server_list.get("servers", [])
    print(f"  servers: {len(servers)}")

    print(_section("Entries"))
    if not entries:
        print("  (none)")
    for app, packages in entries.items():
        print(f"  {app}: {', '.join(str(p) for p in packages)}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Inspect a pkgindex database file")
    parser.add_argument("path", type=Path, help="Database file")
    parser.add_argument("--app", type=int, default=None, help="Only show this AppID")
    parser.add_argument("--package", type=int, default=None, help="Only show apps granted by this PackageID")
    parser.add_argument("--json", action="store_true", help="Output as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    if not args.path.exists():
        print(f"No database at {args.path}", file=sys.stderr)
        return 1

    try:
        snapshot = load_snapshot(args.path)
    except PkgIndexLoadError as exc:
        print(f"Unusable database: {exc}", file=sys.stderr)
        return 2

    entries = _filter_entries(snapshot, args.app, args.package)
    if args.json:
        payload = snapshot.model_dump(mode="json")
        payload["app_ids_to_package_ids"] = {str(app): packages for app, packages in entries.items()}
        print(json.dumps(payload, indent=2))
    else:
        _print_text(snapshot, entries)
    return 0


if __name__ == "__main__":
    sys.exit(main())
