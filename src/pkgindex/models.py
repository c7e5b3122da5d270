"""On-disk models for the package index database.

The persisted unit is a single JSON object with four required fields::

    {
        "app_ids_to_package_ids": {"730": [1, 2]},
        "guid": "0f8fad5b-d9cb-469f-a165-70867728950e",
        "server_list": {"servers": []},
        "cell_id": 0
    }

App keys are written as strings (JSON object keys) and accepted back as
either strings or integers.
"""

from __future__ import annotations

import uuid
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer

UINT32_MAX = 0xFFFFFFFF

Uint32 = Annotated[int, Field(ge=0, le=UINT32_MAX)]
"""Unsigned 32-bit identifier (AppID, PackageID, CellID)."""


def is_valid_id(value: Any) -> bool:
    """Return ``True`` when *value* is an unsigned 32-bit integer (``bool`` excluded)."""
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= UINT32_MAX


class DatabaseSnapshot(BaseModel):
    """Full persisted state of a package index database.

    Parameters
    ----------
    app_ids_to_package_ids : dict
        AppID to the package IDs granting it. Lists are deduplicated on
        validation and written sorted.
    guid : uuid.UUID
        Identifier assigned when the database is first created.
    server_list : dict
        Opaque sub-state owned by the server-list provider.
    cell_id : int
        Last known cell ID, ``0`` when unset.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    app_ids_to_package_ids: dict[Uint32, set[Uint32]]
    guid: uuid.UUID
    server_list: dict[str, Any]
    cell_id: Uint32

    @field_serializer("app_ids_to_package_ids")
    def _serialize_entries(self, value: dict[int, set[int]]) -> dict[str, list[int]]:
        return {str(app_id): sorted(packages) for app_id, packages in sorted(value.items())}

    @classmethod
    def fresh(cls, server_list: dict[str, Any] | None = None) -> DatabaseSnapshot:
        """Snapshot of a newly created database (empty index, new GUID, cell ID zero)."""
        return cls(
            app_ids_to_package_ids={},
            guid=uuid.uuid4(),
            server_list=server_list if server_list is not None else {},
            cell_id=0,
        )
