from __future__ import annotations

from dataclasses import dataclass, field

import pytest


@dataclass
class RecordingSink:
    """Diagnostic sink double that keeps every report."""

    invalid_arguments: list[str] = field(default_factory=list)
    exceptions: list[tuple[BaseException, str]] = field(default_factory=list)

    def report_invalid_argument(self, name: str) -> None:
        self.invalid_arguments.append(name)

    def report_exception(self, exc: BaseException, context: str = "") -> None:
        self.exceptions.append((exc, context))


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
