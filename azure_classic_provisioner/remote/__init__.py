"""Remote execution package — the channel that runs script payloads on an instance."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class RemoteResult:
    host: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0


@runtime_checkable
class RemoteExecutor(Protocol):
    """Protocol for running a parameterized script against an instance's admin endpoint."""

    def run(self, host: str, port: int, script: str, arguments: Sequence[str]) -> RemoteResult:
        ...
