"""PowerShell remoting over WinRM HTTPS."""

from __future__ import annotations

import logging
from collections.abc import Sequence

import requests
import winrm
from winrm.exceptions import WinRMError, WinRMTransportError

from ..config import RemoteConfig
from ..exceptions import ProvisioningFailure
from . import RemoteResult

logger = logging.getLogger(__name__)


class WinRMExecutor:
    """Runs a script block with arguments through a WinRM session."""

    def __init__(self, config: RemoteConfig):
        self._config = config

    def run(self, host: str, port: int, script: str, arguments: Sequence[str]) -> RemoteResult:
        endpoint = f"https://{host}:{port}/wsman"
        session = winrm.Session(
            endpoint,
            auth=(self._config.username, self._config.password),
            transport=self._config.transport,
            server_cert_validation="validate" if self._config.verify_ssl else "ignore",
        )
        logger.debug("Running %d-byte payload on %s", len(script), endpoint)
        try:
            response = session.run_ps(build_invocation(script, arguments))
        except (WinRMError, WinRMTransportError, requests.RequestException) as exc:
            raise ProvisioningFailure(f"Remote execution on {endpoint} failed: {exc}") from exc

        return RemoteResult(
            host=host,
            exit_code=response.status_code,
            stdout=response.std_out.decode("utf-8", errors="replace"),
            stderr=response.std_err.decode("utf-8", errors="replace"),
        )


def build_invocation(script: str, arguments: Sequence[str]) -> str:
    """Wrap ``script`` in a script block and call it with ``arguments``.

    Arguments starting with ``-`` are parameter names and pass through;
    everything else is single-quoted.
    """
    rendered = " ".join(arg if arg.startswith("-") else _quote(arg) for arg in arguments)
    return f"& {{\n{script}\n}} {rendered}".rstrip()


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"
