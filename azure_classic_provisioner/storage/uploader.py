"""Best-effort parallel upload of local files into a blob container."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path

from azure.core.exceptions import AzureError
from azure.identity import DefaultAzureCredential
from azure.storage.blob import BlobServiceClient, ContainerClient

from ..config import StorageConfig
from ..directory.models import UploadUnit
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class UploadSummary:
    count: int
    succeeded: int
    failed: list[str] = field(default_factory=list)
    elapsed: float = 0.0


def collect_upload_units(root: str | Path) -> list[UploadUnit]:
    """Every file under ``root``, named by its ``/``-separated path relative to it."""
    root = Path(root)
    if not root.is_dir():
        raise ConfigurationError(f"Upload source is not a directory: {root}")
    return [
        UploadUnit(local_path=path, remote_blob_name=path.relative_to(root).as_posix())
        for path in sorted(root.rglob("*"))
        if path.is_file()
    ]


def build_container_client(config: StorageConfig, container: str) -> ContainerClient:
    if not config.account_name:
        raise ConfigurationError("storage.account_name is required for uploads")
    account_url = f"https://{config.account_name}.blob.core.windows.net"
    credential = config.account_key or DefaultAzureCredential()
    return BlobServiceClient(account_url=account_url, credential=credential).get_container_client(container)


class ParallelUploader:
    """Uploads files concurrently; one file's failure never aborts its siblings."""

    def __init__(
        self,
        container_client: ContainerClient,
        confirm: Callable[[str], bool] | None = None,
        max_workers: int | None = None,
    ):
        self._container = container_client
        self._confirm = confirm
        self._max_workers = max_workers

    def prepare_container(self, force: bool = False) -> None:
        """Create the container, or confirm reuse of an existing one unless forced."""
        name = self._container.container_name
        if not self._container.exists():
            logger.info("Creating blob container %s", name, extra={"container": name})
            self._container.create_container()
            return

        if force:
            logger.info("Reusing existing blob container %s (forced)", name, extra={"container": name})
            return

        prompt = f"Container {name} already exists. Upload into it anyway?"
        if self._confirm is None or not self._confirm(prompt):
            raise ConfigurationError(f"Upload into existing container {name} was not confirmed")

    def upload(self, units: Sequence[UploadUnit], force: bool = False) -> UploadSummary:
        self.prepare_container(force)

        start = time.monotonic()
        failed: list[str] = []
        if units:
            workers = self._max_workers or len(units)
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = {pool.submit(self._upload_one, unit): unit for unit in units}
                for future in as_completed(futures):
                    unit = futures[future]
                    try:
                        ok = future.result()
                    except Exception as exc:
                        logger.warning(
                            "Upload of %s failed: %s", unit.local_path, exc,
                            extra={"blob": unit.remote_blob_name},
                        )
                        ok = False
                    if not ok:
                        failed.append(unit.remote_blob_name)

        elapsed = time.monotonic() - start
        summary = UploadSummary(
            count=len(units),
            succeeded=len(units) - len(failed),
            failed=sorted(failed),
            elapsed=elapsed,
        )
        logger.info(
            "Uploaded %d of %d file(s) to %s in %.1fs",
            summary.succeeded, summary.count, self._container.container_name, elapsed,
            extra={
                "container": self._container.container_name,
                "count": summary.count,
                "failed": len(failed),
                "elapsed_seconds": round(elapsed, 2),
            },
        )
        return summary

    def _upload_one(self, unit: UploadUnit) -> bool:
        try:
            with open(unit.local_path, "rb") as fh:
                self._container.get_blob_client(unit.remote_blob_name).upload_blob(fh, overwrite=True)
        except (AzureError, OSError) as exc:
            logger.warning(
                "Upload of %s failed: %s", unit.local_path, exc,
                extra={"blob": unit.remote_blob_name},
            )
            return False
        logger.debug("Uploaded %s", unit.remote_blob_name, extra={"blob": unit.remote_blob_name})
        return True
