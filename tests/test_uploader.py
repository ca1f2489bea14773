"""Tests for the parallel blob uploader."""

import logging
import threading
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from azure.core.exceptions import AzureError

from azure_classic_provisioner.config import StorageConfig
from azure_classic_provisioner.directory.models import UploadUnit
from azure_classic_provisioner.exceptions import ConfigurationError
from azure_classic_provisioner.storage.uploader import (
    ParallelUploader,
    build_container_client,
    collect_upload_units,
)


def _container(exists=False, failing=()):
    container = MagicMock()
    container.container_name = "backups"
    container.exists.return_value = exists

    def blob_client(name):
        blob = MagicMock()
        if name in failing:
            blob.upload_blob.side_effect = AzureError(f"upload of {name} rejected")
        return blob

    container.get_blob_client.side_effect = blob_client
    return container


def _units(tmp_path, count):
    units = []
    for i in range(1, count + 1):
        path = tmp_path / f"file{i}.bak"
        path.write_bytes(b"x" * i)
        units.append(UploadUnit(local_path=path, remote_blob_name=path.name))
    return units


class TestCollectUploadUnits:
    def test_relative_posix_names(self, tmp_path):
        (tmp_path / "a").mkdir()
        (tmp_path / "a" / "b.txt").write_text("b")
        (tmp_path / "c.txt").write_text("c")
        units = collect_upload_units(tmp_path)
        assert [u.remote_blob_name for u in units] == ["a/b.txt", "c.txt"]
        assert units[0].local_path == tmp_path / "a" / "b.txt"

    def test_missing_directory(self, tmp_path):
        with pytest.raises(ConfigurationError):
            collect_upload_units(tmp_path / "nope")


class TestPrepareContainer:
    def test_creates_absent_container(self):
        container = _container(exists=False)
        ParallelUploader(container).prepare_container()
        container.create_container.assert_called_once()

    def test_existing_container_confirmed(self):
        container = _container(exists=True)
        confirm = MagicMock(return_value=True)
        ParallelUploader(container, confirm=confirm).prepare_container()
        confirm.assert_called_once()
        assert "backups" in confirm.call_args[0][0]
        container.create_container.assert_not_called()

    def test_existing_container_forced_skips_prompt(self):
        container = _container(exists=True)
        confirm = MagicMock(return_value=False)
        ParallelUploader(container, confirm=confirm).prepare_container(force=True)
        confirm.assert_not_called()

    def test_declined_prompt_uploads_nothing(self, tmp_path):
        container = _container(exists=True)
        uploader = ParallelUploader(container, confirm=lambda prompt: False)
        with pytest.raises(ConfigurationError):
            uploader.upload(_units(tmp_path, 3))
        container.get_blob_client.assert_not_called()

    def test_no_prompt_available(self):
        with pytest.raises(ConfigurationError):
            ParallelUploader(_container(exists=True)).prepare_container()


class TestUpload:
    def test_uploads_every_file(self, tmp_path):
        container = _container()
        summary = ParallelUploader(container, max_workers=4).upload(_units(tmp_path, 5))
        assert summary.count == 5
        assert summary.succeeded == 5
        assert summary.failed == []
        uploaded = sorted(c.args[0] for c in container.get_blob_client.call_args_list)
        assert uploaded == [f"file{i}.bak" for i in range(1, 6)]

    def test_one_failure_does_not_abort_batch(self, tmp_path, caplog):
        container = _container(failing={"file3.bak"})
        with caplog.at_level(logging.WARNING):
            summary = ParallelUploader(container).upload(_units(tmp_path, 5))
        assert summary.count == 5
        assert summary.succeeded == 4
        assert summary.failed == ["file3.bak"]
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "file3.bak" in warnings[0].getMessage()
        assert container.get_blob_client.call_count == 5

    def test_unreadable_file_is_reported(self, tmp_path):
        unit = UploadUnit(local_path=Path(tmp_path / "gone.bak"), remote_blob_name="gone.bak")
        summary = ParallelUploader(_container()).upload([unit])
        assert summary.failed == ["gone.bak"]

    def test_unexpected_error_is_reported_not_raised(self, tmp_path, caplog):
        container = _container()
        failing_blob = MagicMock()
        failing_blob.upload_blob.side_effect = ValueError("bad blob")
        container.get_blob_client.side_effect = (
            lambda name: failing_blob if name == "file2.bak" else MagicMock()
        )
        with caplog.at_level(logging.WARNING):
            summary = ParallelUploader(container).upload(_units(tmp_path, 5))
        assert summary.count == 5
        assert summary.succeeded == 4
        assert summary.failed == ["file2.bak"]
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "file2.bak" in warnings[0].getMessage()

    def test_every_file_runs_concurrently_by_default(self, tmp_path):
        # Each upload waits until all 40 are in flight at once.
        barrier = threading.Barrier(40, timeout=10)
        container = _container()
        blob = MagicMock()
        blob.upload_blob.side_effect = lambda *args, **kwargs: barrier.wait()
        container.get_blob_client.side_effect = None
        container.get_blob_client.return_value = blob

        summary = ParallelUploader(container).upload(_units(tmp_path, 40))

        assert summary.failed == []
        assert summary.succeeded == 40
        assert blob.upload_blob.call_count == 40

    def test_worker_override(self, tmp_path):
        container = _container()
        summary = ParallelUploader(container, max_workers=1).upload(_units(tmp_path, 3))
        assert summary.succeeded == 3

    def test_empty_batch(self):
        summary = ParallelUploader(_container()).upload([])
        assert summary.count == 0
        assert summary.failed == []


class TestBuildContainerClient:
    def test_requires_account_name(self):
        with pytest.raises(ConfigurationError):
            build_container_client(StorageConfig(), "backups")

    def test_uses_account_key(self):
        client = build_container_client(StorageConfig(account_name="acct", account_key="a2V5"), "backups")
        assert client.container_name == "backups"
        assert client.account_name == "acct"
