from pathlib import Path
from unittest.mock import MagicMock

import pytest

from apps.collector.outputs import (
    FileOutput,
    SftpOutput,
    batch_file_name,
    build_outputs,
    write_to_outputs,
)
from tests.fakes import T1
from utils.exceptions import OutputError, Stage


@pytest.fixture
def batch(tmp_path) -> Path:
    path = tmp_path / "batch.jsonl"
    path.write_text('{"uuid":"a"}\n{"uuid":"b"}\n', encoding="utf-8")
    return path


def test_batch_file_name_uses_checkpoint_timestamp() -> None:
    assert batch_file_name(T1) == "audit_logs_20240301_120030.jsonl"


def test_file_output_copies_batch(tmp_path, batch) -> None:
    out_dir = tmp_path / "out"

    FileOutput(str(out_dir)).write(batch, T1)

    written = out_dir / "audit_logs_20240301_120030.jsonl"
    assert written.read_text(encoding="utf-8") == batch.read_text(encoding="utf-8")
    assert sorted(p.name for p in out_dir.iterdir()) == ["audit_logs_20240301_120030.jsonl"]
    assert batch.exists()


def test_sftp_output_uploads_with_batch_name(batch) -> None:
    uploader = MagicMock()

    SftpOutput(uploader, "/upload/audit").write(batch, T1)

    uploader.upload.assert_called_once_with(
        str(batch), "/upload/audit", remote_name="audit_logs_20240301_120030.jsonl"
    )


def test_build_outputs_follows_configured_order(make_settings) -> None:
    settings = make_settings(OUTPUTS=["sftp", "file"], SFTP_HOST="sftp.example.com", SFTP_USERNAME="collector")

    outputs = build_outputs(settings, uploader=MagicMock())

    assert [o.name for o in outputs] == ["sftp", "file"]


def test_write_to_outputs_stops_at_first_failure(batch) -> None:
    failing = MagicMock()
    failing.name = "sftp"
    failing.write.side_effect = IOError("connection reset")
    after = MagicMock()

    with pytest.raises(OutputError, match="sftp output") as exc_info:
        write_to_outputs([failing, after], batch, T1)

    assert exc_info.value.stage is Stage.OUTPUT
    after.write.assert_not_called()
