import orjson
import pytest

from tests.fakes import T0, T1
from utils import checkpoint
from utils.exceptions import CheckpointError, Stage
from utils.schemas import Checkpoint


def test_new_checkpoint_has_no_timestamp() -> None:
    assert checkpoint.new().last_poll_timestamp is None


def test_exists_only_for_files(tmp_path) -> None:
    assert checkpoint.exists(str(tmp_path / "missing.json")) is False
    assert checkpoint.exists(str(tmp_path)) is False


def test_save_writes_rfc3339_document_and_creates_dirs(tmp_path) -> None:
    path = tmp_path / "state" / "nested" / "checkpoint.json"

    checkpoint.save(Checkpoint(last_poll_timestamp=T1), str(path))

    assert orjson.loads(path.read_bytes()) == {"last_poll_timestamp": "2024-03-01T12:00:30Z"}
    assert [p.name for p in path.parent.iterdir()] == ["checkpoint.json"]


def test_restore_reads_saved_checkpoint(tmp_path) -> None:
    path = str(tmp_path / "checkpoint.json")
    checkpoint.save(Checkpoint(last_poll_timestamp=T0), path)

    assert checkpoint.restore(path).last_poll_timestamp == T0


def test_save_replaces_previous_checkpoint(tmp_path) -> None:
    path = str(tmp_path / "checkpoint.json")
    checkpoint.save(Checkpoint(last_poll_timestamp=T0), path)
    checkpoint.save(Checkpoint(last_poll_timestamp=T1), path)

    assert checkpoint.restore(path).last_poll_timestamp == T1


def test_restore_accepts_null_timestamp(tmp_path) -> None:
    path = tmp_path / "checkpoint.json"
    path.write_text('{"last_poll_timestamp": null}')

    assert checkpoint.restore(str(path)).last_poll_timestamp is None


@pytest.mark.parametrize("content", ["{not json", "[]", '{"last_poll_timestamp": "yesterday"}'])
def test_restore_rejects_corrupt_files(tmp_path, content) -> None:
    path = tmp_path / "checkpoint.json"
    path.write_text(content)

    with pytest.raises(CheckpointError) as exc_info:
        checkpoint.restore(str(path))

    assert exc_info.value.stage is Stage.CHECKPOINT


def test_save_failure_raises_checkpoint_error(tmp_path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("a file where a directory should be")

    with pytest.raises(CheckpointError):
        checkpoint.save(Checkpoint(last_poll_timestamp=T0), str(blocker / "checkpoint.json"))


def test_load_or_create(tmp_path) -> None:
    path = str(tmp_path / "checkpoint.json")

    assert checkpoint.load_or_create(path).last_poll_timestamp is None

    checkpoint.save(Checkpoint(last_poll_timestamp=T0), path)
    assert checkpoint.load_or_create(path).last_poll_timestamp == T0
