import pytest

from apps.collector.writer import TmpWriter
from utils.exceptions import WriterError


def test_rotate_returns_closed_file_with_written_lines(tmp_path) -> None:
    writer = TmpWriter(str(tmp_path))
    first_path = writer.current_path

    writer.write_log('{"uuid":"a"}')
    writer.write_log('{"uuid":"b"}')
    closed = writer.rotate()

    assert closed == first_path
    assert writer.last_file_path == first_path
    assert closed.read_text(encoding="utf-8") == '{"uuid":"a"}\n{"uuid":"b"}\n'
    assert writer.current_path != first_path
    assert writer.current_path.exists()
    writer.close()


def test_lines_after_rotation_go_to_new_file(tmp_path) -> None:
    writer = TmpWriter(str(tmp_path))
    writer.write_log("one")
    first = writer.rotate()
    writer.write_log("two")
    second = writer.rotate()

    assert first.read_text() == "one\n"
    assert second.read_text() == "two\n"
    writer.close()


def test_close_discards_open_file(tmp_path) -> None:
    writer = TmpWriter(str(tmp_path))
    current = writer.current_path
    writer.write_log("unflushed")

    writer.close()
    writer.close()

    assert not current.exists()
    with pytest.raises(WriterError):
        writer.write_log("late")


def test_temp_directory_is_created(tmp_path) -> None:
    writer = TmpWriter(str(tmp_path / "a" / "b"))

    assert writer.current_path.parent == tmp_path / "a" / "b"
    writer.close()


def test_close_discards_rotated_batch_that_was_not_flushed(tmp_path) -> None:
    writer = TmpWriter(str(tmp_path))
    writer.write_log('{"uuid":"a"}')
    batch = writer.rotate()

    writer.close()

    assert not batch.exists()
    assert list(tmp_path.iterdir()) == []


def test_close_after_flushed_batch_was_removed(tmp_path) -> None:
    writer = TmpWriter(str(tmp_path))
    writer.rotate().unlink()

    writer.close()

    assert list(tmp_path.iterdir()) == []
