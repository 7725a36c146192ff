"""
Checkpoint Store - Durable last-poll timestamp

Persists the collector's Checkpoint as a small JSON document so a restart
resumes from the last flushed window instead of re-fetching history.

Saves go through a sibling temp file and os.replace, so readers only ever see
the previous or the new checkpoint.

Usage:
    from utils import checkpoint

    state = checkpoint.load_or_create("/data/state/checkpoint.json")
    checkpoint.save(state, "/data/state/checkpoint.json")
"""

import logging
import os
import tempfile
from pathlib import Path

import orjson
from pydantic import ValidationError

from utils.exceptions import CheckpointError
from utils.schemas import Checkpoint

logger = logging.getLogger(__name__)


def exists(path: str) -> bool:
    """Return True if a checkpoint file is present at path."""
    return Path(path).is_file()


def new() -> Checkpoint:
    """Create an empty checkpoint (no prior poll)."""
    return Checkpoint()


def restore(path: str) -> Checkpoint:
    """
    Load a checkpoint from disk.

    Raises:
        CheckpointError: If the file can't be read or doesn't hold a checkpoint
    """
    try:
        raw = Path(path).read_bytes()
    except OSError as e:
        raise CheckpointError(f"Failed to read checkpoint {path}: {e}") from e

    try:
        data = orjson.loads(raw)
        if not isinstance(data, dict):
            raise CheckpointError(f"Invalid checkpoint {path}: expected a JSON object")
        return Checkpoint(**data)
    except (orjson.JSONDecodeError, ValidationError) as e:
        raise CheckpointError(f"Invalid checkpoint {path}: {e}") from e


def save(state: Checkpoint, path: str) -> None:
    """
    Atomically write a checkpoint to disk, creating parent directories.

    Raises:
        CheckpointError: If the checkpoint can't be written
    """
    target = Path(path)
    tmp_name = None

    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=str(target.parent))
        with os.fdopen(fd, "wb") as f:
            f.write(orjson.dumps(state.to_json_dict()))
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, target)
        tmp_name = None
    except OSError as e:
        raise CheckpointError(f"Failed to save checkpoint {path}: {e}") from e
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass

    logger.debug("Checkpoint saved: path=%s, state=%s", path, state.to_json_dict())


def load_or_create(path: str) -> Checkpoint:
    """Restore the checkpoint at path, or start from an empty one if absent."""
    if exists(path):
        state = restore(path)
        logger.info(
            "Checkpoint restored",
            extra={"state_path": path, **state.to_json_dict()},
        )
        return state

    logger.info("No checkpoint found, starting fresh", extra={"state_path": path})
    return new()
