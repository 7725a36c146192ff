"""
Output sinks for rotated batch files.

Each output durably stores or forwards one finished batch file. The poll loop
writes the batch to every configured output, in order, before the temp file is
removed and the checkpoint advanced.

Outputs:
- file: copy into OUTPUT_DIR as audit_logs_[YYYYMMDD_HHMMSS].jsonl
- sftp: upload into SFTP_REMOTE_DIR with the same name
"""

import logging
import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol, Sequence

from utils.config import Settings
from utils.exceptions import OutputError
from utils.sftp import SftpUploader

logger = logging.getLogger(__name__)


def batch_file_name(timestamp: datetime) -> str:
    """Name a batch file after the checkpoint it completes."""
    return f"audit_logs_{timestamp.strftime('%Y%m%d_%H%M%S')}.jsonl"


class Output(Protocol):
    name: str

    def write(self, path: Path, timestamp: datetime) -> None: ...


class FileOutput:
    """Copies batch files into a local directory."""

    name = "file"

    def __init__(self, output_dir: str) -> None:
        self.output_dir = Path(output_dir)

    def write(self, path: Path, timestamp: datetime) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        target = self.output_dir / batch_file_name(timestamp)
        partial = target.with_name(f".{target.name}.part")

        shutil.copyfile(path, partial)
        os.replace(partial, target)

        logger.info("Batch written to file output: path=%s", str(target))


class SftpOutput:
    """Uploads batch files to an SFTP server."""

    name = "sftp"

    def __init__(self, uploader: SftpUploader, remote_dir: str) -> None:
        self.uploader = uploader
        self.remote_dir = remote_dir

    def write(self, path: Path, timestamp: datetime) -> None:
        self.uploader.upload(str(path), self.remote_dir, remote_name=batch_file_name(timestamp))


def build_outputs(settings: Settings, uploader: Optional[SftpUploader] = None) -> list[Output]:
    """Instantiate the outputs named in settings.OUTPUTS, in order."""
    outputs: list[Output] = []
    for name in settings.OUTPUTS:
        if name == "file":
            outputs.append(FileOutput(settings.OUTPUT_DIR))
        elif name == "sftp":
            outputs.append(SftpOutput(uploader or SftpUploader(settings), settings.SFTP_REMOTE_DIR))
        else:
            raise ValueError(f"Unsupported output: {name}")
    return outputs


def write_to_outputs(outputs: Sequence[Output], path: Path, timestamp: datetime) -> None:
    """
    Write a batch file to every output.

    Raises:
        OutputError: On the first output that fails
    """
    for output in outputs:
        try:
            output.write(path, timestamp)
        except Exception as e:
            raise OutputError(f"Unable to write to {output.name} output: {e}") from e
