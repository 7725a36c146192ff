"""
Collector exception types.

Every fatal condition carries the pipeline stage it came from so the
supervisor can report it without inspecting the exception class.
"""

from enum import Enum
from typing import Optional


class Stage(str, Enum):
    FETCH = "fetch"
    WRITE = "write"
    OUTPUT = "output"
    CHECKPOINT = "checkpoint"


class CollectorError(Exception):
    """Base exception for unrecoverable collector errors."""

    stage: Stage = Stage.FETCH

    def __init__(self, message: str, stage: Optional[Stage] = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class FetchError(CollectorError):
    """Transport failure, unexpected HTTP status or undecodable response."""

    stage = Stage.FETCH

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitExhaustedError(FetchError):
    """The API kept rate limiting after the backoff cap was reached."""


class WriterError(CollectorError):
    stage = Stage.WRITE


class OutputError(CollectorError):
    stage = Stage.OUTPUT


class CheckpointError(CollectorError):
    stage = Stage.CHECKPOINT
