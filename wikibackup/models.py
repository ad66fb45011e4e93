"""
Data model for backup runs.

- BackupArtifact: one archive file in the local backup directory
- RemoteInventory: listing of recent entries on the remote
- RunLog: timestamped event records for one run
- PhaseResult / RunRecord: per-phase outcomes and the run result
"""

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional


logger = logging.getLogger('wikibackup.run')

TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'
SEPARATOR = '-' * 40

SECONDS_PER_DAY = 86400


class RunState(enum.Enum):
    """Orchestrator states, in execution order."""
    INIT = 'init'
    CLEANUP = 'cleanup'
    CREATE = 'create'
    UPLOAD = 'upload'
    VERIFY = 'verify'
    DONE = 'done'


@dataclass
class BackupArtifact:
    """A backup archive on local disk."""

    path: Path
    modified: datetime
    size: int
    created_at: Optional[datetime] = None

    @property
    def name(self) -> str:
        return self.path.name

    def age(self, now: datetime) -> timedelta:
        """Elapsed time since modification, measured on epoch seconds so DST shifts don't count."""
        return timedelta(seconds=now.timestamp() - self.modified.timestamp())

    def age_in_days(self, now: datetime) -> int:
        """Whole days since last modification, truncated (same as find -mtime)."""
        return int(self.age(now).total_seconds() // SECONDS_PER_DAY)

    def is_expired(self, now: datetime, retention_days: int) -> bool:
        return self.age_in_days(now) > retention_days

    def is_recent(self, now: datetime, window: timedelta) -> bool:
        return self.age(now) < window

    def __repr__(self):
        return f'<BackupArtifact {self.name} size={self.size}>'


@dataclass
class RemoteInventory:
    """Snapshot of recent entries on the remote at verification time."""

    remote: str
    entries: List[str]
    listed_at: datetime

    @property
    def count(self) -> int:
        return len(self.entries)


@dataclass
class LogEvent:
    timestamp: datetime
    message: str
    level: int = logging.INFO

    def format(self) -> str:
        return f"{self.timestamp.strftime(TIMESTAMP_FORMAT)}: {self.message}"


class RunLog:
    """
    Append-only event log for a single run.

    Every event is kept in memory and emitted through the 'wikibackup'
    logger, which writes it to the log file and stdout.
    """

    def __init__(self):
        self.events: List[LogEvent] = []
        self.closed = False

    def add(self, message: str, level: int = logging.INFO) -> LogEvent:
        if self.closed:
            raise RuntimeError("Run log is closed")

        event = LogEvent(timestamp=datetime.now(), message=message, level=level)
        self.events.append(event)
        logger.log(level, message)
        return event

    def close(self):
        """Write the trailing separator (log file only) and stop accepting events."""
        if self.closed:
            return
        self.closed = True
        logger.info(SEPARATOR, extra={'separator': True})

    @property
    def messages(self) -> List[str]:
        return [event.message for event in self.events]

    def lines(self) -> List[str]:
        lines = [event.format() for event in self.events]
        if self.closed:
            lines.append(SEPARATOR)
        return lines

    def __len__(self):
        return len(self.events)


@dataclass
class PhaseResult:
    """Tagged outcome of one phase."""

    phase: RunState
    ok: bool
    detail: str = ''
    error_kind: Optional[str] = None
    warning: Optional[str] = None


@dataclass
class RunRecord:
    """Result of one orchestrator run."""

    started_at: datetime
    status: str = 'running'  # running, success, error
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    error_kind: Optional[str] = None
    phases: List[PhaseResult] = field(default_factory=list)
    deleted_count: int = 0
    uploaded: List[str] = field(default_factory=list)
    inventory: Optional[RemoteInventory] = None
    run_log: RunLog = field(default_factory=RunLog)

    @property
    def succeeded(self) -> bool:
        return self.status == 'success'

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    def phase(self, state: RunState) -> Optional[PhaseResult]:
        for result in self.phases:
            if result.phase is state:
                return result
        return None

    def __repr__(self):
        return f'<RunRecord status={self.status} phases={len(self.phases)}>'
