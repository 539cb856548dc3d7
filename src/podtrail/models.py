"""Pydantic models for podtrail."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import StrEnum

from pydantic import BaseModel, ConfigDict

MAX_LOG_LINES = 50_000


class LogLevel(StrEnum):
    """Normalized log severity."""

    ERROR = "error"
    WARN = "warn"
    INFO = "info"
    DEBUG = "debug"
    TRACE = "trace"
    UNKNOWN = "unknown"


ALL_LOG_LEVELS: tuple[LogLevel, ...] = tuple(LogLevel)


class ParsedLine(BaseModel):
    """A classified log line. `raw` keeps its escape sequences for colored display."""

    model_config = ConfigDict(frozen=True)

    raw: str
    level: LogLevel = LogLevel.UNKNOWN
    timestamp: str | None = None
    message: str = ""


class ClassifierConfig(BaseModel):
    """JSON level fields to probe (in priority order) and lower-cased level aliases."""

    model_config = ConfigDict(frozen=True)

    json_level_fields: tuple[str, ...]
    level_mapping: dict[str, LogLevel]

    def resolve(self, value: str) -> LogLevel:
        """Map a raw level string to a level, UNKNOWN if it is not an alias."""
        return self.level_mapping.get(value.lower(), LogLevel.UNKNOWN)


class SessionKind(StrEnum):
    """Type of panel session."""

    LOGS = "logs"
    SHELL = "shell"
    TERMINAL = "terminal"


class TargetKind(StrEnum):
    """Kind of workload a log stream is attached to."""

    POD = "pod"
    DEPLOYMENT = "deployment"
    STATEFULSET = "statefulset"
    DAEMONSET = "daemonset"
    JOB = "job"


class LogTarget(BaseModel):
    """What a log session streams from."""

    model_config = ConfigDict(frozen=True)

    kind: TargetKind = TargetKind.POD
    name: str


class InteractiveTarget(BaseModel):
    """What a shell or terminal session attaches to."""

    model_config = ConfigDict(frozen=True)

    pod: str | None = None
    container: str | None = None
    context: str | None = None
    namespace: str | None = None


@dataclass(slots=True)
class Session:
    """A panel session. Buffer fields only carry meaning for the logs kind."""

    id: str
    kind: SessionKind
    title: str
    target: LogTarget | None = None
    interactive: InteractiveTarget | None = None
    lines: deque[str] = field(default_factory=lambda: deque(maxlen=MAX_LOG_LINES))
    is_following: bool = False
    is_streaming: bool = False
    search_query: str = ""
    selected_container: str | None = None
    available_containers: list[str] = field(default_factory=list)
    evicted: int = 0
    generation: int = 0


class SourceDescriptor(BaseModel):
    """One pod the aggregator can stream from."""

    model_config = ConfigDict(frozen=True)

    name: str
    workload_name: str | None = None
    status: str = "Running"

    @property
    def workload(self) -> str:
        return self.workload_name or self.name


class ErrorRecord(BaseModel):
    """A single retained error/warn line, before deduplication."""

    model_config = ConfigDict(frozen=True)

    id: str
    seq: int
    line: ParsedLine
    source_id: str
    workload_name: str
    epoch_ms: float


class AggregatedEntry(BaseModel):
    """A deduplicated aggregator row."""

    id: str
    line: ParsedLine
    source_id: str
    workload_name: str
    count: int = 1
    sources: set[str]
    epoch_ms: float
    seq: int

    @property
    def level(self) -> LogLevel:
        return self.line.level

    @property
    def message(self) -> str:
        return self.line.message
