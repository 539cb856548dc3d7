"""Stream transports, the event bus, and channel naming."""

from podtrail.transports.base import (
    EventBus,
    LogBatch,
    StreamTransport,
    log_data_channel,
    log_ended_channel,
)
from podtrail.transports.file import FileTransport
from podtrail.transports.kubectl import KubectlTransport, build_command, kubectl_target

__all__ = [
    "EventBus",
    "FileTransport",
    "KubectlTransport",
    "LogBatch",
    "StreamTransport",
    "build_command",
    "kubectl_target",
    "log_data_channel",
    "log_ended_channel",
]
