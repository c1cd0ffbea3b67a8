"""Suno relay — KIE.ai music generation with API key failover and task history."""

from suno_relay.client import (
    CredentialRejectedError,
    FailoverClient,
    NoCredentialsError,
    ProtocolViolationError,
    RelayError,
    RequestSpec,
    TaskNotFoundError,
    TransientNetworkError,
)
from suno_relay.history import JsonHistoryStore
from suno_relay.models import CanonicalStatus, CheckResult, Clip, GenerationJob, TaskRecord
from suno_relay.reconciler import TaskReconciler
from suno_relay.service import RelayService

__all__ = [
    "FailoverClient",
    "RequestSpec",
    "RelayError",
    "NoCredentialsError",
    "CredentialRejectedError",
    "TaskNotFoundError",
    "TransientNetworkError",
    "ProtocolViolationError",
    "JsonHistoryStore",
    "CanonicalStatus",
    "CheckResult",
    "Clip",
    "GenerationJob",
    "TaskRecord",
    "TaskReconciler",
    "RelayService",
]
