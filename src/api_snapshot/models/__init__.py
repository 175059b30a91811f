from .changelog import ChangeLogEntry, Disposition
from .common import Headers, utc_now_iso
from .diff import Comparison, Difference, DiffKind, Severity
from .endpoint import (
    HTTP_METHODS,
    AuthDescriptor,
    EndpointTemplate,
    ParameterDefinition,
    ParameterPattern,
    ResolvedRequest,
)
from .operation import CaptureOperation, OperationKind, OperationState
from .snapshot import BodyFormat, HttpResponse, RecordedResponse, Snapshot, SnapshotStatus

__all__ = [
    "Headers",
    "utc_now_iso",
    "HTTP_METHODS",
    "AuthDescriptor",
    "EndpointTemplate",
    "ResolvedRequest",
    "ParameterPattern",
    "ParameterDefinition",
    "HttpResponse",
    "RecordedResponse",
    "BodyFormat",
    "Snapshot",
    "SnapshotStatus",
    "DiffKind",
    "Severity",
    "Difference",
    "Comparison",
    "OperationKind",
    "OperationState",
    "CaptureOperation",
    "Disposition",
    "ChangeLogEntry",
]
