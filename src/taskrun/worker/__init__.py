from .artifacts import ArtifactSource, ArtifactUploader, artifact_url
from .lease import LeaseKeeper, reclaim_delay_ms
from .results import CallResult, UploadResult
from .runner import TaskRun
from .state import RunClaim, RunPhase

__all__ = [
    "ArtifactSource",
    "ArtifactUploader",
    "CallResult",
    "LeaseKeeper",
    "RunClaim",
    "RunPhase",
    "TaskRun",
    "UploadResult",
    "artifact_url",
    "reclaim_delay_ms",
]
