"""Domain errors.

Errors local to a single document (``DocumentError`` and subclasses) are
absorbed by the batch worker into partial-success accounting. Everything
else either rejects a request outright or fails the whole job.
"""


class MissionOrderError(Exception):
    pass


class ValidationError(MissionOrderError):
    """Bad enqueue input; rejected immediately and never retried."""


class Unauthorized(MissionOrderError):
    pass


class JobNotFound(MissionOrderError):
    pass


class ArtifactNotFound(MissionOrderError):
    pass


class JobConflict(MissionOrderError):
    pass


class RaceRecovered(MissionOrderError):
    """A concurrent enqueue won the dedupe race; the caller re-queries."""

    def __init__(self, job_type: str, dedupe_key: str) -> None:
        super().__init__(f"dedupe race on {job_type}:{dedupe_key}")
        self.job_type = job_type
        self.dedupe_key = dedupe_key


class UpstreamError(MissionOrderError):
    """An upstream HTTP API answered with an error status."""

    def __init__(self, status_code: int, url: str, detail: str) -> None:
        super().__init__(f"HTTP {status_code} from {url}: {detail}")
        self.status_code = status_code


class DocumentError(MissionOrderError):
    pass


class SourceDataUnavailable(DocumentError):
    pass


class StorageError(DocumentError):
    pass


class AssetUnavailable(DocumentError):
    pass


class RenderError(DocumentError):
    pass


class MailDeliveryError(DocumentError):
    pass


class FatalJobFailure(MissionOrderError):
    pass
