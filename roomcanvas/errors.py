"""Error taxonomy for the marking → edit → render pipeline.

Every failure a user can see carries an ``ErrorKind`` and a suggestion string.
Routes turn these into HTTP responses; the orchestrator records them on the
failed render outcome.
"""

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_POLYGON = "INVALID_POLYGON"
    IMAGE_LOAD = "IMAGE_LOAD"
    SAFETY_FILTER = "SAFETY_FILTER"
    TIMEOUT = "TIMEOUT"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    UNKNOWN = "UNKNOWN"
    PERSISTENCE = "PERSISTENCE"
    RENDER_IN_PROGRESS = "RENDER_IN_PROGRESS"
    LABEL_CONFLICT = "LABEL_CONFLICT"
    PLACEMENT_LIMIT = "PLACEMENT_LIMIT"
    NOTHING_TO_RENDER = "NOTHING_TO_RENDER"
    NOT_FOUND = "NOT_FOUND"
    BOOKKEEPING = "BOOKKEEPING"


SUGGESTIONS: dict[ErrorKind, str] = {
    ErrorKind.INVALID_POLYGON: "Redraw the area so it is larger and stays inside the photo.",
    ErrorKind.IMAGE_LOAD: "Could not download the image. Check the image URL is accessible.",
    ErrorKind.SAFETY_FILTER: "Content was blocked by safety filters. Try a different color or area.",
    ErrorKind.TIMEOUT: "Request timed out. Try applying fewer changes at once.",
    ErrorKind.QUOTA_EXCEEDED: "Daily API limit reached. Please try again tomorrow or upgrade your plan.",
    ErrorKind.UNKNOWN: "Rendering failed. Please try again or contact support.",
    ErrorKind.PERSISTENCE: "The result could not be saved. Please submit the changes again.",
    ErrorKind.RENDER_IN_PROGRESS: "A render is already running. Wait for it to finish or cancel it.",
    ErrorKind.LABEL_CONFLICT: "Choose a different name for this wall.",
    ErrorKind.PLACEMENT_LIMIT: "Remove a product before placing another one.",
    ErrorKind.NOTHING_TO_RENDER: "Queue at least one change before rendering.",
    ErrorKind.NOT_FOUND: "Reload the project and try again.",
    ErrorKind.BOOKKEEPING: "",
}

HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.INVALID_POLYGON: 400,
    ErrorKind.IMAGE_LOAD: 502,
    ErrorKind.SAFETY_FILTER: 422,
    ErrorKind.TIMEOUT: 504,
    ErrorKind.QUOTA_EXCEEDED: 429,
    ErrorKind.UNKNOWN: 502,
    ErrorKind.PERSISTENCE: 500,
    ErrorKind.RENDER_IN_PROGRESS: 409,
    ErrorKind.LABEL_CONFLICT: 409,
    ErrorKind.PLACEMENT_LIMIT: 400,
    ErrorKind.NOTHING_TO_RENDER: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.BOOKKEEPING: 500,
}


class RenderError(Exception):
    """Base class for user-visible pipeline failures."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str = "", *, suggestion: str | None = None):
        super().__init__(message or self.kind.value)
        self.message = message or self.kind.value
        self.suggestion = suggestion if suggestion is not None else SUGGESTIONS[self.kind]

    @property
    def status_code(self) -> int:
        return HTTP_STATUS[self.kind]

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "error_code": self.kind.value,
            "suggestion": self.suggestion,
        }


class ValidationError(RenderError):
    """A polygon failed validation. ``reason`` is one of the validator reasons."""

    kind = ErrorKind.INVALID_POLYGON

    def __init__(self, reason: str, message: str = "", *, label: str | None = None):
        self.reason = reason
        self.label = label
        prefix = f"{label}: " if label else ""
        super().__init__(prefix + (message or reason))


class ImageLoadError(RenderError):
    kind = ErrorKind.IMAGE_LOAD


class SafetyRefusal(RenderError):
    kind = ErrorKind.SAFETY_FILTER


class RenderTimeoutError(RenderError):
    kind = ErrorKind.TIMEOUT


class QuotaExceededError(RenderError):
    kind = ErrorKind.QUOTA_EXCEEDED


class UnknownExternalError(RenderError):
    kind = ErrorKind.UNKNOWN


class PersistenceError(RenderError):
    kind = ErrorKind.PERSISTENCE


class RenderInProgressError(RenderError):
    kind = ErrorKind.RENDER_IN_PROGRESS


class LabelConflictError(RenderError):
    kind = ErrorKind.LABEL_CONFLICT


class PlacementLimitError(RenderError):
    kind = ErrorKind.PLACEMENT_LIMIT


class NothingToRenderError(RenderError):
    kind = ErrorKind.NOTHING_TO_RENDER


class NotFoundError(RenderError):
    kind = ErrorKind.NOT_FOUND


class BookkeepingError(RenderError):
    """Secondary write failed after a successful render. Logged, never surfaced as failure."""

    kind = ErrorKind.BOOKKEEPING
