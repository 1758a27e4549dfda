"""Custom exception hierarchy for the generation pipeline."""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorCode(str, Enum):
    """Standardized error codes for API responses and job failure records."""

    # Entity errors
    PROJECT_NOT_FOUND = "PROJECT_NOT_FOUND"
    SECTION_NOT_FOUND = "SECTION_NOT_FOUND"
    ARTICLE_NOT_FOUND = "ARTICLE_NOT_FOUND"
    RECOMMENDATION_NOT_FOUND = "RECOMMENDATION_NOT_FOUND"
    UPDATE_NOT_FOUND = "UPDATE_NOT_FOUND"
    UPDATE_CHECK_NOT_FOUND = "UPDATE_CHECK_NOT_FOUND"
    SUGGESTION_NOT_FOUND = "SUGGESTION_NOT_FOUND"
    JOB_NOT_FOUND = "JOB_NOT_FOUND"

    # Pipeline errors
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    SANDBOX_TIMEOUT = "SANDBOX_TIMEOUT"
    SUBPROCESS_FAILURE = "SUBPROCESS_FAILURE"
    OUTPUT_PARSE_ERROR = "OUTPUT_PARSE_ERROR"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    UPSTREAM_API_ERROR = "UPSTREAM_API_ERROR"

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Concurrency errors
    CONFLICT = "CONFLICT"

    # Generic errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class PipelineError(Exception):
    """
    Base exception for all pipeline errors.

    Provides structured error responses with:
    - Human-readable message
    - Machine-readable error code
    - HTTP status code
    - Optional additional details
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize exception.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            status_code: HTTP status code to return
            details: Optional additional context/details
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for JSON response.

        Returns:
            Dictionary with error, message, and details fields
        """
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details
        }


# ---------------------------------------------------------------------------
# Not-found errors (one per aggregate, used by BaseRepository.get_by_id)
# ---------------------------------------------------------------------------

class EntityNotFoundError(PipelineError):
    """Base for missing database entities."""

    entity = "Entity"
    code = ErrorCode.INTERNAL_ERROR

    def __init__(self, entity_id: str):
        super().__init__(
            f"{self.entity} not found: {entity_id}",
            self.code,
            status_code=404,
            details={"id": entity_id}
        )


class ProjectNotFoundError(EntityNotFoundError):
    entity = "Project"
    code = ErrorCode.PROJECT_NOT_FOUND


class SectionNotFoundError(EntityNotFoundError):
    entity = "Section"
    code = ErrorCode.SECTION_NOT_FOUND


class ArticleNotFoundError(EntityNotFoundError):
    entity = "Article"
    code = ErrorCode.ARTICLE_NOT_FOUND


class RecommendationNotFoundError(EntityNotFoundError):
    entity = "Recommendation"
    code = ErrorCode.RECOMMENDATION_NOT_FOUND


class UpdateNotFoundError(EntityNotFoundError):
    entity = "Update"
    code = ErrorCode.UPDATE_NOT_FOUND


class UpdateCheckNotFoundError(EntityNotFoundError):
    entity = "Article update check"
    code = ErrorCode.UPDATE_CHECK_NOT_FOUND


class SuggestionNotFoundError(EntityNotFoundError):
    entity = "Article update suggestion"
    code = ErrorCode.SUGGESTION_NOT_FOUND


class JobNotFoundError(EntityNotFoundError):
    entity = "Job"
    code = ErrorCode.JOB_NOT_FOUND


# ---------------------------------------------------------------------------
# Pipeline failure taxonomy
# ---------------------------------------------------------------------------

class ConfigurationError(PipelineError):
    """A required secret or credential is unavailable before the sandbox starts."""

    def __init__(self, message: str, missing: Optional[str] = None):
        details = {"missing": missing} if missing else {}
        super().__init__(
            message,
            ErrorCode.CONFIGURATION_ERROR,
            status_code=500,
            details=details
        )


class SandboxTimeoutError(PipelineError):
    """The sandbox exceeded its wall-clock budget and was killed."""

    def __init__(self, entry_point: str, timeout: int, stdout: str = "", stderr: str = ""):
        super().__init__(
            f"{entry_point} timed out after {timeout} seconds",
            ErrorCode.SANDBOX_TIMEOUT,
            status_code=504,
            details={"entry_point": entry_point, "timeout": timeout}
        )
        self.entry_point = entry_point
        self.timeout = timeout
        self.stdout = stdout
        self.stderr = stderr


class SubprocessFailure(PipelineError):
    """The sandbox process exited with a non-zero status."""

    def __init__(self, entry_point: str, exit_code: int, stdout: str = "", stderr: str = ""):
        summary = stderr.strip() or stdout.strip() or f"exit code {exit_code}"
        super().__init__(
            f"{entry_point} failed (exit {exit_code}): {summary}",
            ErrorCode.SUBPROCESS_FAILURE,
            status_code=502,
            details={"entry_point": entry_point, "exit_code": exit_code}
        )
        self.entry_point = entry_point
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr


class OutputParseError(PipelineError):
    """Output files were present but malformed."""

    def __init__(self, reason: str, excerpt: str = ""):
        super().__init__(
            reason,
            ErrorCode.OUTPUT_PARSE_ERROR,
            status_code=502,
            details={"excerpt": excerpt}
        )
        self.reason = reason
        self.excerpt = excerpt


class PersistenceError(PipelineError):
    """A derived record failed validation on insert."""

    def __init__(self, message: str, record: Optional[Dict[str, Any]] = None):
        super().__init__(
            message,
            ErrorCode.PERSISTENCE_ERROR,
            status_code=422,
            details={"record": record} if record else {}
        )


class UpstreamAPIError(PipelineError):
    """The source repository host returned an error after retries."""

    def __init__(self, message: str, upstream_status: int = 0):
        super().__init__(
            message,
            ErrorCode.UPSTREAM_API_ERROR,
            status_code=502,
            details={"upstream_status": upstream_status}
        )
        self.upstream_status = upstream_status


class ValidationError(PipelineError):
    """Validation failed for user input."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(
            message,
            ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details=details
        )


class ConflictError(PipelineError):
    """The entity is already being processed by another job."""

    def __init__(self, entity_type: str, entity_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"{entity_type} {entity_id} is already running",
            ErrorCode.CONFLICT,
            status_code=409,
            details={"entity_type": entity_type, "entity_id": entity_id}
        )
