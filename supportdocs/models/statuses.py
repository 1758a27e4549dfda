"""Status vocabularies shared by models, the workflow and the API.

Stored as plain strings; these classes only name the allowed values.
"""


class RunStatus:
    """Lifecycle of anything that runs a sandbox job."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    ALL = frozenset({PENDING, RUNNING, COMPLETED, FAILED})
    TERMINAL = frozenset({COMPLETED, FAILED})


class SectionStatus:
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class SectionType:
    TEMPLATE = "template"
    AI_GENERATED = "ai_generated"
    CUSTOM = "custom"


class RecommendationStatus:
    PENDING = "pending"
    REJECTED = "rejected"
    GENERATED = "generated"


class ReviewStatus:
    UNREVIEWED = "unreviewed"
    APPROVED = "approved"
    REJECTED = "rejected"


class UpdateSource:
    COMMIT = "commit"
    PULL_REQUEST = "pull_request"


class SuggestionType:
    UPDATE_NEEDED = "update_needed"
    NEW_ARTICLE = "new_article"

    ALL = frozenset({UPDATE_NEEDED, NEW_ARTICLE})


class SuggestionPriority:
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    ALL = frozenset({LOW, MEDIUM, HIGH, CRITICAL})
    # Sort order for listings, most urgent first.
    RANK = {CRITICAL: 1, HIGH: 2, MEDIUM: 3, LOW: 4}


class SuggestionStatus:
    PENDING = "pending"
    ACCEPTED = "accepted"
    DISMISSED = "dismissed"


class OnboardingStep:
    BASICS = "basics"
    REPOSITORY = "repository"
    ANALYZE = "analyze"
    SECTIONS = "sections"
    GENERATING = "generating"

    # None (or "complete") means onboarding is finished.
    STEPS = (BASICS, REPOSITORY, ANALYZE, SECTIONS, GENERATING)
    COMPLETE = "complete"


class JobStatus:
    """Lifecycle of a queued job row."""
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
