"""
Error taxonomy shared by the scheduling engine services.

Routes translate these into HTTP responses; services raise them and never
turn a provider failure into an empty result.
"""


class SchedulingEngineError(Exception):
    """Base exception for scheduling engine errors."""

    error_code = "engine_error"

    def __init__(self, message: str, error_code: str | None = None, recoverable: bool = True):
        super().__init__(message)
        if error_code:
            self.error_code = error_code
        self.recoverable = recoverable


class Unauthenticated(SchedulingEngineError):
    """No verifiable caller identity."""

    error_code = "unauthenticated"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, recoverable=False)


class InvalidState(SchedulingEngineError):
    """OAuth state parameter is malformed, forged or expired."""

    error_code = "invalid_state"

    def __init__(self, message: str = "Invalid OAuth state"):
        super().__init__(message, recoverable=False)


class NotConnected(SchedulingEngineError):
    """No stored delegated credential for the user."""

    error_code = "calendar_not_connected"

    def __init__(self, user_id: str, provider: str = "google"):
        super().__init__("Please connect your calendar", recoverable=False)
        self.user_id = user_id
        self.provider = provider


class ProviderUnavailable(SchedulingEngineError):
    """Non-success response, transport error or timeout from a third-party call."""

    error_code = "provider_unavailable"

    def __init__(
        self,
        message: str,
        operation: str = "unknown",
        status_code: int | None = None,
        timed_out: bool = False,
        response_data: dict | None = None,
    ):
        super().__init__(message, recoverable=True)
        self.operation = operation
        self.status_code = status_code
        self.timed_out = timed_out
        self.response_data = response_data or {}


class InvalidGrant(ProviderUnavailable):
    """The token endpoint rejected a code or refresh token (invalid_grant)."""

    error_code = "invalid_grant"


class InsufficientCapacity(SchedulingEngineError):
    """A task could not be fully placed in the remaining free time."""

    error_code = "insufficient_capacity"

    def __init__(self, task_title: str, remaining_minutes: int):
        super().__init__(
            f"Not enough free time to place task '{task_title}' "
            f"({remaining_minutes} minutes left unplaced)",
            recoverable=False,
        )
        self.task_title = task_title
        self.remaining_minutes = remaining_minutes


class InvalidPlan(SchedulingEngineError):
    """Plan content cannot be scheduled as given (e.g. dependency cycle)."""

    error_code = "invalid_plan"

    def __init__(self, message: str):
        super().__init__(message, recoverable=False)


class InvalidWorkingHours(SchedulingEngineError):
    """Weekly availability template is not usable."""

    error_code = "invalid_working_hours"

    def __init__(self, message: str):
        super().__init__(message, recoverable=False)


class SchedulingInProgress(SchedulingEngineError):
    """Another scheduling request for the same user holds the lock."""

    error_code = "scheduling_in_progress"

    def __init__(self, user_id: str):
        super().__init__("A scheduling request is already running for this user")
        self.user_id = user_id


class CredentialMalformed(SchedulingEngineError):
    """Service-principal credential cannot be parsed or its key imported."""

    error_code = "credential_malformed"

    def __init__(self, message: str):
        super().__init__(message, recoverable=False)


class AssertionExchangeFailed(SchedulingEngineError):
    """Token endpoint refused the signed JWT assertion."""

    error_code = "assertion_exchange_failed"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, recoverable=False)
        self.status_code = status_code


class PlanGenerationError(SchedulingEngineError):
    """Planning service answered but the content is not a usable plan."""

    error_code = "plan_generation_failed"


class CommitFailure(SchedulingEngineError):
    """Persistence failed after placement succeeded; the schedule is valid but unsaved."""

    error_code = "commit_failed"

    def __init__(self, message: str, sessions: list | None = None):
        super().__init__(message, recoverable=True)
        self.sessions = sessions or []
