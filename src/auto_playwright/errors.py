# errors.py
# Error taxonomy for the planning / execution / replay engine.
#
# Every error carries a `kind` naming its place in the taxonomy so callers
# can branch on it without importing every class.


class AutoPlaywrightError(Exception):
    """Base class for every error raised by the engine."""

    kind = "AutoPlaywrightError"


class ConfigurationError(AutoPlaywrightError):
    """Missing page handle, missing cache directory, task too long. Always fatal."""

    kind = "ConfigurationError"


class CachePathMissingError(ConfigurationError):
    """Raised when the configured cache path is not an existing directory."""

    kind = "CachePathMissingError"


class ValidationError(AutoPlaywrightError):
    """Tool invocation arguments are not valid JSON or fail the action's schema."""

    kind = "ValidationError"


class UnknownActionError(AutoPlaywrightError):
    """Invocation names an action absent from the registry."""

    kind = "UnknownActionError"


class ExecutionError(AutoPlaywrightError):
    """An action executor raised while operating on the page."""

    kind = "ExecutionError"


class NoResultError(AutoPlaywrightError):
    """The plan loop ended without a result-class invocation."""

    kind = "NoResultError"


class CacheCorruptionError(AutoPlaywrightError):
    """A cache file exists but is not valid JSON or not fingerprint-keyed."""

    kind = "CacheCorruptionError"


class TaskFailedError(AutoPlaywrightError):
    """The planner reported the task as impossible via resultError."""

    kind = "TaskFailedError"
