"""Error taxonomy for human-in-the-loop orchestration."""


class OrchestrationError(Exception):
    """Base error for orchestration operations."""


class ConfigurationError(OrchestrationError):
    """Raised when a workflow cannot start with the given task or roster."""


class ContextBuildError(OrchestrationError, ValueError):
    """Raised when a turn context cannot be assembled from its inputs."""


class InvalidDecisionError(OrchestrationError, ValueError):
    """Raised when a reviewer decision tag is not recognized."""


class HumanGateBusyError(OrchestrationError):
    """Raised when a session already has an outstanding decision request."""


class WorkflowCompletedError(OrchestrationError):
    """Raised when a completed workflow is asked to transition again."""
