"""Domain errors."""


class DomainError(Exception):
    """Base domain error."""


class ConfigurationError(DomainError):
    """Rule set configuration is unusable for a run."""


class RuleSetNotFoundError(ConfigurationError):
    """Rule set not found."""


class EmptyComponentListError(ConfigurationError):
    """Rule set or variant has no components."""


class NonMonotonicBandsError(ConfigurationError):
    """Band minimums decrease or bands overlap."""


class InvalidComponentConfigError(ConfigurationError):
    """Component configuration is missing or malformed."""


class ComponentEvaluationError(DomainError):
    """Error evaluating a single component."""


class IntentExecutionError(DomainError):
    """Error executing a component intent."""


class PersistenceError(DomainError):
    """Primary result persistence failed."""


class InvalidLifecycleTransitionError(DomainError):
    """Lifecycle transition not allowed from the current state."""
