"""Error taxonomy shared by services and transports."""


class CrewRuntimeError(Exception):
    """Base class for errors raised by the runtime."""

    status_code = 500


class NotFoundError(CrewRuntimeError):
    """A task, execution, template, agent or crew id could not be resolved."""

    status_code = 404


class InvalidStateError(CrewRuntimeError):
    """The operation is not valid for the current state of the entity."""

    status_code = 409


class ExecutionCancelledError(InvalidStateError):
    """The execution was cancelled while the provider call was in flight."""


class ProviderError(CrewRuntimeError):
    """The AI provider call failed."""

    status_code = 502


class RepositoryError(CrewRuntimeError):
    """The persistence layer failed."""

    status_code = 503
