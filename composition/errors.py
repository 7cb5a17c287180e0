"""
Errors raised while composing and synthesizing the app.

None of these are transient: they point at a configuration or code defect
and abort the run.
"""


class CompositionError(Exception):
    """Base class for errors raised by the application context."""

    def __init__(self, message: str, identifier=None) -> None:
        super().__init__(message)
        self.identifier = identifier


class InvalidIdentifierError(CompositionError, ValueError):
    """The identifier breaks the stack naming rules."""


class DuplicateIdentifierError(CompositionError):
    """A unit is already registered under the identifier."""


class ReentrantRegistrationError(CompositionError):
    """A factory tried to register into the context that is building it."""


class CollaboratorContractError(CompositionError):
    """A factory returned something that is not a stack bound to the context."""


class ContextClosedError(CompositionError):
    """The context was torn down."""
