"""
Composition root support for the Pathery CDK app.

Holds the application context that owns the construct tree, the identifier
policy, the stack factory contract and the deployment configuration.
"""

from composition.config import DeploymentConfig
from composition.context import ApplicationContext, Artifact
from composition.errors import (
    CollaboratorContractError,
    CompositionError,
    ContextClosedError,
    DuplicateIdentifierError,
    InvalidIdentifierError,
    ReentrantRegistrationError,
)
from composition.factory import PatheryStackFactory, StackFactory
from composition.identifiers import resolve_identifier, validate_identifier

__all__ = [
    "ApplicationContext",
    "Artifact",
    "CollaboratorContractError",
    "CompositionError",
    "ContextClosedError",
    "DeploymentConfig",
    "DuplicateIdentifierError",
    "InvalidIdentifierError",
    "PatheryStackFactory",
    "ReentrantRegistrationError",
    "StackFactory",
    "resolve_identifier",
    "validate_identifier",
]
