"""
Stack identifier policy.

Identifiers double as CloudFormation stack names, so they follow the
CloudFormation rules: start with a letter, then letters, digits and hyphens,
at most 128 characters.
"""

import re

from composition.errors import InvalidIdentifierError

MAX_IDENTIFIER_LENGTH = 128

IDENTIFIER_PATTERN = re.compile(r"[A-Za-z][A-Za-z0-9-]*")


def validate_identifier(identifier, max_length: int = MAX_IDENTIFIER_LENGTH) -> str:
    """Return ``identifier`` unchanged or raise InvalidIdentifierError."""
    if not isinstance(identifier, str):
        raise InvalidIdentifierError(
            f"Stack identifier must be a string, got {type(identifier).__name__}",
            identifier=identifier,
        )

    if not identifier:
        raise InvalidIdentifierError("Stack identifier must not be empty", identifier=identifier)

    if len(identifier) > max_length:
        raise InvalidIdentifierError(
            f"Stack identifier '{identifier[:32]}...' is {len(identifier)} characters long "
            f"(limit {max_length})",
            identifier=identifier,
        )

    if not IDENTIFIER_PATTERN.fullmatch(identifier):
        raise InvalidIdentifierError(
            f"Stack identifier {identifier!r} must start with a letter and contain only "
            "letters, digits and hyphens",
            identifier=identifier,
        )

    return identifier


def resolve_identifier(config) -> str:
    """
    Derive the stack identifier from deployment configuration.

    An explicit ``stack_id`` wins; otherwise the identifier is
    ``<service_name>-<environment>``, e.g. ``pathery-dev``. The result only
    depends on ``config`` so re-running against the same configuration always
    targets the same stack.
    """
    if config.stack_id:
        return config.stack_id
    return f"{config.service_name}-{config.environment}"
