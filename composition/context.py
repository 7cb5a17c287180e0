"""
Application context for the CDK app.

Wraps a single ``aws_cdk.App`` and keeps track of the stacks registered under
it, in registration order, so synthesis output is ordered the same way.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

import aws_cdk as cdk
from aws_cdk import Stack

from composition.errors import (
    CollaboratorContractError,
    ContextClosedError,
    DuplicateIdentifierError,
    ReentrantRegistrationError,
)
from composition.identifiers import MAX_IDENTIFIER_LENGTH, validate_identifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Artifact:
    """
    Synthesized CloudFormation template of one registered stack.

    The template is held as its canonical JSON text; ``template`` parses a
    fresh copy on every access.
    """

    identifier: str
    document: str = field(repr=False)
    template_path: Optional[str] = None

    @classmethod
    def from_template(
        cls, identifier: str, template: Dict[str, Any], template_path: Optional[str] = None
    ) -> "Artifact":
        return cls(
            identifier=identifier,
            document=json.dumps(template, indent=1, sort_keys=True),
            template_path=template_path,
        )

    @property
    def template(self) -> Dict[str, Any]:
        return json.loads(self.document)


class ApplicationContext:
    """
    Root of the construct tree for one synthesis run.

    Each instance owns its own ``cdk.App``; nothing is shared between
    instances, so several contexts can live in the same process.
    """

    def __init__(
        self,
        outdir: Optional[str] = None,
        context: Optional[Mapping[str, Any]] = None,
        max_identifier_length: int = MAX_IDENTIFIER_LENGTH,
    ) -> None:
        self._app = cdk.App(outdir=outdir, context=dict(context) if context else None)
        self._max_identifier_length = max_identifier_length
        self._units: Dict[str, Stack] = {}
        self._artifacts: Optional[Tuple[Artifact, ...]] = None
        self._synthesized = False
        self._constructing: Optional[str] = None
        self._closed = False

    @classmethod
    def create(cls, outdir: Optional[str] = None, context: Optional[Mapping[str, Any]] = None):
        return cls(outdir=outdir, context=context)

    @property
    def scope(self) -> cdk.App:
        """CDK scope stacks are constructed under."""
        return self._app

    @property
    def outdir(self) -> str:
        return self._app.outdir

    @property
    def identifiers(self) -> Tuple[str, ...]:
        return tuple(self._units)

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._units)

    def __contains__(self, identifier) -> bool:
        return identifier in self._units

    def __getitem__(self, identifier: str) -> Stack:
        return self._units[identifier]

    def try_get_context(self, key: str):
        return self._app.node.try_get_context(key)

    def register_child(self, identifier: str, factory, config=None) -> Stack:
        """
        Build a stack through ``factory`` and register it under ``identifier``.

        The registry is only updated once the factory has returned a stack
        bound to this context, so every failure leaves it unchanged.
        Exceptions raised by the factory propagate as they are.

        Raises:
            InvalidIdentifierError: identifier breaks the naming rules
            DuplicateIdentifierError: identifier already registered
            ReentrantRegistrationError: called from inside a factory build
            CollaboratorContractError: factory returned a non-conforming unit
            ContextClosedError: context was torn down
        """
        self._ensure_open()
        validate_identifier(identifier, self._max_identifier_length)

        if self._constructing is not None:
            raise ReentrantRegistrationError(
                f"Cannot register '{identifier}' while '{self._constructing}' is being built",
                identifier=identifier,
            )

        if identifier in self._units:
            raise DuplicateIdentifierError(
                f"A stack is already registered under '{identifier}'", identifier=identifier
            )

        existing = {child.node.id for child in self._app.node.children}

        self._constructing = identifier
        try:
            unit = factory.build(self, identifier, config)
        except Exception:
            logger.error("Stack factory %s failed to build '%s'", type(factory).__name__, identifier)
            self._discard_children_except(existing)
            raise
        finally:
            self._constructing = None

        try:
            self._check_unit(identifier, unit)
        except CollaboratorContractError:
            self._discard_children_except(existing)
            raise

        self._units[identifier] = unit
        self._artifacts = None
        logger.info("Registered stack '%s' (%d registered)", identifier, len(self._units))
        return unit

    def synthesize(self) -> Tuple[Artifact, ...]:
        """
        Synthesize the cloud assembly and return one artifact per stack.

        Artifacts follow registration order. Calling this again without a new
        registration returns the same artifacts without re-running synthesis.
        """
        self._ensure_open()

        if self._artifacts is not None:
            logger.debug("Construct tree unchanged, reusing %d artifact(s)", len(self._artifacts))
            return self._artifacts

        # Re-synthesis after new registrations needs force, the App caches its assembly
        assembly = self._app.synth(force=True) if self._synthesized else self._app.synth()
        self._synthesized = True

        artifacts = []
        for identifier, unit in self._units.items():
            stack_artifact = assembly.get_stack_artifact(unit.artifact_id)
            artifacts.append(
                Artifact.from_template(
                    identifier,
                    stack_artifact.template,
                    template_path=stack_artifact.template_full_path,
                )
            )

        self._artifacts = tuple(artifacts)
        logger.info("Synthesized %d stack(s) to %s", len(self._artifacts), assembly.directory)
        return self._artifacts

    def teardown(self) -> None:
        """Release the registry. Safe to call more than once."""
        if self._closed:
            return
        self._units.clear()
        self._artifacts = None
        self._closed = True
        logger.debug("Application context torn down")

    def _ensure_open(self) -> None:
        if self._closed:
            raise ContextClosedError("Application context has been torn down")

    def _discard_children_except(self, keep) -> None:
        """Detach constructs a failed build left under the App."""
        for child in list(self._app.node.children):
            child_id = child.node.id
            if child_id not in keep:
                self._app.node.try_remove_child(child_id)
                logger.debug("Removed construct '%s' left by a failed build", child_id)

    def _check_unit(self, identifier: str, unit) -> None:
        if not isinstance(unit, Stack):
            raise CollaboratorContractError(
                f"Factory returned {type(unit).__name__} for '{identifier}', expected a Stack",
                identifier=identifier,
            )
        if unit.node.id != identifier:
            raise CollaboratorContractError(
                f"Factory built stack '{unit.node.id}' when asked for '{identifier}'",
                identifier=identifier,
            )
        if unit.node.scope is not self._app:
            raise CollaboratorContractError(
                f"Stack '{identifier}' was not constructed under this application context",
                identifier=identifier,
            )
