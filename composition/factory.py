"""
Stack factories.

The application context never instantiates stacks itself; it asks a
StackFactory to build one under its scope. Tests swap in their own factory.
"""

import abc
import logging

from aws_cdk import Stack

from composition.config import DeploymentConfig
from stacks.pathery_stack import PatheryStack

logger = logging.getLogger(__name__)


class StackFactory(abc.ABC):
    """Builds one deployable stack for an application context."""

    @abc.abstractmethod
    def build(self, parent, identifier: str, config=None) -> Stack:
        """
        Construct a stack under ``parent.scope`` with construct id ``identifier``.

        Must not call back into ``parent.register_child``.
        """


class PatheryStackFactory(StackFactory):
    """Builds the Pathery search service stack."""

    def build(self, parent, identifier: str, config=None) -> Stack:
        if config is None:
            config = DeploymentConfig()

        logger.info(
            "Building PatheryStack '%s' for environment '%s' (code root %s)",
            identifier,
            config.environment,
            config.code_root,
        )

        return PatheryStack(
            parent.scope,
            identifier,
            env_name=config.environment,
            service_name=config.service_name,
            code_root=config.code_root,
            retain_data=config.is_production,
            env=config.cdk_environment,
            description=f"Pathery search service ({config.environment})",
            tags=config.tags,
        )
