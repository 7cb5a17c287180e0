"""
Deployment configuration.

Values come from CDK context (``cdk synth -c environment=prod``) first, then
from process environment variables, then defaults.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

import aws_cdk as cdk

DEFAULT_ENVIRONMENT = "dev"
DEFAULT_SERVICE_NAME = "pathery"
DEFAULT_CODE_ROOT = os.path.join("target", "lambda")

# field name -> (CDK context key, environment variable)
_SOURCES = {
    "environment": ("environment", "PATHERY_ENV"),
    "service_name": ("service_name", "PATHERY_SERVICE_NAME"),
    "stack_id": ("stack_id", "PATHERY_STACK_ID"),
    "account": ("account", "CDK_DEFAULT_ACCOUNT"),
    "region": ("region", "CDK_DEFAULT_REGION"),
    "code_root": ("code_root", "PATHERY_CODE_ROOT"),
    "log_level": (None, "PATHERY_LOG_LEVEL"),
}


@dataclass(frozen=True)
class DeploymentConfig:
    environment: str = DEFAULT_ENVIRONMENT
    service_name: str = DEFAULT_SERVICE_NAME
    stack_id: Optional[str] = None
    account: Optional[str] = None
    region: Optional[str] = None
    code_root: str = DEFAULT_CODE_ROOT
    log_level: str = "INFO"

    @classmethod
    def load(cls, context=None, environ: Optional[Mapping[str, str]] = None) -> "DeploymentConfig":
        """
        Build a configuration from CDK context and environment variables.

        Args:
            context: anything with ``try_get_context(key)``, usually the
                ApplicationContext. Skipped when None.
            environ: environment mapping, defaults to ``os.environ``.
        """
        if environ is None:
            environ = os.environ

        values = {}
        for field_name, (context_key, env_var) in _SOURCES.items():
            value = None
            if context is not None and context_key is not None:
                value = context.try_get_context(context_key)
            if value is None or value == "":
                value = environ.get(env_var) or None
            if value is not None:
                values[field_name] = str(value)

        if "log_level" in values:
            values["log_level"] = values["log_level"].upper()

        return cls(**values)

    @property
    def is_production(self) -> bool:
        return self.environment in ("prod", "production")

    @property
    def cdk_environment(self) -> Optional[cdk.Environment]:
        # Environment-agnostic unless both are known
        if self.account and self.region:
            return cdk.Environment(account=self.account, region=self.region)
        return None

    @property
    def tags(self) -> dict:
        return {
            "Project": self.service_name,
            "Environment": self.environment,
            "ManagedBy": "CDK",
        }
