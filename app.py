#!/usr/bin/env python3
"""
Pathery CDK app entry point.

Usage:
    # Synthesize the dev stack (pathery-dev)
    cdk synth

    # Target another environment
    cdk synth -c environment=prod
    PATHERY_ENV=staging cdk synth

Lambda binaries are read from ``target/lambda/<binary>`` (``cargo lambda
build --release --arm64``); override with ``-c code_root=...`` or
``PATHERY_CODE_ROOT``.
"""

import logging

from composition.config import DeploymentConfig
from composition.context import ApplicationContext
from composition.factory import PatheryStackFactory
from composition.identifiers import resolve_identifier

logger = logging.getLogger()


def main(factory=None, outdir=None, context=None, environ=None):
    """
    Build the construct tree and synthesize it once.

    Errors are left to propagate so the process exits non-zero.
    """
    app = ApplicationContext.create(outdir=outdir, context=context)

    config = DeploymentConfig.load(app, environ=environ)
    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logger.setLevel(config.log_level)

    if factory is None:
        factory = PatheryStackFactory()

    identifier = resolve_identifier(config)
    app.register_child(identifier, factory, config)

    return app.synthesize()


if __name__ == "__main__":
    main()
