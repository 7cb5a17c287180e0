"""
Shared fixtures for the unit tests
"""

import os

import pytest
from aws_cdk import CfnOutput, CfnWaitConditionHandle, Stack

from composition.factory import StackFactory
from stacks.pathery_stack import INDEX_WRITER_BINARY, SERVICE_HANDLERS


class RecordingStackFactory(StackFactory):
    """Builds a one-resource stack and records what it was asked for"""

    def __init__(self):
        self.calls = []

    def build(self, parent, identifier, config=None):
        self.calls.append((identifier, config))
        stack = Stack(parent.scope, identifier)
        CfnWaitConditionHandle(stack, "Placeholder")
        CfnOutput(stack, "Identifier", value=identifier)
        return stack


@pytest.fixture
def fake_factory():
    """Factory that builds minimal stacks without provisioning logic"""
    return RecordingStackFactory()


@pytest.fixture
def outdir(tmp_path):
    """Cloud assembly directory for one test"""
    return str(tmp_path / "cdk.out")


@pytest.fixture
def code_root(tmp_path):
    """Fake cargo-lambda output with a bootstrap per binary"""
    root = tmp_path / "lambda"
    binaries = [INDEX_WRITER_BINARY] + [handler[0] for handler in SERVICE_HANDLERS]
    for binary in binaries:
        os.makedirs(root / binary)
        (root / binary / "bootstrap").write_text(f"#!/bin/sh\necho {binary}\n")
    return str(root)
