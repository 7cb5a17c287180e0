"""
Unit tests for the CDK app entry point
Tests identifier resolution, single registration and synthesis end to end
"""

import os
import subprocess
import sys

import aws_cdk.assertions as assertions
import pytest

from app import main
from composition.context import ApplicationContext
from composition.factory import StackFactory


class TestMainApp:
    """Test class for the main application"""

    def test_default_run_builds_pathery_dev(self, fake_factory, outdir):
        """Test that the default configuration targets pathery-dev"""
        artifacts = main(factory=fake_factory, outdir=outdir, environ={})

        assert [artifact.identifier for artifact in artifacts] == ["pathery-dev"]
        assert artifacts[0].template["Outputs"]["Identifier"]["Value"] == "pathery-dev"

    def test_registers_exactly_once(self, fake_factory, outdir):
        """Test that main registers a single stack"""
        main(factory=fake_factory, outdir=outdir, environ={})

        assert [call[0] for call in fake_factory.calls] == ["pathery-dev"]

    def test_factory_receives_loaded_config(self, fake_factory, outdir):
        """Test that the loaded configuration reaches the factory"""
        main(factory=fake_factory, outdir=outdir, environ={"PATHERY_ENV": "staging"})

        identifier, config = fake_factory.calls[0]
        assert identifier == "pathery-staging"
        assert config.environment == "staging"

    def test_environment_variable_selects_target(self, fake_factory, outdir):
        """Test environment selection through PATHERY_ENV"""
        artifacts = main(factory=fake_factory, outdir=outdir, environ={"PATHERY_ENV": "prod"})

        assert [artifact.identifier for artifact in artifacts] == ["pathery-prod"]

    def test_cdk_context_selects_target(self, fake_factory, outdir):
        """Test environment selection through -c environment=..."""
        artifacts = main(
            factory=fake_factory,
            outdir=outdir,
            context={"environment": "staging"},
            environ={"PATHERY_ENV": "prod"},
        )

        assert [artifact.identifier for artifact in artifacts] == ["pathery-staging"]

    def test_explicit_stack_id(self, fake_factory, outdir):
        """Test that PATHERY_STACK_ID overrides the derived identifier"""
        artifacts = main(
            factory=fake_factory, outdir=outdir, environ={"PATHERY_STACK_ID": "PatheryBlue"}
        )

        assert [artifact.identifier for artifact in artifacts] == ["PatheryBlue"]

    def test_invalid_configuration_aborts(self, fake_factory, outdir):
        """Test that a malformed identifier aborts before construction"""
        with pytest.raises(ValueError):
            main(factory=fake_factory, outdir=outdir, environ={"PATHERY_ENV": "dev env"})

        assert fake_factory.calls == []

    def test_repeated_runs_are_identical(self, fake_factory, tmp_path):
        """Test that identical configuration yields identical artifacts"""
        first = main(factory=fake_factory, outdir=str(tmp_path / "first"), environ={})
        second = main(factory=fake_factory, outdir=str(tmp_path / "second"), environ={})

        assert [artifact.identifier for artifact in first] == ["pathery-dev"]
        assert [artifact.document for artifact in first] == [
            artifact.document for artifact in second
        ]

    def test_collaborator_error_propagates(self, outdir):
        """Test that construction errors reach the caller unchanged"""
        error = RuntimeError("stack definition failed")

        class FailingFactory(StackFactory):
            def build(self, parent, identifier, config=None):
                raise error

        with pytest.raises(RuntimeError) as excinfo:
            main(factory=FailingFactory(), outdir=outdir, environ={})

        assert excinfo.value is error

    def test_pathery_stack_end_to_end(self, code_root, tmp_path):
        """Test a full run with the real Pathery stack"""
        environ = {"PATHERY_CODE_ROOT": code_root}

        first = main(outdir=str(tmp_path / "first"), environ=environ)
        second = main(outdir=str(tmp_path / "second"), environ=environ)

        assert [artifact.identifier for artifact in first] == ["pathery-dev"]
        assert first[0].document == second[0].document

        template = assertions.Template.from_json(first[0].template)
        template.resource_count_is("AWS::DynamoDB::Table", 1)
        template.has_resource_properties("AWS::ApiGateway::RestApi", {"Name": "pathery-dev"})
        template.has_resource_properties(
            "AWS::DynamoDB::Table",
            {"Tags": assertions.Match.array_with([{"Key": "Environment", "Value": "dev"}])},
        )

    def test_factory_passes_service_name(self, code_root, outdir):
        """Test that PATHERY_SERVICE_NAME reaches the stack"""
        environ = {"PATHERY_CODE_ROOT": code_root, "PATHERY_SERVICE_NAME": "search"}

        artifacts = main(outdir=outdir, environ=environ)

        assert [artifact.identifier for artifact in artifacts] == ["search-dev"]
        template = assertions.Template.from_json(artifacts[0].template)
        template.has_resource_properties("AWS::ApiGateway::RestApi", {"Name": "search-dev"})

    def test_synthesizes_exactly_once(self, fake_factory, outdir, monkeypatch):
        """Test that main triggers a single synthesis after registration"""
        calls = []
        synthesize = ApplicationContext.synthesize

        def counting_synthesize(context):
            calls.append(context.identifiers)
            return synthesize(context)

        monkeypatch.setattr(ApplicationContext, "synthesize", counting_synthesize)

        main(factory=fake_factory, outdir=outdir, environ={})

        assert calls == [("pathery-dev",)]


class TestProcessEntrypoint:
    """Test class for running app.py as a process"""

    @pytest.fixture
    def project_root(self):
        """Directory holding app.py"""
        import app

        return os.path.dirname(os.path.abspath(app.__file__))

    def run_app(self, project_root, outdir, code_root, env_name):
        """Run app.py the way cdk.json does"""
        env = dict(os.environ)
        env.update(
            {
                "CDK_OUTDIR": outdir,
                "PATHERY_CODE_ROOT": code_root,
                "PATHERY_ENV": env_name,
            }
        )
        env.pop("CDK_CONTEXT_JSON", None)
        env.pop("PATHERY_STACK_ID", None)
        return subprocess.run(
            [sys.executable, "app.py"],
            cwd=project_root,
            env=env,
            capture_output=True,
            text=True,
            timeout=300,
        )

    def test_successful_run_exits_zero(self, project_root, outdir, code_root):
        """Test that a successful synthesis exits with status 0"""
        result = self.run_app(project_root, outdir, code_root, "dev")

        assert result.returncode == 0, result.stderr
        assert os.path.isfile(os.path.join(outdir, "manifest.json"))
        templates = [name for name in os.listdir(outdir) if name.endswith(".template.json")]
        assert len(templates) == 1

    def test_invalid_identifier_exits_non_zero(self, project_root, outdir, code_root):
        """Test that a configuration error aborts the process"""
        result = self.run_app(project_root, outdir, code_root, "dev env")

        assert result.returncode != 0
        assert "InvalidIdentifierError" in result.stderr
