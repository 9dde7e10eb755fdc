import json

import pytest
from click.testing import CliRunner

from deployment.aws.state.state_manager import StateManager
from pipeline_infra import cli as cli_module
from pipeline_infra.cli import cli
from pipeline_infra.config.settings import get_settings
from pipeline_infra.toolkit import ToolkitCommandError

DEPLOY_OUTPUTS = {
    "CdktfStack": {
        "SourceBucketName": "src-bucket",
        "ArtifactBucketName": "artifact-bucket",
        "BuildProjectName": "BuildProject",
        "PipelineName": "cdktf-pipeline",
    }
}


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def fake_toolkit(monkeypatch):
    """Records toolkit commands and writes the outputs file a real deploy would."""
    commands = []

    def run(command, settings=None, cwd=None):
        commands.append(command)
        if "--outputs-file" in command:
            with open(command[command.index("--outputs-file") + 1], "w") as f:
                json.dump(DEPLOY_OUTPUTS, f)

    monkeypatch.setattr(cli_module, "run_toolkit", run)
    return commands


def _state():
    return StateManager(get_settings().state_file)


def test_show_config(runner):
    result = runner.invoke(cli, ["show-config"])

    assert result.exit_code == 0
    assert "[cdk]" in result.output
    assert "[cdktf]" in result.output
    assert "cdktf-pipeline" in result.output
    assert "Source -> Build" in result.output


def test_deploy_records_outputs(runner, fake_toolkit):
    result = runner.invoke(cli, ["deploy", "--toolkit", "cdktf", "--skip-validation"])

    assert result.exit_code == 0, result.output
    assert fake_toolkit[0][:3] == ["cdktf", "deploy", "CdktfStack"]
    state = _state()
    assert state.deployed_toolkits() == ["cdktf"]
    assert state.get_output("cdktf", "SourceBucketName") == "src-bucket"


def test_deploy_failure_marks_state(runner, monkeypatch):
    def fail(command, settings=None, cwd=None):
        raise ToolkitCommandError(command, "cdk exited with status 1", 1)

    monkeypatch.setattr(cli_module, "run_toolkit", fail)

    result = runner.invoke(cli, ["deploy", "--toolkit", "cdk", "--skip-validation"])

    assert result.exit_code == 1
    assert "exited with status 1" in result.output
    assert _state().state["toolkits"]["cdk"]["status"] == "failed"


def test_deploy_stops_on_failed_validation(runner, fake_toolkit, monkeypatch):
    from deployment.aws.monitoring import resource_validator

    monkeypatch.setattr(
        resource_validator.ResourceValidator, "validate_all",
        lambda self: {"valid": False, "errors": ["no credentials"], "warnings": [], "checks": {}},
    )

    result = runner.invoke(cli, ["deploy", "--toolkit", "cdk"])

    assert result.exit_code == 1
    assert fake_toolkit == []


def test_destroy_empties_recorded_buckets(runner, fake_toolkit, source_bucket):
    import boto3
    s3_client = boto3.client("s3")
    s3_client.put_object(Bucket=source_bucket, Key="path/to/file.zip", Body=b"zip")
    _state().record_outputs("cdktf", "CdktfStack", {"SourceBucketName": source_bucket})

    result = runner.invoke(cli, ["destroy", "--toolkit", "cdktf", "--empty-buckets", "--yes"])

    assert result.exit_code == 0, result.output
    assert "Emptied 1 bucket(s), 1 entries" in result.output
    assert fake_toolkit == [["cdktf", "destroy", "CdktfStack", "--auto-approve"]]
    assert "cdktf" not in _state().state["toolkits"]


def test_upload_source_uses_recorded_bucket(runner, source_bucket, tmp_path):
    app_dir = tmp_path / "app"
    app_dir.mkdir()
    (app_dir / "buildspec.yml").write_text("version: 0.2\n")
    _state().record_outputs("cdk", "CdkStack", {"SourceBucketName": source_bucket})

    result = runner.invoke(cli, ["upload-source", str(app_dir), "--toolkit", "cdk"])

    assert result.exit_code == 0, result.output
    assert f"s3://{source_bucket}/path/to/file.zip" in result.output


def test_upload_source_without_bucket(runner, tmp_path):
    result = runner.invoke(cli, ["upload-source", str(tmp_path)])

    assert result.exit_code == 2
    assert "deploy first" in result.output


def test_status_reports_unhealthy_pipeline(runner, monkeypatch):
    from deployment.aws.monitoring import status_monitor

    monkeypatch.setattr(
        status_monitor.StatusMonitor, "check_pipeline_health",
        lambda self, pipeline, project=None: {"pipeline": pipeline, "project": project,
                                              "overall_status": "unhealthy"},
    )

    result = runner.invoke(cli, ["status", "--toolkit", "cdktf"])

    assert result.exit_code == 1
    report = json.loads(result.output)
    assert report["pipeline"] == "cdktf-pipeline"
    assert report["project"] == "BuildProject"


def test_upload_source_rejects_non_zip_file(runner, tmp_path):
    notes = tmp_path / "notes.txt"
    notes.write_text("not an archive")

    result = runner.invoke(cli, ["upload-source", str(notes), "--bucket", "some-bucket"])

    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert "not a zip archive" in result.output
