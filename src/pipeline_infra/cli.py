# cli.py
import json
import logging
import os
import sys
import tempfile
import time

import click

from pipeline_infra.config.settings import get_settings
from pipeline_infra.toolkit import (
    ToolkitCommandError, deploy_command, destroy_command, run_toolkit, synth
)
from pipeline_infra.topology import TOOLKITS, build_topology

logger = logging.getLogger(__name__)

# Stack outputs naming the buckets emptied before destroy
BUCKET_OUTPUT_KEYS = ("SourceBucketName", "ArtifactBucketName")

toolkit_option = click.option(
    "--toolkit",
    type=click.Choice(list(TOOLKITS)),
    default="cdk",
    show_default=True,
    help="Which infrastructure-as-code toolkit declares the pipeline",
)


def _state_manager():
    from deployment.aws.state.state_manager import StateManager
    return StateManager(get_settings().state_file)


def _resolve(toolkit: str, output_key: str, fallback=None):
    """Deployed output if recorded, otherwise the declared value."""
    return _state_manager().get_output(toolkit, output_key) or fallback


def _echo_json(data):
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
def cli():
    """Declare, deploy and operate the S3 -> CodeBuild -> CodePipeline pipeline"""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@cli.command()
def show_config():
    """Show current configuration"""
    settings = get_settings()

    print("Current Configuration:")
    print(f"  Deployment Mode: {settings.deployment_mode}")
    print(f"  AWS Region: {settings.aws_region}")
    print(f"  AWS Account: {settings.aws_account_id or '(from credentials)'}")
    print(f"  AWS Endpoint: {settings.aws_endpoint_url}")
    print(f"  State File: {settings.state_file}")
    for toolkit in TOOLKITS:
        print(f"\n[{toolkit}]")
        for key, value in build_topology(settings, toolkit).describe().items():
            print(f"  {key}: {value}")


@cli.command(name="synth")
@click.option("--toolkit",
              type=click.Choice(list(TOOLKITS) + ["all"]),
              default="all",
              show_default=True,
              help="Which toolkit app to synthesize")
def synth_command(toolkit):
    """Synthesize CloudFormation and/or Terraform JSON"""
    toolkits = TOOLKITS if toolkit == "all" else (toolkit,)
    for name in toolkits:
        outdir = synth(name, get_settings())
        click.echo(f"✅ {name} assembly written to {outdir}")


@cli.command()
@toolkit_option
def validate(toolkit):
    """Run pre-deployment checks"""
    from deployment.aws.monitoring.resource_validator import ResourceValidator

    results = ResourceValidator(build_topology(get_settings(), toolkit)).validate_all()
    _echo_json(results)
    if not results['valid']:
        sys.exit(1)


@cli.command()
@toolkit_option
@click.option("--skip-validation", is_flag=True, help="Skip pre-deployment checks")
def deploy(toolkit, skip_validation):
    """Deploy the pipeline with the toolkit CLI"""
    settings = get_settings()

    if not skip_validation:
        from deployment.aws.monitoring.resource_validator import ResourceValidator
        results = ResourceValidator(build_topology(settings, toolkit)).validate_all()
        if not results['valid']:
            for error in results['errors']:
                click.echo(f"❌ {error}", err=True)
            sys.exit(1)

    state = _state_manager()
    deployment_id = f"{toolkit}-{int(time.time())}"
    state.start_deployment(deployment_id, toolkit)

    with tempfile.TemporaryDirectory() as temp_dir:
        outputs_file = os.path.join(temp_dir, "outputs.json")
        try:
            run_toolkit(deploy_command(toolkit, settings, outputs_file), settings)
        except ToolkitCommandError as e:
            state.mark_deployment_failed(toolkit, str(e))
            raise click.ClickException(str(e))

        outputs = state.record_outputs_file(toolkit, settings.stack_name_for(toolkit), outputs_file)

    state.mark_deployment_complete(toolkit)
    click.echo(f"✅ Deployed {toolkit} stack ({deployment_id})")
    for key, value in outputs.items():
        click.echo(f"  {key}: {value}")


@cli.command()
@toolkit_option
@click.option("--empty-buckets", is_flag=True, help="Delete all objects and versions from the stack's buckets first")
@click.confirmation_option(prompt="This will DELETE the pipeline stack. Continue?")
def destroy(toolkit, empty_buckets):
    """Destroy the pipeline stack"""
    settings = get_settings()
    state = _state_manager()

    if empty_buckets:
        from deployment.aws.cleanup.cleanup_manager import CleanupManager
        buckets = [
            state.get_output(toolkit, key)
            for key in BUCKET_OUTPUT_KEYS
        ]
        buckets = [b for b in buckets if b]
        if not buckets:
            click.echo("⚠️ No bucket names recorded for this toolkit; nothing to empty")
        else:
            report = CleanupManager().empty_buckets(buckets)
            if report['status'] == 'error':
                raise click.ClickException("; ".join(report['errors']))
            click.echo(f"✅ Emptied {len(buckets)} bucket(s), {report['total_deleted']} entries")

    try:
        run_toolkit(destroy_command(toolkit, settings), settings)
    except ToolkitCommandError as e:
        raise click.ClickException(str(e))

    state.mark_destroyed(toolkit)
    click.echo(f"✅ Destroyed {toolkit} stack")


@cli.command()
@click.argument("path", type=click.Path(exists=True))
@toolkit_option
@click.option("--bucket", help="Source bucket (defaults to the recorded deploy output)")
def upload_source(path, toolkit, bucket):
    """Upload a directory or zip as the pipeline source (starts a run)"""
    from deployment.aws.services.pipeline_trigger import upload_source as do_upload

    settings = get_settings()
    bucket = bucket or _resolve(toolkit, "SourceBucketName")
    if not bucket:
        raise click.UsageError("No source bucket recorded; deploy first or pass --bucket")

    try:
        result = do_upload(path, bucket, settings.source_object_key)
    except (ValueError, FileNotFoundError) as e:
        raise click.ClickException(str(e))
    if result['status'] != 'success':
        raise click.ClickException(result['error'])
    click.echo(f"✅ Uploaded to s3://{bucket}/{settings.source_object_key} (version {result['version_id']})")


@cli.command()
@toolkit_option
def start(toolkit):
    """Start a pipeline execution with the latest source"""
    from deployment.aws.services.pipeline_trigger import start_pipeline

    topology = build_topology(get_settings(), toolkit)
    pipeline_name = _resolve(toolkit, "PipelineName", topology.pipeline_name)
    result = start_pipeline(pipeline_name)
    if result['status'] != 'success':
        raise click.ClickException(result['error'])
    click.echo(f"✅ Started {pipeline_name}: {result['execution_id']}")


@cli.command()
@toolkit_option
def status(toolkit):
    """Show pipeline stage states and recent executions"""
    from deployment.aws.monitoring.status_monitor import StatusMonitor

    topology = build_topology(get_settings(), toolkit)
    pipeline_name = _resolve(toolkit, "PipelineName", topology.pipeline_name)
    project_name = _resolve(toolkit, "BuildProjectName")
    if project_name is None and toolkit == "cdktf":
        project_name = topology.build_project_name

    report = StatusMonitor().check_pipeline_health(pipeline_name, project_name)
    _echo_json(report)
    if report['overall_status'] == 'unhealthy':
        sys.exit(1)


@cli.command()
@toolkit_option
def verify_iam(toolkit):
    """Verify the pipeline and build roles"""
    from deployment.aws.utils.iam_verification import IAMVerifier

    topology = build_topology(get_settings(), toolkit)
    verifier = IAMVerifier()
    if toolkit == "cdktf":
        report = verifier.verify_declared_roles(topology)
    else:
        report = verifier.verify_pipeline(_resolve(toolkit, "PipelineName", topology.pipeline_name))
    _echo_json(report)
    if report['overall_status'] != 'PASS':
        sys.exit(1)


if __name__ == "__main__":
    cli()
