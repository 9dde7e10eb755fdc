"""
Driving the toolkit CLIs.

Synthesis runs in process (the apps are plain Python); deploy and destroy are
delegated to ``cdk`` / ``cdktf`` because only they talk to CloudFormation and
Terraform.
"""

import logging
import os
import shutil
import subprocess
from typing import Dict, List, Optional

from pipeline_infra.config.settings import Settings, get_settings
from pipeline_infra.topology import TOOLKITS

logger = logging.getLogger(__name__)


class ToolkitCommandError(Exception):
    """A toolkit CLI is missing or exited non-zero."""

    def __init__(self, command: List[str], message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.command = command
        self.returncode = returncode


def _check_toolkit(toolkit: str):
    if toolkit not in TOOLKITS:
        raise ValueError(f"Unknown toolkit: {toolkit}. Must be one of {list(TOOLKITS)}")


def synth(toolkit: str, settings: Optional[Settings] = None) -> str:
    """Synthesize a toolkit's app in process.

    Returns:
        The output directory the assembly was written to
    """
    _check_toolkit(toolkit)
    settings = settings or get_settings()
    outdir = settings.outdir_for(toolkit)

    # Imported here so one toolkit's bindings are not needed for the other
    if toolkit == "cdk":
        from deployment.cdk.app import create_app
    else:
        from deployment.cdktf.main import create_app

    logger.info(f"Synthesizing {toolkit} app into {outdir}")
    create_app(settings, outdir=outdir).synth()
    logger.info(f"✅ {toolkit} synthesis completed")
    return outdir


def deploy_command(toolkit: str, settings: Settings, outputs_file: str) -> List[str]:
    _check_toolkit(toolkit)
    stack = settings.stack_name_for(toolkit)
    if toolkit == "cdk":
        return ["cdk", "deploy", stack, "--require-approval", "never", "--outputs-file", outputs_file]
    return ["cdktf", "deploy", stack, "--auto-approve", "--outputs-file", outputs_file]


def destroy_command(toolkit: str, settings: Settings) -> List[str]:
    _check_toolkit(toolkit)
    stack = settings.stack_name_for(toolkit)
    if toolkit == "cdk":
        return ["cdk", "destroy", stack, "--force"]
    return ["cdktf", "destroy", stack, "--auto-approve"]


def run_toolkit(command: List[str], settings: Optional[Settings] = None,
                cwd: Optional[str] = None) -> subprocess.CompletedProcess:
    """Run a toolkit CLI with the settings exported into its environment.

    Raises:
        ToolkitCommandError: If the binary is missing or the command fails
    """
    settings = settings or get_settings()
    if shutil.which(command[0]) is None:
        raise ToolkitCommandError(command, f"'{command[0]}' CLI not found on PATH")

    env: Dict[str, str] = dict(os.environ)
    env.update(settings.get_environment_dict())

    logger.info(f"Running: {' '.join(command)}")
    try:
        return subprocess.run(command, check=True, env=env, cwd=cwd)
    except subprocess.CalledProcessError as e:
        raise ToolkitCommandError(
            command, f"'{' '.join(command)}' exited with status {e.returncode}", e.returncode
        ) from e
