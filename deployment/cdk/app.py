#!/usr/bin/env python3
"""CDK app entry point (see cdk.json)."""

import logging
from typing import Optional

import aws_cdk as cdk

from deployment.cdk.pipeline_stack import PipelineStack
from pipeline_infra.config.settings import Settings, get_settings
from pipeline_infra.topology import build_topology

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, outdir: Optional[str] = None) -> cdk.App:
    """Create a CDK app holding the pipeline stack."""
    settings = settings or get_settings()
    topology = build_topology(settings, "cdk")

    # Region always comes from settings; without an account the stack stays
    # account-agnostic and the CLI credentials decide at deploy time.
    if topology.account:
        env = cdk.Environment(account=topology.account, region=topology.region)
    else:
        env = cdk.Environment(region=topology.region)

    app = cdk.App(outdir=outdir) if outdir else cdk.App()
    PipelineStack(app, topology.stack_name, topology=topology, env=env)
    return app


def main():
    logging.basicConfig(level=get_settings().log_level)
    app = create_app()
    app.synth()
    logger.info("CDK synthesis completed")


if __name__ == "__main__":
    main()
