#!/usr/bin/env python3
"""CDKTF app entry point (see cdktf.json)."""

import logging
from typing import Optional

from cdktf import App

from deployment.cdktf.pipeline_stack import PipelineStack
from pipeline_infra.config.settings import Settings, get_settings
from pipeline_infra.topology import build_topology

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, outdir: Optional[str] = None) -> App:
    """Create a CDKTF app holding the pipeline stack."""
    settings = settings or get_settings()
    topology = build_topology(settings, "cdktf")

    app = App(outdir=outdir) if outdir else App()
    PipelineStack(app, topology.stack_name, topology=topology)
    return app


def main():
    logging.basicConfig(level=get_settings().log_level)
    app = create_app()
    app.synth()
    logger.info("CDKTF synthesis completed")


if __name__ == "__main__":
    main()
