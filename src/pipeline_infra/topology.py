"""
Toolkit-neutral description of the delivery pipeline.

Both front-ends (AWS CDK and CDK for Terraform) render the same
PipelineTopology, so resource names, the build environment and the IAM
actions cannot drift between them:

    Source (S3 object) -> Build (CodeBuild) -> orchestrated by CodePipeline
"""

import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from pipeline_infra.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

TOOLKITS = ("cdk", "cdktf")

CODEBUILD_SERVICE = "codebuild.amazonaws.com"
CODEPIPELINE_SERVICE = "codepipeline.amazonaws.com"

ARTIFACT_ACCESS_ACTIONS = [
    "s3:GetObject",
    "s3:GetObjectVersion",
    "s3:GetBucketVersioning",
    "s3:PutObjectAcl",
    "s3:PutObject",
]
SOURCE_BUCKET_ACTIONS = ["s3:*"]
BUILD_EXECUTION_ACTIONS = ["codebuild:BatchGetBuilds", "codebuild:StartBuild"]

# Per-toolkit defaults that differ between the two declarations
_BUILD_ACTION_NAMES = {"cdk": "InvalidateCache", "cdktf": "Build"}


class PolicyStatement(BaseModel):
    """One IAM policy statement."""

    effect: str = "Allow"
    actions: List[str]
    resources: List[str] = Field(default_factory=list)
    service_principals: List[str] = Field(default_factory=list)

    def to_document_dict(self) -> Dict[str, Any]:
        statement: Dict[str, Any] = {"Effect": self.effect, "Action": list(self.actions)}
        if self.resources:
            statement["Resource"] = list(self.resources)
        if self.service_principals:
            statement["Principal"] = {"Service": list(self.service_principals)}
        return statement


def policy_document(statements: List[PolicyStatement]) -> Dict[str, Any]:
    """Render statements as an IAM JSON policy document."""
    return {
        "Version": "2012-10-17",
        "Statement": [s.to_document_dict() for s in statements],
    }


def policy_document_json(statements: List[PolicyStatement]) -> str:
    return json.dumps(policy_document(statements))


def _bucket_resources(bucket_arn: str) -> List[str]:
    return [bucket_arn, f"{bucket_arn}/*"]


def artifact_access_statement(bucket_arn: str) -> PolicyStatement:
    """Read/write access to the artifact store, for both build and pipeline roles."""
    return PolicyStatement(actions=list(ARTIFACT_ACCESS_ACTIONS), resources=_bucket_resources(bucket_arn))


def source_bucket_access_statement(bucket_arn: str) -> PolicyStatement:
    return PolicyStatement(actions=list(SOURCE_BUCKET_ACTIONS), resources=_bucket_resources(bucket_arn))


def assume_role_statement(service: str) -> PolicyStatement:
    """Trust statement letting an AWS service assume a role."""
    if service not in (CODEBUILD_SERVICE, CODEPIPELINE_SERVICE):
        raise ValueError(f"Unsupported service principal: {service}")
    return PolicyStatement(actions=["sts:AssumeRole"], service_principals=[service])


def build_execution_statement(project_arn: str) -> PolicyStatement:
    return PolicyStatement(actions=list(BUILD_EXECUTION_ACTIONS), resources=[project_arn])


class BuildEnvironment(BaseModel):
    # Settings pairs the image with the environment type
    compute_type: str = "BUILD_GENERAL1_SMALL"
    image: str = "aws/codebuild/standard:7.0"
    environment_type: str = "LINUX_CONTAINER"


class PipelineTopology(BaseModel):
    """Everything a front-end needs to declare the pipeline."""

    toolkit: str
    stack_name: str
    region: str
    account: Optional[str] = None
    app_name: str = "s3-codebuild-pipeline"

    pipeline_name: str
    source_stage_name: str = "Source"
    source_action_name: str = "S3_Source"
    build_stage_name: str = "Build"
    build_action_name: str = "Build"

    source_object_key: str = "path/to/file.zip"
    source_artifact_name: str = "source_output"

    build_project_name: str = "BuildProject"
    buildspec_path: str = "buildspec.yml"
    build_environment: BuildEnvironment = Field(default_factory=BuildEnvironment)

    build_role_name: str = "buildRole"
    pipeline_role_name: str = "CodePipelineRole"
    artifact_policy_name: str = "ArtifactAccessPolicy"
    source_policy_name: str = "SourceBucketAccessPolicy"
    build_execution_policy_name: str = "PipelineBuildExecutionPolicy"

    @property
    def stage_names(self) -> List[str]:
        return [self.source_stage_name, self.build_stage_name]

    @property
    def tags(self) -> Dict[str, str]:
        return {"app": self.app_name, "toolkit": self.toolkit}

    def describe(self) -> Dict[str, Any]:
        """Flat view for display."""
        return {
            "toolkit": self.toolkit,
            "stack": self.stack_name,
            "region": self.region,
            "pipeline": self.pipeline_name,
            "stages": " -> ".join(self.stage_names),
            "source_action": self.source_action_name,
            "source_key": self.source_object_key,
            "build_action": self.build_action_name,
            "build_project": self.build_project_name,
            "buildspec": self.buildspec_path,
            "compute_type": self.build_environment.compute_type,
            "image": self.build_environment.image,
            "environment_type": self.build_environment.environment_type,
        }


def build_topology(settings: Optional[Settings] = None, toolkit: str = "cdk") -> PipelineTopology:
    """Create the topology a toolkit front-end renders.

    Args:
        settings: Settings to read from (cached settings when omitted)
        toolkit: 'cdk' or 'cdktf'

    Raises:
        ValueError: If the toolkit is unknown
    """
    if toolkit not in TOOLKITS:
        raise ValueError(f"Unknown toolkit: {toolkit}. Must be one of {list(TOOLKITS)}")

    settings = settings or get_settings()
    pipeline_name = settings.cdk_pipeline_name if toolkit == "cdk" else settings.cdktf_pipeline_name

    topology = PipelineTopology(
        toolkit=toolkit,
        stack_name=settings.stack_name_for(toolkit),
        region=settings.aws_region,
        account=settings.aws_account_id,
        app_name=settings.app_name,
        pipeline_name=pipeline_name,
        build_action_name=_BUILD_ACTION_NAMES[toolkit],
        source_object_key=settings.source_object_key,
        build_project_name=settings.build_project_name,
        buildspec_path=settings.buildspec_path,
        build_environment=BuildEnvironment(
            compute_type=settings.build_compute_type,
            image=settings.build_image,
            environment_type=settings.build_environment_type,
        ),
        build_role_name=settings.build_role_name,
        pipeline_role_name=settings.pipeline_role_name,
    )
    logger.debug(f"Built {toolkit} topology for pipeline {pipeline_name}")
    return topology
