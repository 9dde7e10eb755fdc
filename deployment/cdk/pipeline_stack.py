"""
AWS CDK declaration of the S3 -> CodeBuild -> CodePipeline topology.

CDK generates the service roles and least-privilege grants for the build
project and the pipeline, so only the resources themselves are declared here.
"""

import logging

import aws_cdk as cdk
from aws_cdk import aws_codebuild as codebuild
from aws_cdk import aws_codepipeline as codepipeline
from aws_cdk import aws_codepipeline_actions as codepipeline_actions
from aws_cdk import aws_s3 as s3
from constructs import Construct

from pipeline_infra.topology import PipelineTopology

logger = logging.getLogger(__name__)

# CodeBuild compute type -> aws_cdk ComputeType member
COMPUTE_TYPES = {
    "BUILD_GENERAL1_SMALL": codebuild.ComputeType.SMALL,
    "BUILD_GENERAL1_MEDIUM": codebuild.ComputeType.MEDIUM,
    "BUILD_GENERAL1_LARGE": codebuild.ComputeType.LARGE,
    "BUILD_GENERAL1_2XLARGE": codebuild.ComputeType.X2_LARGE,
}


def _build_image(topology: PipelineTopology) -> codebuild.IBuildImage:
    env = topology.build_environment
    if env.environment_type == "ARM_CONTAINER":
        return codebuild.LinuxArmBuildImage.from_code_build_image_id(env.image)
    return codebuild.LinuxBuildImage.from_code_build_image_id(env.image)


class PipelineStack(cdk.Stack):
    """Source bucket, artifact bucket, build project and a two-stage pipeline."""

    def __init__(self, scope: Construct, construct_id: str, topology: PipelineTopology, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self.topology = topology

        # Artifact
        source_output = codepipeline.Artifact(topology.source_artifact_name)

        self.artifact_bucket = s3.Bucket(
            self, "ArtifactBucket",
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            removal_policy=cdk.RemovalPolicy.DESTROY,
        )

        # Source
        self.source_bucket = s3.Bucket(
            self, "SourceBucket",
            versioned=True,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            removal_policy=cdk.RemovalPolicy.DESTROY,
        )

        # Build
        env = topology.build_environment
        self.build_project = codebuild.PipelineProject(
            self, "BuildProject",
            build_spec=codebuild.BuildSpec.from_source_filename(topology.buildspec_path),
            environment=codebuild.BuildEnvironment(
                build_image=_build_image(topology),
                compute_type=COMPUTE_TYPES[env.compute_type],
            ),
        )
        if env.environment_type == "LINUX_GPU_CONTAINER":
            cfn_project = self.build_project.node.default_child
            cfn_project.add_property_override("Environment.Type", env.environment_type)

        # Pipeline
        self.pipeline = codepipeline.Pipeline(
            self, "Pipeline",
            pipeline_name=topology.pipeline_name,
            artifact_bucket=self.artifact_bucket,
            stages=[
                codepipeline.StageProps(
                    stage_name=topology.source_stage_name,
                    actions=[
                        codepipeline_actions.S3SourceAction(
                            action_name=topology.source_action_name,
                            bucket=self.source_bucket,
                            bucket_key=topology.source_object_key,
                            output=source_output,
                        ),
                    ],
                ),
                codepipeline.StageProps(
                    stage_name=topology.build_stage_name,
                    actions=[
                        codepipeline_actions.CodeBuildAction(
                            action_name=topology.build_action_name,
                            project=self.build_project,
                            input=source_output,
                        ),
                    ],
                ),
            ],
        )

        for key, value in topology.tags.items():
            cdk.Tags.of(self).add(key, value)

        cdk.CfnOutput(self, "SourceBucketName", value=self.source_bucket.bucket_name)
        cdk.CfnOutput(self, "ArtifactBucketName", value=self.artifact_bucket.bucket_name)
        cdk.CfnOutput(self, "BuildProjectName", value=self.build_project.project_name)
        cdk.CfnOutput(self, "PipelineName", value=self.pipeline.pipeline_name)

        logger.debug(f"Declared CDK stack {construct_id} for pipeline {topology.pipeline_name}")
