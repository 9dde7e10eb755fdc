"""
CDK for Terraform declaration of the S3 -> CodeBuild -> CodePipeline topology.

Unlike the CDK front-end, every role and policy is declared explicitly:

- ArtifactAccessPolicy: read/write on the artifact store (build + pipeline roles)
- SourceBucketAccessPolicy: full access to the source bucket (pipeline role)
- PipelineBuildExecutionPolicy: start/poll builds of the project (pipeline role, inline)
"""

import logging
from typing import List

from cdktf import TerraformOutput, TerraformStack
from cdktf_cdktf_provider_aws.codebuild_project import (
    CodebuildProject,
    CodebuildProjectArtifacts,
    CodebuildProjectEnvironment,
    CodebuildProjectSource,
)
from cdktf_cdktf_provider_aws.codepipeline import (
    Codepipeline,
    CodepipelineArtifactStore,
    CodepipelineStage,
    CodepipelineStageAction,
)
from cdktf_cdktf_provider_aws.data_aws_iam_policy_document import (
    DataAwsIamPolicyDocument,
    DataAwsIamPolicyDocumentStatement,
    DataAwsIamPolicyDocumentStatementPrincipals,
)
from cdktf_cdktf_provider_aws.iam_policy import IamPolicy
from cdktf_cdktf_provider_aws.iam_role import IamRole
from cdktf_cdktf_provider_aws.iam_role_policy import IamRolePolicy
from cdktf_cdktf_provider_aws.iam_role_policy_attachment import IamRolePolicyAttachment
from cdktf_cdktf_provider_aws.provider import AwsProvider, AwsProviderDefaultTags
from cdktf_cdktf_provider_aws.s3_bucket import S3Bucket
from cdktf_cdktf_provider_aws.s3_bucket_public_access_block import S3BucketPublicAccessBlock
from cdktf_cdktf_provider_aws.s3_bucket_versioning import (
    S3BucketVersioningA,
    S3BucketVersioningVersioningConfiguration,
)
from constructs import Construct

from pipeline_infra.topology import (
    CODEBUILD_SERVICE,
    CODEPIPELINE_SERVICE,
    PipelineTopology,
    PolicyStatement,
    artifact_access_statement,
    assume_role_statement,
    build_execution_statement,
    source_bucket_access_statement,
)

logger = logging.getLogger(__name__)


def _to_tf_statement(statement: PolicyStatement) -> DataAwsIamPolicyDocumentStatement:
    principals = None
    if statement.service_principals:
        principals = [
            DataAwsIamPolicyDocumentStatementPrincipals(
                type="Service",
                identifiers=list(statement.service_principals),
            )
        ]
    return DataAwsIamPolicyDocumentStatement(
        effect=statement.effect,
        actions=list(statement.actions),
        resources=list(statement.resources) or None,
        principals=principals,
    )


class PipelineStack(TerraformStack):
    """Source bucket, artifact bucket, IAM, build project and a two-stage pipeline."""

    def __init__(self, scope: Construct, stack_id: str, topology: PipelineTopology) -> None:
        super().__init__(scope, stack_id)
        self.topology = topology

        AwsProvider(
            self, "aws",
            region=topology.region,
            default_tags=[AwsProviderDefaultTags(tags=topology.tags)],
        )

        # Artifact Bucket
        self.artifact_bucket = S3Bucket(self, "ArtifactBucket")
        self._block_public_access(self.artifact_bucket, "ArtifactBucketPublicAccessBlock")

        self.artifact_access_policy = IamPolicy(
            self, "ArtifactAccessPolicy",
            name=topology.artifact_policy_name,
            policy=self._policy_json("ArtifactPolicy", [artifact_access_statement(self.artifact_bucket.arn)]),
        )

        # Source
        self.source_bucket = S3Bucket(self, "SourceBucket")
        self._block_public_access(self.source_bucket, "SourceBucketPublicAccessBlock")
        S3BucketVersioningA(
            self, "SourceBucketVersioning",
            bucket=self.source_bucket.id,
            versioning_configuration=S3BucketVersioningVersioningConfiguration(status="Enabled"),
        )

        self.source_bucket_access_policy = IamPolicy(
            self, "SourceBucketAccessPolicy",
            name=topology.source_policy_name,
            policy=self._policy_json("SourceBucketPolicy", [source_bucket_access_statement(self.source_bucket.arn)]),
        )

        # Build
        self.build_role = IamRole(
            self, "BuildRole",
            name=topology.build_role_name,
            assume_role_policy=self._policy_json("BuildPolicy", [assume_role_statement(CODEBUILD_SERVICE)]),
        )
        self._attach(self.build_role, "BuildRoleArtifactAccess", self.artifact_access_policy)

        env = topology.build_environment
        self.build_project = CodebuildProject(
            self, "BuildProject",
            name=topology.build_project_name,
            service_role=self.build_role.arn,
            source=CodebuildProjectSource(
                type="CODEPIPELINE",
                buildspec=topology.buildspec_path,
            ),
            artifacts=CodebuildProjectArtifacts(type="CODEPIPELINE"),
            environment=CodebuildProjectEnvironment(
                compute_type=env.compute_type,
                image=env.image,
                type=env.environment_type,
            ),
        )

        # Pipeline
        self.pipeline_role = IamRole(
            self, "CodePipelineRole",
            name=topology.pipeline_role_name,
            assume_role_policy=self._policy_json(
                "PipelineAssumeRolePolicy", [assume_role_statement(CODEPIPELINE_SERVICE)]
            ),
        )
        self._attach(self.pipeline_role, "PipelineRoleArtifactAccess", self.artifact_access_policy)
        self._attach(self.pipeline_role, "PipelineRoleSourceBucketAccess", self.source_bucket_access_policy)
        IamRolePolicy(
            self, "PipelineBuildExecutionPolicy",
            name=topology.build_execution_policy_name,
            role=self.pipeline_role.id,
            policy=self._policy_json("BuildExecutionPolicy", [build_execution_statement(self.build_project.arn)]),
        )

        self.pipeline = Codepipeline(
            self, "CodePipeline",
            name=topology.pipeline_name,
            role_arn=self.pipeline_role.arn,
            artifact_store=[CodepipelineArtifactStore(location=self.artifact_bucket.bucket, type="S3")],
            stage=self._stages(),
        )

        TerraformOutput(self, "SourceBucketName", value=self.source_bucket.bucket)
        TerraformOutput(self, "ArtifactBucketName", value=self.artifact_bucket.bucket)
        TerraformOutput(self, "BuildProjectName", value=self.build_project.name)
        TerraformOutput(self, "PipelineName", value=self.pipeline.name)

        logger.debug(f"Declared CDKTF stack {stack_id} for pipeline {topology.pipeline_name}")

    def _stages(self) -> List[CodepipelineStage]:
        topology = self.topology
        return [
            CodepipelineStage(
                name=topology.source_stage_name,
                action=[
                    CodepipelineStageAction(
                        name=topology.source_action_name,
                        category="Source",
                        owner="AWS",
                        provider="S3",
                        version="1",
                        output_artifacts=[topology.source_artifact_name],
                        configuration={
                            "S3Bucket": self.source_bucket.bucket,
                            "S3ObjectKey": topology.source_object_key,
                        },
                    ),
                ],
            ),
            CodepipelineStage(
                name=topology.build_stage_name,
                action=[
                    CodepipelineStageAction(
                        name=topology.build_action_name,
                        category="Build",
                        owner="AWS",
                        provider="CodeBuild",
                        version="1",
                        input_artifacts=[topology.source_artifact_name],
                        configuration={
                            "ProjectName": self.build_project.name,
                        },
                    ),
                ],
            ),
        ]

    def _policy_json(self, construct_id: str, statements: List[PolicyStatement]) -> str:
        document = DataAwsIamPolicyDocument(
            self, construct_id,
            statement=[_to_tf_statement(s) for s in statements],
        )
        return document.json

    def _attach(self, role: IamRole, construct_id: str, policy: IamPolicy) -> None:
        IamRolePolicyAttachment(self, construct_id, role=role.name, policy_arn=policy.arn)

    def _block_public_access(self, bucket: S3Bucket, construct_id: str) -> None:
        S3BucketPublicAccessBlock(
            self, construct_id,
            bucket=bucket.id,
            block_public_acls=True,
            block_public_policy=True,
            ignore_public_acls=True,
            restrict_public_buckets=True,
        )
