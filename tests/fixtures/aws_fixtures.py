"""Moto-backed AWS resources shaped like a deployed pipeline."""
import json

import boto3
import pytest

from tests.consts import TEST_ARTIFACT_BUCKET, TEST_REGION, TEST_SOURCE_BUCKET


def trust_policy(service: str) -> str:
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [{
            "Effect": "Allow",
            "Principal": {"Service": service},
            "Action": "sts:AssumeRole",
        }],
    })


@pytest.fixture
def source_bucket(mocked_aws):
    s3_client = boto3.client("s3", region_name=TEST_REGION)
    s3_client.create_bucket(Bucket=TEST_SOURCE_BUCKET)
    s3_client.put_bucket_versioning(
        Bucket=TEST_SOURCE_BUCKET,
        VersioningConfiguration={"Status": "Enabled"},
    )
    yield TEST_SOURCE_BUCKET


@pytest.fixture
def artifact_bucket(mocked_aws):
    s3_client = boto3.client("s3", region_name=TEST_REGION)
    s3_client.create_bucket(Bucket=TEST_ARTIFACT_BUCKET)
    yield TEST_ARTIFACT_BUCKET


@pytest.fixture
def declared_roles(mocked_aws):
    """buildRole and CodePipelineRole with the managed policies the CDKTF stack attaches."""
    iam = boto3.client("iam", region_name=TEST_REGION)
    policy_document = json.dumps({
        "Version": "2012-10-17",
        "Statement": [{"Effect": "Allow", "Action": "s3:GetObject", "Resource": "*"}],
    })
    arns = {}
    for name in ("ArtifactAccessPolicy", "SourceBucketAccessPolicy"):
        arns[name] = iam.create_policy(PolicyName=name, PolicyDocument=policy_document)["Policy"]["Arn"]

    build_role = iam.create_role(
        RoleName="buildRole",
        AssumeRolePolicyDocument=trust_policy("codebuild.amazonaws.com"),
    )["Role"]
    iam.attach_role_policy(RoleName="buildRole", PolicyArn=arns["ArtifactAccessPolicy"])

    pipeline_role = iam.create_role(
        RoleName="CodePipelineRole",
        AssumeRolePolicyDocument=trust_policy("codepipeline.amazonaws.com"),
    )["Role"]
    for arn in arns.values():
        iam.attach_role_policy(RoleName="CodePipelineRole", PolicyArn=arn)

    yield {"build": build_role["Arn"], "pipeline": pipeline_role["Arn"], "policies": arns}
