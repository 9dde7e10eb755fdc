from unittest.mock import MagicMock

import boto3

from deployment.aws.utils import iam_verification
from deployment.aws.utils.iam_verification import IAMVerifier, role_name_from_arn
from pipeline_infra.config.settings import Settings
from pipeline_infra.topology import build_topology
from tests.consts import TEST_PIPELINE_NAME, TEST_PROJECT_NAME, TEST_REGION
from tests.fixtures.aws_fixtures import trust_policy


def test_role_name_from_arn():
    assert role_name_from_arn("arn:aws:iam::123456789012:role/service-role/buildRole") == "buildRole"


def test_verify_role_with_policies(declared_roles):
    result = IAMVerifier().verify_role(
        "CodePipelineRole", "codepipeline.amazonaws.com",
        ["ArtifactAccessPolicy", "SourceBucketAccessPolicy"],
    )

    assert result["valid"]
    assert "codepipeline.amazonaws.com" in result["trusted_services"]
    assert sorted(result["attached_policies"]) == ["ArtifactAccessPolicy", "SourceBucketAccessPolicy"]


def test_verify_role_wrong_trust(declared_roles):
    result = IAMVerifier().verify_role("buildRole", "codepipeline.amazonaws.com")

    assert not result["valid"]
    assert "does not trust" in result["errors"][0]


def test_verify_role_missing_policy(declared_roles):
    result = IAMVerifier().verify_role(
        "buildRole", "codebuild.amazonaws.com", ["SourceBucketAccessPolicy"]
    )

    assert not result["valid"]
    assert "SourceBucketAccessPolicy" in result["errors"][0]


def test_verify_missing_role(mocked_aws):
    result = IAMVerifier().verify_role("ghostRole", "codebuild.amazonaws.com")

    assert not result["valid"]
    assert "NoSuchEntity" in result["errors"][0]


def test_verify_declared_roles(declared_roles):
    report = IAMVerifier().verify_declared_roles(build_topology(Settings(), "cdktf"))

    assert report["overall_status"] == "PASS"
    assert [r["role"] for r in report["roles"]] == ["buildRole", "CodePipelineRole"]


def test_verify_declared_roles_detects_detached_policy(declared_roles):
    iam = boto3.client("iam", region_name=TEST_REGION)
    iam.detach_role_policy(
        RoleName="CodePipelineRole",
        PolicyArn=declared_roles["policies"]["SourceBucketAccessPolicy"],
    )

    report = IAMVerifier().verify_declared_roles(build_topology(Settings(), "cdktf"))

    assert report["overall_status"] == "FAIL"


def _pipeline_description(role_arn):
    return {"pipeline": {
        "name": TEST_PIPELINE_NAME,
        "roleArn": role_arn,
        "stages": [
            {"name": "Source", "actions": [{
                "name": "S3_Source",
                "actionTypeId": {"category": "Source", "owner": "AWS", "provider": "S3", "version": "1"},
                "configuration": {"S3Bucket": "src", "S3ObjectKey": "path/to/file.zip"},
            }]},
            {"name": "Build", "actions": [{
                "name": "Build",
                "actionTypeId": {"category": "Build", "owner": "AWS", "provider": "CodeBuild", "version": "1"},
                "configuration": {"ProjectName": TEST_PROJECT_NAME},
            }]},
        ],
    }}


def test_verify_pipeline_discovers_roles(declared_roles, monkeypatch):
    codepipeline = MagicMock()
    codepipeline.get_pipeline.return_value = _pipeline_description(declared_roles["pipeline"])
    codebuild = MagicMock()
    codebuild.batch_get_projects.return_value = {
        "projects": [{"name": TEST_PROJECT_NAME, "serviceRole": declared_roles["build"]}]
    }
    monkeypatch.setattr(iam_verification, "get_codepipeline_client", lambda: codepipeline)
    monkeypatch.setattr(iam_verification, "get_codebuild_client", lambda: codebuild)

    report = IAMVerifier().verify_pipeline(TEST_PIPELINE_NAME)

    assert report["overall_status"] == "PASS"
    assert [r["role"] for r in report["roles"]] == ["CodePipelineRole", "buildRole"]
    codebuild.batch_get_projects.assert_called_once_with(names=[TEST_PROJECT_NAME])


def test_verify_pipeline_flags_swapped_roles(mocked_aws, monkeypatch):
    iam = boto3.client("iam", region_name=TEST_REGION)
    # a pipeline role that only CodeBuild can assume
    role_arn = iam.create_role(
        RoleName="misconfigured", AssumeRolePolicyDocument=trust_policy("codebuild.amazonaws.com"),
    )["Role"]["Arn"]
    codepipeline = MagicMock()
    codepipeline.get_pipeline.return_value = _pipeline_description(role_arn)
    codebuild = MagicMock()
    codebuild.batch_get_projects.return_value = {"projects": []}
    monkeypatch.setattr(iam_verification, "get_codepipeline_client", lambda: codepipeline)
    monkeypatch.setattr(iam_verification, "get_codebuild_client", lambda: codebuild)

    report = IAMVerifier().verify_pipeline(TEST_PIPELINE_NAME)

    assert report["overall_status"] == "FAIL"
