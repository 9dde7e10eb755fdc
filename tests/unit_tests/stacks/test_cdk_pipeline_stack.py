import aws_cdk as cdk
import pytest
from aws_cdk import assertions

from deployment.cdk.app import create_app
from deployment.cdk.pipeline_stack import PipelineStack
from pipeline_infra.config.settings import Settings
from pipeline_infra.topology import build_topology


def _template(settings: Settings) -> assertions.Template:
    app = cdk.App()
    stack = PipelineStack(app, "TestCdkStack", topology=build_topology(settings, "cdk"))
    return assertions.Template.from_stack(stack)


@pytest.fixture
def template():
    return _template(Settings())


def _pipeline_properties(template):
    pipelines = template.find_resources("AWS::CodePipeline::Pipeline")
    assert len(pipelines) == 1
    return next(iter(pipelines.values()))["Properties"]


def test_declares_each_resource_once(template):
    template.resource_count_is("AWS::S3::Bucket", 2)
    template.resource_count_is("AWS::CodeBuild::Project", 1)
    template.resource_count_is("AWS::CodePipeline::Pipeline", 1)


def test_no_cross_account_key(template):
    template.resource_count_is("AWS::KMS::Key", 0)


def test_source_bucket_is_versioned(template):
    template.has_resource_properties("AWS::S3::Bucket", {
        "VersioningConfiguration": {"Status": "Enabled"},
    })


def test_build_project_reads_buildspec_from_source(template):
    template.has_resource_properties("AWS::CodeBuild::Project", {
        "Source": {"Type": "CODEPIPELINE", "BuildSpec": "buildspec.yml"},
        "Artifacts": {"Type": "CODEPIPELINE"},
        "Environment": {
            "ComputeType": "BUILD_GENERAL1_SMALL",
            "Image": "aws/codebuild/standard:7.0",
            "Type": "LINUX_CONTAINER",
        },
    })


def test_pipeline_stages_in_order(template):
    properties = _pipeline_properties(template)

    assert properties["Name"] == "cdk-pipeline"
    assert [stage["Name"] for stage in properties["Stages"]] == ["Source", "Build"]


def test_source_action_watches_object_key(template):
    source_stage = _pipeline_properties(template)["Stages"][0]
    [action] = source_stage["Actions"]

    assert action["Name"] == "S3_Source"
    assert action["ActionTypeId"]["Provider"] == "S3"
    assert action["ActionTypeId"]["Category"] == "Source"
    assert action["Configuration"]["S3ObjectKey"] == "path/to/file.zip"
    assert action["OutputArtifacts"] == [{"Name": "source_output"}]


def test_build_action_consumes_source_output(template):
    build_stage = _pipeline_properties(template)["Stages"][1]
    [action] = build_stage["Actions"]

    assert action["Name"] == "InvalidateCache"
    assert action["ActionTypeId"]["Provider"] == "CodeBuild"
    assert action["InputArtifacts"] == [{"Name": "source_output"}]
    assert "ProjectName" in action["Configuration"]


def test_pipeline_uses_declared_artifact_bucket(template):
    artifact_store = _pipeline_properties(template)["ArtifactStore"]

    assert artifact_store["Type"] == "S3"
    assert "Ref" in artifact_store["Location"]


def test_outputs(template):
    outputs = template.find_outputs("*")

    for name in ("SourceBucketName", "ArtifactBucketName", "BuildProjectName", "PipelineName"):
        assert name in outputs


def test_gpu_environment_type_override():
    template = _template(Settings(build_environment_type="LINUX_GPU_CONTAINER"))

    template.has_resource_properties("AWS::CodeBuild::Project", {
        "Environment": {"Type": "LINUX_GPU_CONTAINER"},
    })


def test_create_app_names_stack_from_settings():
    app = create_app(Settings(cdk_stack_name="MyPipelineStack", aws_region="eu-west-1"))

    stack = app.node.find_child("MyPipelineStack")

    assert isinstance(stack, PipelineStack)
    assert stack.region == "eu-west-1"


def test_arm_environment_uses_aarch64_image():
    template = _template(Settings(build_environment_type="ARM_CONTAINER"))

    template.has_resource_properties("AWS::CodeBuild::Project", {
        "Environment": {
            "Type": "ARM_CONTAINER",
            "Image": "aws/codebuild/amazonlinux2-aarch64-standard:3.0",
        },
    })


def test_create_app_leaves_account_unresolved_when_unknown():
    stack = create_app(Settings()).node.find_child("CdkStack")

    assert cdk.Token.is_unresolved(stack.account)
    assert stack.region == "us-east-1"


def test_create_app_pins_known_account():
    stack = create_app(Settings(aws_account_id="123456789012")).node.find_child("CdkStack")

    assert stack.account == "123456789012"
