TEST_REGION = "us-east-1"
TEST_ACCOUNT_ID = "123456789012"
TEST_SOURCE_BUCKET = "test-pipeline-source"
TEST_ARTIFACT_BUCKET = "test-pipeline-artifacts"
TEST_PIPELINE_NAME = "cdktf-pipeline"
TEST_PROJECT_NAME = "BuildProject"
