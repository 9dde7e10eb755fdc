import pytest
from moto import mock_aws

from deployment.aws.utils.aws_clients import AWSClientManager
from pipeline_infra.config.settings import get_settings
from tests.consts import TEST_REGION
from tests.fixtures.aws_fixtures import (  # noqa: F401
    artifact_bucket, declared_roles, source_bucket,
)


@pytest.fixture(autouse=True)
def aws_environment(monkeypatch, tmp_path):
    """Fake credentials, a scratch working directory and fresh settings for every test."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", TEST_REGION)
    monkeypatch.setenv("DEPLOYMENT_MODE", "aws-prod")
    monkeypatch.setenv("STATE_FILE", str(tmp_path / "state.json"))
    for name in ("AWS_ENDPOINT_URL", "AWS_PROFILE", "AWS_ACCOUNT_ID"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)

    get_settings.cache_clear()
    AWSClientManager.reset()
    yield
    get_settings.cache_clear()
    AWSClientManager.reset()


@pytest.fixture
def mocked_aws():
    with mock_aws():
        yield
