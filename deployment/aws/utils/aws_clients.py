"""boto3 clients for the services the pipeline tooling talks to."""
import os
import boto3
import logging
from typing import Any, Dict
from botocore.exceptions import ProfileNotFound
from pipeline_infra.config.settings import get_settings

logger = logging.getLogger(__name__)

# Every service the deployment helpers call
PIPELINE_SERVICES = ("s3", "iam", "sts", "codebuild", "codepipeline")


class AWSClientManager:
    """Singleton cache of one client per pipeline service."""
    _instance = None
    _clients = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(AWSClientManager, cls).__new__(cls)
            cls._instance._initialize()
        return cls._instance

    def _initialize(self):
        self.settings = get_settings()
        self.region = self.settings.aws_region
        self.session = self._create_session()

        logger.info("Initializing AWSClientManager")
        logger.info(f"  Mode: {self.settings.deployment_mode}")
        logger.info(f"  Region: {self.region}")
        if self.settings.is_local:
            logger.info(f"  Endpoint: {self.settings.aws_endpoint_url}")

    def _create_session(self) -> boto3.Session:
        """SSO profile in aws-prod, otherwise the configured (or mock) keys."""
        aws_profile = os.environ.get('AWS_PROFILE')
        if aws_profile and not self.settings.is_local:
            try:
                logger.debug(f"Using AWS profile: {aws_profile}")
                return boto3.Session(profile_name=aws_profile, region_name=self.region)
            except ProfileNotFound:
                logger.warning(f"AWS profile {aws_profile} not found, using configured credentials")

        return boto3.Session(
            aws_access_key_id=self.settings.aws_access_key_id,
            aws_secret_access_key=self.settings.aws_secret_access_key,
            region_name=self.region,
        )

    def _client_kwargs(self) -> Dict[str, Any]:
        # Endpoint override only for local/mock modes
        if self.settings.is_local and self.settings.aws_endpoint_url:
            return {'endpoint_url': self.settings.aws_endpoint_url}
        return {}

    @classmethod
    def reset(cls):
        """Drop the singleton and its cached clients (settings changed)."""
        cls._instance = None
        cls._clients = {}

    def get_client(self, service_name: str) -> Any:
        """Get or create the client for one of PIPELINE_SERVICES."""
        if service_name not in PIPELINE_SERVICES:
            raise ValueError(f"Unsupported service: {service_name}. Must be one of {PIPELINE_SERVICES}")
        if service_name not in self._clients:
            self._clients[service_name] = self.session.client(service_name, **self._client_kwargs())
            logger.debug(f"Created {service_name} client")
        return self._clients[service_name]


def get_s3_client():
    return AWSClientManager().get_client('s3')


def get_iam_client():
    return AWSClientManager().get_client('iam')


def get_sts_client():
    return AWSClientManager().get_client('sts')


def get_codebuild_client():
    return AWSClientManager().get_client('codebuild')


def get_codepipeline_client():
    return AWSClientManager().get_client('codepipeline')
