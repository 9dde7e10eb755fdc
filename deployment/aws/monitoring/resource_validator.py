"""
Pre-deployment resource validation.

Validates AWS credentials, the target region, the toolkit CLI and name
collisions before deployment to catch issues early and provide helpful
error messages.
"""

import logging
import shutil
from typing import Dict, Any

import boto3
from botocore.exceptions import ClientError, NoCredentialsError

from deployment.aws.utils.aws_clients import get_codepipeline_client, get_sts_client
from pipeline_infra.config.settings import get_settings
from pipeline_infra.topology import PipelineTopology

logger = logging.getLogger(__name__)

TOOLKIT_BINARIES = {"cdk": "cdk", "cdktf": "cdktf"}


class ResourceValidator:
    """Validate AWS resources and prerequisites before deployment."""

    def __init__(self, topology: PipelineTopology):
        self.settings = get_settings()
        self.topology = topology
        self.validation_results = {
            'valid': True,
            'warnings': [],
            'errors': [],
            'checks': {}
        }

    def _fail(self, check: str, message: str):
        self.validation_results['valid'] = False
        self.validation_results['errors'].append(message)
        self.validation_results['checks'][check] = {'status': 'error', 'error': message}

    def validate_credentials(self) -> bool:
        """Validate AWS credentials and basic access."""
        try:
            identity = get_sts_client().get_caller_identity()

            self.validation_results['checks']['credentials'] = {
                'status': 'valid',
                'account_id': identity['Account'],
                'user_arn': identity['Arn'],
            }

            configured = self.settings.aws_account_id
            if configured and configured != identity['Account']:
                self._fail(
                    'credentials',
                    f"Credentials belong to account {identity['Account']}, "
                    f"but AWS_ACCOUNT_ID is {configured}"
                )
                return False
            return True

        except NoCredentialsError:
            self._fail(
                'credentials',
                "AWS credentials not configured. Please run 'aws configure' or set environment variables."
            )
            return False

        except ClientError as e:
            self._fail('credentials', f"AWS credentials invalid: {e.response['Error']['Message']}")
            return False

    def validate_region(self) -> bool:
        """Check that CodePipeline is offered in the target region."""
        regions = boto3.session.Session().get_available_regions('codepipeline')
        if self.topology.region not in regions:
            self._fail('region', f"CodePipeline is not available in region {self.topology.region}")
            return False
        self.validation_results['checks']['region'] = {'status': 'valid', 'region': self.topology.region}
        return True

    def validate_toolkit(self) -> bool:
        """Check that the toolkit CLI is on PATH."""
        binary = TOOLKIT_BINARIES[self.topology.toolkit]
        path = shutil.which(binary)
        if not path:
            self._fail('toolkit', f"'{binary}' CLI not found on PATH. Install it with npm before deploying.")
            return False
        self.validation_results['checks']['toolkit'] = {'status': 'valid', 'path': path}
        return True

    def check_pipeline_name(self) -> bool:
        """Warn when a pipeline with the same name already exists."""
        try:
            get_codepipeline_client().get_pipeline(name=self.topology.pipeline_name)
        except ClientError as e:
            if e.response['Error']['Code'] == 'PipelineNotFoundException':
                self.validation_results['checks']['pipeline_name'] = {'status': 'valid'}
                return True
            self.validation_results['warnings'].append(
                f"Could not check pipeline name: {e.response['Error']['Code']}"
            )
            return True

        self.validation_results['warnings'].append(
            f"Pipeline {self.topology.pipeline_name} already exists; deploying will update it "
            "or fail if another stack owns it"
        )
        self.validation_results['checks']['pipeline_name'] = {'status': 'exists'}
        return True

    def validate_all(self) -> Dict[str, Any]:
        """Run every check; credentials failing skips the checks that need AWS."""
        self.validate_toolkit()
        self.validate_region()
        if self.validate_credentials():
            self.check_pipeline_name()

        for error in self.validation_results['errors']:
            logger.error(f"❌ {error}")
        for warning in self.validation_results['warnings']:
            logger.warning(f"⚠️ {warning}")
        if self.validation_results['valid']:
            logger.info("✅ Pre-deployment validation passed")
        return self.validation_results
