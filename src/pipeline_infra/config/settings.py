# src/pipeline_infra/config/settings.py
from typing import Optional, Dict, Any
from pydantic import Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


VALID_DEPLOYMENT_MODES = ["local-dev", "aws-mock", "aws-prod"]
VALID_COMPUTE_TYPES = [
    "BUILD_GENERAL1_SMALL",
    "BUILD_GENERAL1_MEDIUM",
    "BUILD_GENERAL1_LARGE",
    "BUILD_GENERAL1_2XLARGE",
]
VALID_ENVIRONMENT_TYPES = ["LINUX_CONTAINER", "LINUX_GPU_CONTAINER", "ARM_CONTAINER"]
DEFAULT_BUILD_IMAGE = "aws/codebuild/standard:7.0"
DEFAULT_ARM_BUILD_IMAGE = "aws/codebuild/amazonlinux2-aarch64-standard:3.0"


class Settings(BaseSettings):
    """
    Single source of truth for the pipeline infrastructure settings.

    Configuration precedence:
    1. Environment variables (highest priority)
    2. .env / .env.aws files (if they exist)
    3. Default values in this class (lowest priority)

    Usage:
        from pipeline_infra.config.settings import get_settings
        settings = get_settings()
        key = settings.source_object_key
    """

    app_name: str = Field(
        default="s3-codebuild-pipeline",
        description="Application name, used as a tag on every stack"
    )

    # Deployment Mode
    deployment_mode: str = Field(
        default="aws-prod",
        description="Deployment mode: local-dev, aws-mock, or aws-prod"
    )

    # AWS Core Settings
    aws_region: str = Field(
        default="us-east-1",
        alias="AWS_DEFAULT_REGION"
    )

    aws_access_key_id: Optional[str] = Field(
        default=None,
        alias="AWS_ACCESS_KEY_ID"
    )

    aws_secret_access_key: Optional[str] = Field(
        default=None,
        alias="AWS_SECRET_ACCESS_KEY"
    )

    aws_endpoint_url: Optional[str] = Field(
        default=None,
        alias="AWS_ENDPOINT_URL"
    )

    aws_account_id: Optional[str] = Field(
        default=None,
        alias="AWS_ACCOUNT_ID",
        description="AWS Account ID (left to the toolkit when not provided)"
    )

    # Stack names
    cdk_stack_name: str = Field(default="CdkStack")
    cdktf_stack_name: str = Field(default="CdktfStack")

    # Pipeline names
    cdk_pipeline_name: str = Field(default="cdk-pipeline")
    cdktf_pipeline_name: str = Field(default="cdktf-pipeline")

    # Source stage
    source_object_key: str = Field(
        default="path/to/file.zip",
        description="Object key in the source bucket that triggers the pipeline"
    )

    # Build stage
    buildspec_path: str = Field(
        default="buildspec.yml",
        description="Buildspec file name inside the source archive"
    )

    build_project_name: str = Field(default="BuildProject")

    build_compute_type: str = Field(default="BUILD_GENERAL1_SMALL")

    build_environment_type: str = Field(default="LINUX_CONTAINER")

    # Declared after the environment type so the image can be checked against it
    build_image: str = Field(default=DEFAULT_BUILD_IMAGE)

    # IAM names (CDKTF declares these explicitly)
    build_role_name: str = Field(default="buildRole")
    pipeline_role_name: str = Field(default="CodePipelineRole")

    # Synthesis output
    cdk_outdir: str = Field(default="cdk.out")
    cdktf_outdir: str = Field(default="cdktf.out")

    # Local state
    state_file: str = Field(
        default=".deployment_state.json",
        description="Where deploy outputs are recorded"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    @validator('deployment_mode', pre=True)
    def normalize_deployment_mode(cls, v):
        """Normalize deployment mode values."""
        if v:
            mode_mapping = {
                "local": "local-dev",
                "mock": "aws-mock",
                "cloud": "aws-prod",
                "prod": "aws-prod",
            }
            return mode_mapping.get(v, v)
        return v

    @validator('deployment_mode')
    def validate_deployment_mode(cls, v):
        """Validate deployment mode is one of the allowed values."""
        if v not in VALID_DEPLOYMENT_MODES:
            raise ValueError(f"Invalid deployment_mode: {v}. Must be one of {VALID_DEPLOYMENT_MODES}")
        return v

    @validator('build_compute_type', pre=True)
    def validate_compute_type(cls, v):
        v = str(v).upper()
        if v not in VALID_COMPUTE_TYPES:
            raise ValueError(f"Invalid build_compute_type: {v}. Must be one of {VALID_COMPUTE_TYPES}")
        return v

    @validator('build_environment_type', pre=True)
    def validate_environment_type(cls, v):
        v = str(v).upper()
        if v not in VALID_ENVIRONMENT_TYPES:
            raise ValueError(
                f"Invalid build_environment_type: {v}. Must be one of {VALID_ENVIRONMENT_TYPES}"
            )
        return v

    @validator('build_image', always=True)
    def match_build_image_to_environment(cls, v, values):
        """ARM builds need an aarch64 image; swap in the ARM default for the x86 one."""
        environment_type = values.get('build_environment_type')
        if environment_type is None:
            return v
        is_arm_image = "aarch64" in v
        if environment_type == "ARM_CONTAINER" and not is_arm_image:
            if v == DEFAULT_BUILD_IMAGE:
                return DEFAULT_ARM_BUILD_IMAGE
            raise ValueError(f"ARM_CONTAINER builds need an aarch64 image, got: {v}")
        if environment_type != "ARM_CONTAINER" and is_arm_image:
            raise ValueError(f"{environment_type} builds cannot run the aarch64 image {v}")
        return v

    @validator('source_object_key')
    def validate_source_object_key(cls, v):
        """S3 source actions only accept zip archives."""
        v = v.lstrip('/')
        if not v.endswith('.zip'):
            raise ValueError(f"source_object_key must point to a .zip archive, got: {v}")
        return v

    @validator('aws_endpoint_url', always=True)
    def set_endpoint_url_based_on_mode(cls, v, values):
        """Auto-set endpoint URL based on deployment mode if not explicitly provided."""
        if v is None and 'deployment_mode' in values:
            if values['deployment_mode'] in ["local-dev", "aws-mock"]:
                return "http://localhost:5000"
        return v

    @validator('aws_access_key_id', 'aws_secret_access_key', always=True)
    def set_mock_credentials_for_local_modes(cls, v, values):
        """Auto-set mock credentials for local modes if not provided."""
        if v is None and 'deployment_mode' in values:
            if values['deployment_mode'] in ["local-dev", "aws-mock"]:
                return "mock"
        return v

    @property
    def is_local(self) -> bool:
        return self.deployment_mode in ["local-dev", "aws-mock"]

    def outdir_for(self, toolkit: str) -> str:
        """Synthesis output directory for a toolkit."""
        if toolkit == "cdk":
            return self.cdk_outdir
        if toolkit == "cdktf":
            return self.cdktf_outdir
        raise ValueError(f"Unknown toolkit: {toolkit}")

    def stack_name_for(self, toolkit: str) -> str:
        if toolkit == "cdk":
            return self.cdk_stack_name
        if toolkit == "cdktf":
            return self.cdktf_stack_name
        raise ValueError(f"Unknown toolkit: {toolkit}")

    def get_environment_dict(self) -> Dict[str, Any]:
        """Get configuration as a dictionary suitable for a toolkit subprocess.

        Returns:
            Dictionary of environment variables
        """
        env = {
            'DEPLOYMENT_MODE': self.deployment_mode,
            'AWS_DEFAULT_REGION': self.aws_region,
            'CDK_DEFAULT_REGION': self.aws_region,
            'LOG_LEVEL': self.log_level,
        }
        if self.aws_account_id:
            env['CDK_DEFAULT_ACCOUNT'] = self.aws_account_id
        if self.is_local:
            env['AWS_ENDPOINT_URL'] = self.aws_endpoint_url or ''
            env['AWS_ACCESS_KEY_ID'] = self.aws_access_key_id or 'mock'
            env['AWS_SECRET_ACCESS_KEY'] = self.aws_secret_access_key or 'mock'
        return env

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=(".env", ".env.aws"),  # .env.aws takes precedence
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    This ensures we only create one Settings instance per process.
    """
    return Settings()
