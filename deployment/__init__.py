"""
Deployment module for the pipeline infrastructure.

This module contains all deployment-related components:
- cdk: AWS CDK app and stack
- cdktf: CDK for Terraform app and stack
- aws: boto3 helpers for validation, status, IAM checks, source upload and cleanup
"""
