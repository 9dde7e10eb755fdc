"""
Configuration management for the pipeline infrastructure.

Contains the Pydantic settings shared by the CDK and CDKTF front-ends and the
operational helpers, across local-dev, aws-mock, and aws-prod deployment modes.
"""
