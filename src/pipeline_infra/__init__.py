"""
S3 -> CodeBuild -> CodePipeline, declared with AWS CDK and CDK for Terraform.

- config: pydantic settings shared by both front-ends
- topology: toolkit-neutral description of the pipeline
- toolkit: synthesis and the cdk / cdktf CLIs
- cli: the ``pipeline-infra`` command
"""

__version__ = "0.1.0"
