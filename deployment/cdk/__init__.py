"""AWS CDK front-end: synthesizes the pipeline as CloudFormation."""
