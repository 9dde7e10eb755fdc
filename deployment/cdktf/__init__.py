"""CDK for Terraform front-end: synthesizes the pipeline as Terraform JSON."""
