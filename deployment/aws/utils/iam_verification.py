"""
IAM Verification Module for the delivery pipeline

Validates that the roles behind a deployed pipeline are wired the way the
stacks declare them:

- the pipeline role trusts codepipeline.amazonaws.com
- the build project's service role trusts codebuild.amazonaws.com
- expected managed policies are attached (explicit CDKTF roles)
"""

import json
import logging
from typing import Dict, List, Optional, Any
from urllib.parse import unquote

from botocore.exceptions import ClientError

from deployment.aws.utils.aws_clients import (
    get_codebuild_client, get_codepipeline_client, get_iam_client
)
from pipeline_infra.topology import CODEBUILD_SERVICE, CODEPIPELINE_SERVICE, PipelineTopology

logger = logging.getLogger(__name__)


def role_name_from_arn(role_arn: str) -> str:
    """arn:aws:iam::123456789012:role/path/name -> name"""
    return role_arn.split('/')[-1]


def _trust_services(document: Any) -> List[str]:
    """Service principals allowed to assume a role by its trust policy."""
    if isinstance(document, str):
        document = json.loads(unquote(document))

    statements = document.get('Statement', [])
    if isinstance(statements, dict):
        statements = [statements]

    services = []
    for statement in statements:
        if statement.get('Effect') != 'Allow':
            continue
        service = statement.get('Principal', {}).get('Service', [])
        services.extend([service] if isinstance(service, str) else service)
    return services


class IAMVerifier:
    """Class for verifying the IAM roles of a deployed pipeline."""

    def __init__(self):
        self.iam_client = get_iam_client()

    def verify_role(self, role_name: str, service: str,
                    expected_policies: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        Verify one role's trust principal and attached managed policies.

        Args:
            role_name: Name of the IAM role
            service: Service principal that must be trusted
            expected_policies: Managed policy names that must be attached

        Returns:
            Dict with 'valid' plus the details that were checked
        """
        result = {'role': role_name, 'service': service, 'valid': False, 'errors': []}

        try:
            role = self.iam_client.get_role(RoleName=role_name)['Role']
        except ClientError as e:
            error_code = e.response['Error']['Code']
            logger.error(f"❌ Role {role_name} lookup failed: {error_code}")
            result['errors'].append(f"Role lookup failed: {error_code}")
            return result

        trusted = _trust_services(role.get('AssumeRolePolicyDocument', {}))
        result['trusted_services'] = trusted
        if service not in trusted:
            result['errors'].append(f"Role does not trust {service} (trusts: {trusted})")

        if expected_policies:
            try:
                attached = self.iam_client.list_attached_role_policies(RoleName=role_name)
                names = [p['PolicyName'] for p in attached.get('AttachedPolicies', [])]
            except ClientError as e:
                names = []
                result['errors'].append(f"Could not list attached policies: {e.response['Error']['Code']}")
            result['attached_policies'] = names
            missing = [p for p in expected_policies if p not in names]
            if missing:
                result['errors'].append(f"Missing managed policies: {missing}")

        result['valid'] = not result['errors']
        if result['valid']:
            logger.info(f"✅ Role {role_name} trusts {service}")
        else:
            for error in result['errors']:
                logger.error(f"❌ {role_name}: {error}")
        return result

    def verify_pipeline(self, pipeline_name: str) -> Dict[str, Any]:
        """
        Verify the pipeline role and the service role of every CodeBuild project it runs.

        Works for both toolkits since the roles are discovered from the deployed pipeline.
        """
        report = {'pipeline': pipeline_name, 'roles': [], 'overall_status': 'UNKNOWN'}

        try:
            pipeline = get_codepipeline_client().get_pipeline(name=pipeline_name)['pipeline']
        except ClientError as e:
            logger.error(f"Failed to describe pipeline {pipeline_name}: {e}")
            report['error'] = str(e)
            report['overall_status'] = 'ERROR'
            return report

        report['roles'].append(
            self.verify_role(role_name_from_arn(pipeline['roleArn']), CODEPIPELINE_SERVICE)
        )

        project_names = [
            action['configuration']['ProjectName']
            for stage in pipeline.get('stages', [])
            for action in stage.get('actions', [])
            if action['actionTypeId'].get('provider') == 'CodeBuild'
        ]
        if project_names:
            try:
                projects = get_codebuild_client().batch_get_projects(names=project_names)['projects']
            except ClientError as e:
                logger.error(f"Failed to describe build projects {project_names}: {e}")
                report['error'] = str(e)
                report['overall_status'] = 'ERROR'
                return report
            for project in projects:
                report['roles'].append(
                    self.verify_role(role_name_from_arn(project['serviceRole']), CODEBUILD_SERVICE)
                )

        report['overall_status'] = 'PASS' if all(r['valid'] for r in report['roles']) else 'FAIL'
        return report

    def verify_declared_roles(self, topology: PipelineTopology) -> Dict[str, Any]:
        """
        Verify the explicitly named roles of the CDKTF declaration, including
        which managed policies each one must carry.
        """
        roles = [
            self.verify_role(
                topology.build_role_name, CODEBUILD_SERVICE,
                [topology.artifact_policy_name],
            ),
            self.verify_role(
                topology.pipeline_role_name, CODEPIPELINE_SERVICE,
                [topology.artifact_policy_name, topology.source_policy_name],
            ),
        ]
        return {
            'pipeline': topology.pipeline_name,
            'roles': roles,
            'overall_status': 'PASS' if all(r['valid'] for r in roles) else 'FAIL',
        }
