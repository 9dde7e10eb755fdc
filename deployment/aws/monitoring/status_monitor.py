"""
Pipeline status checking and health monitoring.

Reports stage states, recent executions and the build project backing the
pipeline. Execution itself is owned by CodePipeline/CodeBuild; this module
only reads what they report.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Any

from botocore.exceptions import ClientError, NoCredentialsError

from deployment.aws.utils.aws_clients import get_codebuild_client, get_codepipeline_client

logger = logging.getLogger(__name__)

FAILED_STATUSES = {"Failed", "Stopped", "Cancelled", "Abandoned"}


class StatusMonitor:
    """Monitor the health of a deployed pipeline."""

    def __init__(self, codepipeline_client=None, codebuild_client=None):
        self.codepipeline_client = codepipeline_client
        self.codebuild_client = codebuild_client

    def _init_clients(self):
        """Initialize AWS clients lazily."""
        if not self.codepipeline_client:
            self.codepipeline_client = get_codepipeline_client()
        if not self.codebuild_client:
            self.codebuild_client = get_codebuild_client()

    def get_stage_states(self, pipeline_name: str) -> List[Dict[str, Any]]:
        """Latest status of every stage, in pipeline order."""
        self._init_clients()
        response = self.codepipeline_client.get_pipeline_state(name=pipeline_name)

        stages = []
        for stage in response.get('stageStates', []):
            latest = stage.get('latestExecution', {})
            stages.append({
                'name': stage['stageName'],
                'status': latest.get('status', 'NotRun'),
                'actions': [
                    {
                        'name': action['actionName'],
                        'status': action.get('latestExecution', {}).get('status', 'NotRun'),
                        'summary': action.get('latestExecution', {}).get('summary'),
                    }
                    for action in stage.get('actionStates', [])
                ],
            })
        return stages

    def get_recent_executions(self, pipeline_name: str, max_results: int = 5) -> List[Dict[str, Any]]:
        self._init_clients()
        response = self.codepipeline_client.list_pipeline_executions(
            pipelineName=pipeline_name,
            maxResults=max_results,
        )
        return [
            {
                'id': summary['pipelineExecutionId'],
                'status': summary['status'],
                'started': _isoformat(summary.get('startTime')),
                'updated': _isoformat(summary.get('lastUpdateTime')),
            }
            for summary in response.get('pipelineExecutionSummaries', [])
        ]

    def get_build_project(self, project_name: str) -> Optional[Dict[str, Any]]:
        self._init_clients()
        projects = self.codebuild_client.batch_get_projects(names=[project_name]).get('projects', [])
        if not projects:
            return None
        project = projects[0]
        environment = project.get('environment', {})
        return {
            'name': project['name'],
            'service_role': project.get('serviceRole'),
            'compute_type': environment.get('computeType'),
            'image': environment.get('image'),
            'environment_type': environment.get('type'),
        }

    def check_pipeline_health(self, pipeline_name: str, project_name: Optional[str] = None) -> Dict[str, Any]:
        """
        Check overall pipeline health.

        Returns:
            Dict with 'overall_status' (healthy, degraded, unhealthy) and the
            stage, execution and build project details it was derived from
        """
        health_report = {
            'timestamp': datetime.utcnow().isoformat(),
            'pipeline': pipeline_name,
            'overall_status': 'healthy',
            'stages': [],
            'executions': [],
            'build_project': None,
            'warnings': [],
            'errors': []
        }

        try:
            health_report['stages'] = self.get_stage_states(pipeline_name)
            health_report['executions'] = self.get_recent_executions(pipeline_name)
            if project_name:
                health_report['build_project'] = self.get_build_project(project_name)
                if health_report['build_project'] is None:
                    health_report['errors'].append(f"Build project {project_name} not found")
        except NoCredentialsError:
            health_report['errors'].append("AWS credentials not configured")
        except ClientError as e:
            error = e.response['Error']
            health_report['errors'].append(f"{error['Code']}: {error.get('Message', '')}")

        for stage in health_report['stages']:
            if stage['status'] in FAILED_STATUSES:
                health_report['warnings'].append(f"Stage {stage['name']} is {stage['status']}")

        if health_report['errors']:
            health_report['overall_status'] = 'unhealthy'
        elif health_report['warnings']:
            health_report['overall_status'] = 'degraded'

        logger.info(f"Pipeline {pipeline_name} is {health_report['overall_status']}")
        return health_report


def _isoformat(value) -> Optional[str]:
    return value.isoformat() if hasattr(value, 'isoformat') else value
