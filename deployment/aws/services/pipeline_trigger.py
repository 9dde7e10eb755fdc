"""
Feeding the pipeline.

The Source stage watches one object key in the source bucket, so a new
version of that object is what starts a run. start_pipeline() re-runs the
latest source revision without uploading.
"""

import io
import logging
import os
import zipfile
from typing import Dict, Any

from botocore.exceptions import ClientError

from deployment.aws.utils.aws_clients import get_codepipeline_client, get_s3_client

logger = logging.getLogger(__name__)

EXCLUDED_DIRS = {'.git', '__pycache__', 'node_modules', 'cdk.out', 'cdktf.out', '.venv'}


def package_source(path: str) -> bytes:
    """
    Build the zip archive the Source action expects.

    Args:
        path: A directory to archive, or an existing .zip file used as-is

    Raises:
        FileNotFoundError: If the path does not exist
        ValueError: If the path is a file that is not a zip archive
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Source path not found: {path}")

    if os.path.isfile(path):
        if not zipfile.is_zipfile(path):
            raise ValueError(f"Source file is not a zip archive: {path}")
        with open(path, 'rb') as f:
            return f.read()

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as archive:
        for root, dirs, files in os.walk(path):
            dirs[:] = sorted(d for d in dirs if d not in EXCLUDED_DIRS)
            for name in sorted(files):
                full_path = os.path.join(root, name)
                archive.write(full_path, os.path.relpath(full_path, path))
    return buffer.getvalue()


def upload_source(path: str, bucket_name: str, object_key: str) -> Dict[str, Any]:
    """
    Upload a source archive to the key the pipeline watches.

    Returns:
        Dict with status, and the new object version when the bucket is versioned
    """
    body = package_source(path)
    try:
        response = get_s3_client().put_object(Bucket=bucket_name, Key=object_key, Body=body)
    except ClientError as e:
        logger.error(f"❌ Upload to s3://{bucket_name}/{object_key} failed: {e}")
        return {"status": "error", "error": str(e)}

    version_id = response.get('VersionId')
    logger.info(f"✅ Uploaded {len(body)} bytes to s3://{bucket_name}/{object_key} (version {version_id})")
    return {"status": "success", "bucket": bucket_name, "key": object_key,
            "version_id": version_id, "size": len(body)}


def start_pipeline(pipeline_name: str) -> Dict[str, Any]:
    """Start a pipeline execution with the latest source revision."""
    try:
        response = get_codepipeline_client().start_pipeline_execution(name=pipeline_name)
    except ClientError as e:
        logger.error(f"❌ Could not start pipeline {pipeline_name}: {e}")
        return {"status": "error", "error": str(e)}

    execution_id = response['pipelineExecutionId']
    logger.info(f"✅ Started pipeline {pipeline_name}: {execution_id}")
    return {"status": "success", "execution_id": execution_id}
