"""
Bucket cleanup before teardown.

Both toolkits refuse to delete a non-empty bucket, and the source bucket is
versioned, so every object version and delete marker has to go first.
"""

import logging
from typing import Dict, List, Any

from botocore.exceptions import ClientError

from deployment.aws.utils.aws_clients import get_s3_client

logger = logging.getLogger(__name__)


class CleanupManager:
    """Empties the pipeline's buckets so the stacks can be destroyed."""

    def __init__(self, s3_client=None):
        self.s3_client = s3_client or get_s3_client()
        self.cleanup_results = {}
        self.errors = []

    def empty_bucket(self, bucket_name: str) -> Dict[str, Any]:
        """
        Delete every object version and delete marker in a bucket.

        Returns:
            Dict with status and the number of deleted entries
        """
        deleted = 0
        failed = []
        try:
            paginator = self.s3_client.get_paginator('list_object_versions')
            for page in paginator.paginate(Bucket=bucket_name):
                entries = [
                    {'Key': item['Key'], 'VersionId': item['VersionId']}
                    for item in page.get('Versions', []) + page.get('DeleteMarkers', [])
                ]
                # delete_objects takes at most 1000 keys
                for start in range(0, len(entries), 1000):
                    batch = entries[start:start + 1000]
                    response = self.s3_client.delete_objects(
                        Bucket=bucket_name,
                        Delete={'Objects': batch, 'Quiet': True},
                    )
                    # Quiet mode only reports the entries that failed
                    errors = response.get('Errors', [])
                    deleted += len(batch) - len(errors)
                    failed.extend(errors)
        except ClientError as e:
            error_code = e.response['Error']['Code']
            if error_code == 'NoSuchBucket':
                logger.info(f"Bucket {bucket_name} already gone")
                return {"status": "skipped", "deleted": 0}
            logger.error(f"❌ Failed to empty bucket {bucket_name}: {error_code}")
            return {"status": "error", "error": str(e), "deleted": deleted}

        if failed:
            failed_keys = sorted({error['Key'] for error in failed})
            codes = sorted({error.get('Code', 'Unknown') for error in failed})
            logger.error(f"❌ {len(failed)} entries left in bucket {bucket_name}: {', '.join(codes)}")
            return {
                "status": "error",
                "error": f"{len(failed)} entries could not be deleted ({', '.join(codes)})",
                "deleted": deleted,
                "failed_keys": failed_keys,
            }

        logger.info(f"✅ Emptied bucket {bucket_name} ({deleted} entries)")
        return {"status": "success", "deleted": deleted}

    def empty_buckets(self, bucket_names: List[str]) -> Dict[str, Any]:
        for bucket_name in bucket_names:
            result = self.empty_bucket(bucket_name)
            self.cleanup_results[bucket_name] = result
            if result["status"] == "error":
                self.errors.append(f"{bucket_name}: {result['error']}")
        return self._generate_cleanup_report()

    def _generate_cleanup_report(self) -> Dict[str, Any]:
        return {
            "status": "error" if self.errors else "success",
            "results": self.cleanup_results,
            "errors": self.errors,
            "total_deleted": sum(r.get("deleted", 0) for r in self.cleanup_results.values()),
        }
