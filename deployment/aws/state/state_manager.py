"""
Deployment state management.

Records which toolkit deployed the pipeline and the stack outputs it reported
(bucket names, build project, pipeline name) so later commands (upload-source,
status, destroy) can find the deployed resources without re-synthesizing.
"""

import json
import logging
import os
import re
from datetime import datetime
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


def _normalize_key(key: str) -> str:
    """'SourceBucketName', 'source_bucket_name' and 'sourceBucketName' compare equal."""
    return re.sub(r'[^a-z0-9]', '', key.lower())


class StateManager:
    """Manages the local deployment state file."""

    def __init__(self, state_file: str = ".deployment_state.json"):
        self.state_file = state_file
        self.state = self._load_state()

    @staticmethod
    def _empty_state() -> Dict[str, Any]:
        return {
            "deployment_id": None,
            "created_at": None,
            "last_updated": None,
            "toolkits": {},
            "status": "not_deployed"
        }

    def _load_state(self) -> Dict[str, Any]:
        """Load deployment state from file."""
        if os.path.exists(self.state_file):
            try:
                with open(self.state_file, 'r') as f:
                    return json.load(f)
            except (json.JSONDecodeError, IOError) as e:
                logger.warning(f"Ignoring unreadable state file {self.state_file}: {e}")

        return self._empty_state()

    def save_state(self):
        """Save current state to file."""
        self.state["last_updated"] = datetime.utcnow().isoformat()

        try:
            with open(self.state_file, 'w') as f:
                json.dump(self.state, f, indent=2)
        except IOError as e:
            logger.warning(f"Could not save state file: {e}")

    def start_deployment(self, deployment_id: str, toolkit: str):
        """Start a new deployment for a toolkit."""
        self.state.update({
            "deployment_id": deployment_id,
            "created_at": datetime.utcnow().isoformat(),
            "status": "deploying",
        })
        self.state.setdefault("toolkits", {})[toolkit] = {
            "status": "deploying",
            "outputs": {},
        }
        self.save_state()

    def record_outputs(self, toolkit: str, stack_name: str, outputs: Dict[str, Any]):
        """Record the outputs a toolkit reported for a stack."""
        entry = self.state.setdefault("toolkits", {}).setdefault(toolkit, {"outputs": {}})
        entry["stack_name"] = stack_name
        entry["outputs"] = {k: v for k, v in outputs.items()}
        entry["recorded_at"] = datetime.utcnow().isoformat()
        self.save_state()

    def record_outputs_file(self, toolkit: str, stack_name: str, outputs_file: str) -> Dict[str, Any]:
        """Read a toolkit outputs file (``{stack: {key: value}}``) and record it.

        Returns:
            The outputs recorded for the stack (empty if the file has none)
        """
        try:
            with open(outputs_file, 'r') as f:
                all_outputs = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Could not read outputs file {outputs_file}: {e}")
            return {}

        outputs = all_outputs.get(stack_name)
        if outputs is None and len(all_outputs) == 1:
            outputs = next(iter(all_outputs.values()))
        outputs = outputs or {}

        self.record_outputs(toolkit, stack_name, outputs)
        return outputs

    def get_output(self, toolkit: str, key: str) -> Optional[str]:
        """Look up an output regardless of the casing the toolkit used."""
        outputs = self.state.get("toolkits", {}).get(toolkit, {}).get("outputs", {})
        wanted = _normalize_key(key)
        for name, value in outputs.items():
            if _normalize_key(name) == wanted:
                return value
        return None

    def deployed_toolkits(self):
        return [
            name for name, entry in self.state.get("toolkits", {}).items()
            if entry.get("status") == "deployed"
        ]

    def mark_deployment_complete(self, toolkit: str):
        """Mark deployment as complete."""
        self.state.setdefault("toolkits", {}).setdefault(toolkit, {"outputs": {}})["status"] = "deployed"
        self.state["status"] = "deployed"
        self.save_state()

    def mark_deployment_failed(self, toolkit: str, error: str):
        """Mark deployment as failed."""
        entry = self.state.setdefault("toolkits", {}).setdefault(toolkit, {"outputs": {}})
        entry["status"] = "failed"
        entry["error"] = error
        self.state["status"] = "failed"
        self.save_state()

    def mark_destroyed(self, toolkit: str):
        self.state.get("toolkits", {}).pop(toolkit, None)
        self.state["status"] = "deployed" if self.deployed_toolkits() else "not_deployed"
        self.save_state()

    def clear_state(self):
        """Clear all deployment state."""
        if os.path.exists(self.state_file):
            os.remove(self.state_file)
        self.state = self._empty_state()
