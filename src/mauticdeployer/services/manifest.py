"""Run manifest recording for deployments."""

import json
import os
import tempfile
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class ManifestService:
    """Tracks each deployment step and writes the run record as JSON."""

    def __init__(self, manifest_file: str, logger):
        self.manifest_file = manifest_file
        self.logger = logger
        self.manifest: Dict[str, Any] = {
            "run_id": None,
            "status": "running",
            "action": None,
            "started_at": None,
            "finished_at": None,
            "duration_seconds": None,
            "settings": {},
            "installation": {
                "status": None,
                "checks": {},
                "detected_version": None,
                "target_version": None,
            },
            "extensions": {},
            "steps": [],
            "outputs": {},
            "error": None,
        }

    def start_run(self, run_id: str, settings: Dict[str, Any]):
        self.manifest.update(
            run_id=run_id,
            status="running",
            started_at=self._now(),
            settings=settings,
        )
        self.write()

    def record_installation(
        self,
        status: str,
        checks: Dict[str, bool],
        detected_version: Optional[str],
        target_version: str,
    ):
        self.manifest["installation"] = {
            "status": status,
            "checks": dict(checks),
            "detected_version": detected_version,
            "target_version": target_version,
        }
        self.write()

    def record_action(self, action: str):
        self.manifest["action"] = action
        self.write()

    def record_extensions(self, kind: str, succeeded, failed):
        self.manifest["extensions"][kind] = {
            "succeeded": list(succeeded),
            "failed": [{"source": source, "error": error} for source, error in failed],
        }
        self.write()

    def step_started(self, step_name: str, details: Optional[Dict[str, Any]] = None):
        self.manifest["steps"].append(
            {
                "name": step_name,
                "status": "running",
                "started_at": self._now(),
                "finished_at": None,
                "duration_seconds": None,
                "details": details or {},
                "error": None,
            }
        )
        self.write()

    def step_finished(
        self,
        step_name: str,
        status: str,
        details: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ):
        step = next(
            (
                item
                for item in reversed(self.manifest["steps"])
                if item["name"] == step_name and item["status"] == "running"
            ),
            None,
        )
        if step is not None:
            step.update(status=status, finished_at=self._now(), error=error)
            if details:
                step["details"].update(details)
            step["duration_seconds"] = self._elapsed(step["started_at"], step["finished_at"])
        self.write()

    def add_output(self, key: str, value: str):
        self.manifest["outputs"][key] = value
        self.write()

    def finalize(self, status: str, error: Optional[str] = None):
        self.manifest["status"] = status
        self.manifest["finished_at"] = self._now()
        if self.manifest.get("started_at"):
            self.manifest["duration_seconds"] = self._elapsed(
                self.manifest["started_at"], self.manifest["finished_at"]
            )
        self.manifest["error"] = error
        self.write()

    def write(self):
        directory = os.path.dirname(self.manifest_file) or "."
        try:
            os.makedirs(directory, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(prefix=".run-manifest-", suffix=".json", dir=directory)
        except OSError as exc:
            self.logger.warning("Could not write manifest file '%s': %s", self.manifest_file, exc)
            return

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
                json.dump(self.manifest, file_obj, indent=2, sort_keys=True)
                file_obj.write("\n")
            os.replace(temp_path, self.manifest_file)
        except OSError as exc:
            self.logger.warning("Could not write manifest file '%s': %s", self.manifest_file, exc)
            try:
                os.remove(temp_path)
            except OSError:
                pass

    @staticmethod
    def _elapsed(started: str, finished: str) -> float:
        return (datetime.fromisoformat(finished) - datetime.fromisoformat(started)).total_seconds()

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()
