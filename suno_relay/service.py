"""Job submission, status checks and history maintenance on top of the failover client."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from suno_relay.client import FailoverClient, RelayError, parse_task_id
from suno_relay.config import RelaySettings
from suno_relay.history import JsonHistoryStore
from suno_relay.models import (
    CanonicalStatus,
    CheckResult,
    GenerationJob,
    Submission,
    TaskRecord,
)
from suno_relay.reconciler import TaskReconciler

logger = logging.getLogger(__name__)

UNEXPECTED_PAYLOAD_ERROR = "Unexpected task payload"

Keys = str | Iterable[str] | None


@dataclass
class CheckOutcome:
    """A status check result and whether it changed stored history."""
    result: CheckResult
    updated: bool = False
    found: bool = True
    error: RelayError | None = None


def _as_float(value: Any) -> float | None:
    if value in (None, ""):
        return None
    return float(value)


def build_generate_body(job: GenerationJob, model: str, callback_url: str) -> dict[str, Any]:
    """Translate a caller job into the upstream generate/upload-cover body.

    Raises:
        ValueError: If a cover job has no reference URL.
    """
    options = job.options or {}
    body: dict[str, Any] = {
        "model": options.get("model") or model,
        "callBackUrl": callback_url,
        "customMode": job.is_custom,
        "instrumental": bool(options.get("instrumental", False)),
    }

    if job.is_cover:
        if not job.ref_url:
            raise ValueError("No reference file: cover jobs require ref_url")
        body["uploadUrl"] = job.ref_url

    body["prompt"] = job.prompt
    if not job.is_custom:
        return body

    body["title"] = job.title or "Untitled"
    body["style"] = job.tags or "Pop"

    gender = options.get("vocal_gender")
    if gender and gender != "any":
        body["vocalGender"] = "m" if gender == "male" else "f"
    if options.get("style_influence"):
        body["styleWeight"] = _as_float(options["style_influence"])
    if options.get("weirdness"):
        body["weirdnessConstraint"] = _as_float(options["weirdness"])
    if options.get("negative_tags"):
        body["negativeTags"] = options["negative_tags"]
    if options.get("audio_weight"):
        body["audioWeight"] = _as_float(options["audio_weight"])
    if options.get("persona_id"):
        body["personaId"] = options["persona_id"]
    return body


class RelayService:
    """Front door for callers: submit jobs, check tasks, keep history in sync.

    Status checks for the same task must not run concurrently for one scope;
    the last write wins.
    """

    def __init__(
        self,
        client: FailoverClient,
        store: JsonHistoryStore,
        settings: RelaySettings | None = None,
        reconciler: TaskReconciler | None = None,
    ) -> None:
        self.client = client
        self.store = store
        self.settings = settings or RelaySettings()
        self.reconciler = reconciler or TaskReconciler()

    async def generate(self, job: GenerationJob, scope: str | None, keys: Keys = None) -> Submission:
        """Submit a job and record it in history when the upstream accepts it."""
        body = build_generate_body(job, self.settings.model, self.settings.callback_url)
        logger.info("Submitting %s job (custom=%s)", job.task_type, job.is_custom)
        response = await self.client.submit(body, keys, cover=job.is_cover)

        task_id = parse_task_id(response.data) if response.ok else None
        if task_id is None:
            logger.warning("Submission not accepted: code=%s msg=%s", response.code, response.msg)
            return Submission(task_id=None, code=response.code, msg=response.msg)

        options = job.options or {}
        record = TaskRecord(
            task_id=task_id,
            title=body.get("title") or job.title or "Generating...",
            tags=body.get("style") or job.tags or "pop",
            prompt=job.prompt,
            type=job.task_type,
            status="submitted",
            created_at=datetime.now(timezone.utc).isoformat(),
            ref_url=job.ref_url,
            metadata={
                "weirdness": options.get("weirdness"),
                "style": options.get("style_influence"),
                "gender": options.get("vocal_gender"),
                "model": body["model"],
                "negative_tags": options.get("negative_tags"),
                "audio_weight": options.get("audio_weight"),
                "persona_id": options.get("persona_id"),
                "instrumental": body["instrumental"],
            },
        )
        self.store.add(scope, record)
        logger.info("Task %s submitted", task_id)
        return Submission(task_id=task_id, code=response.code, msg=response.msg)

    async def check(self, task_id: str, scope: str | None, keys: Keys = None) -> CheckOutcome:
        """Look up a task upstream and merge what was learned into history.

        Client-level failures become a ``failed`` result and leave history alone.
        """
        try:
            response = await self.client.lookup_task(task_id, keys)
        except RelayError as exc:
            logger.warning("Check of task %s failed: %s", task_id, exc)
            return CheckOutcome(
                CheckResult(CanonicalStatus.FAILED, task_id, error=str(exc)),
                found=False,
                error=exc,
            )

        if not response.ok:
            error = response.msg or f"API Error {response.code}"
        elif not isinstance(response.data, dict):
            error = UNEXPECTED_PAYLOAD_ERROR
        else:
            error = None
        if error is not None:
            return CheckOutcome(
                CheckResult(CanonicalStatus.FAILED, task_id, error=error),
                found=False,
                error=RelayError(error, status_code=response.code, body=response.raw),
            )

        reconciliation = self.reconciler.reconcile(task_id, response.data)
        if reconciliation.patch is None:
            return CheckOutcome(reconciliation.result)

        self.store.put(scope, task_id, reconciliation.patch)
        return CheckOutcome(reconciliation.result, updated=True)

    async def import_task(self, task_id: str, scope: str | None, keys: Keys = None) -> CheckResult:
        """Bring a task created elsewhere into this scope's history.

        Raises:
            TaskNotFoundError: If no key can see the task.
            RelayError: Any other lookup failure, unchanged.
        """
        outcome = await self.check(task_id, scope, keys)
        if outcome.error is not None:
            raise outcome.error
        if not outcome.updated and self.store.find(scope, task_id) is None:
            self.store.put(scope, task_id, {"status": "submitted"})
        return outcome.result

    async def refresh(self, scope: str | None, keys: Keys = None) -> tuple[int, list[TaskRecord]]:
        """Re-check every unfinished record, one at a time in history order.

        Returns:
            Number of records updated and the refreshed history listing.
        """
        updated = 0
        for record in self.store.get(scope):
            if not record.needs_refresh:
                continue
            outcome = await self.check(record.task_id, scope, keys)
            if outcome.updated:
                updated += 1
        logger.info("Refresh updated %d task(s)", updated)
        return updated, self.history(scope)

    def history(self, scope: str | None) -> list[TaskRecord]:
        return self.store.get(scope)[: self.settings.history_limit]

    def delete(self, scope: str | None, task_id: str) -> bool:
        return self.store.delete(scope, task_id)
