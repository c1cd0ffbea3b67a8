"""Normalize raw KIE.ai Suno task records into canonical results and history patches.

The record-info endpoint is inconsistent about where it puts generated clips
and whether nested payloads arrive as objects or as JSON strings. Clip lists
are located by an ordered list of extractor functions; the first one that
finds a non-empty list wins.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

from suno_relay.models import (
    PERSISTED_STATUS,
    CanonicalStatus,
    CheckResult,
    Clip,
    Reconciliation,
)

logger = logging.getLogger(__name__)

EMPTY_SUCCESS_ERROR = "generation reported success but no audio was found"
UNKNOWN_FAILURE_ERROR = "Unknown error"

_SUCCESS_STATUSES = frozenset({"SUCCESS", "COMPLETED", "FIRST_SUCCESS"})
_FAILED_STATUSES = frozenset({
    "FAILED",
    "GENERATE_AUDIO_FAILED",
    "CREATE_TASK_FAILED",
    "SENSITIVE_WORD_ERROR",
})

_ID_KEYS = ("id", "audioId")
_AUDIO_KEYS = ("audioUrl", "audio_url", "audio")
_IMAGE_KEYS = ("imageUrl", "image_url", "image")
_VIDEO_KEYS = ("videoUrl", "video_url", "video")
_FAIL_REASON_KEYS = ("failReason", "errorMessage", "error")

_GENDER_LABELS = {"m": "male", "f": "female"}


def map_status(raw: Any) -> CanonicalStatus:
    """Map an upstream status string onto the canonical three-way status."""
    value = str(raw or "").strip().upper()
    if value in _SUCCESS_STATUSES:
        return CanonicalStatus.SUCCEEDED
    if value in _FAILED_STATUSES:
        return CanonicalStatus.FAILED
    return CanonicalStatus.SUBMITTED


def decode_if_string(value: Any) -> Any:
    """Decode ``value`` as JSON if it is a string, else return it unchanged.

    Strings that are not valid JSON are returned as-is.
    """
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


def _first(item: dict, keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = item.get(key)
        if value:
            return value
    return None


# ----------------------------------------------------------------------
# Clip sources, in priority order
# ----------------------------------------------------------------------

def _from_suno_data(task: dict) -> Any:
    return task.get("sunoData")


def _from_response_suno_data(task: dict) -> Any:
    response = decode_if_string(task.get("response"))
    if isinstance(response, dict):
        return response.get("sunoData")
    return None


def _from_response_list(task: dict) -> Any:
    response = decode_if_string(task.get("response"))
    if isinstance(response, list):
        return response
    return None


def _from_clips(task: dict) -> Any:
    return task.get("clips")


CLIP_SOURCES: tuple[Callable[[dict], Any], ...] = (
    _from_suno_data,
    _from_response_suno_data,
    _from_response_list,
    _from_clips,
)


def find_raw_clips(task: dict) -> list:
    """Return the first non-empty clip list found in ``task``."""
    for source in CLIP_SOURCES:
        found = decode_if_string(source(task))
        if isinstance(found, dict):
            found = [found]
        if isinstance(found, list) and found:
            logger.debug("Clips found via %s", source.__name__)
            return found
    return []


def normalize_clips(raw_clips: list, task_title: str | None = None) -> list[Clip]:
    """Turn raw clip objects into Clips, dropping any without an audio URL."""
    clips: list[Clip] = []
    for position, item in enumerate(raw_clips):
        if not isinstance(item, dict):
            continue
        audio_url = _first(item, _AUDIO_KEYS)
        if not audio_url:
            continue
        clips.append(Clip(
            id=str(_first(item, _ID_KEYS) or f"clip_{position}"),
            audio_url=audio_url,
            image_url=_first(item, _IMAGE_KEYS),
            video_url=_first(item, _VIDEO_KEYS),
            duration=item.get("duration"),
            title=item.get("title") or task_title,
            index=len(clips) + 1,
        ))
    return clips


def extract_metadata(task: dict) -> dict[str, Any]:
    """Recover the generation parameters echoed back in ``task.param``."""
    param = decode_if_string(task.get("param"))
    if not isinstance(param, dict):
        return {}
    gender = param.get("vocalGender")
    return {
        "model": param.get("model"),
        "gender": _GENDER_LABELS.get(gender, gender),
        "style": param.get("styleWeight"),
        "weirdness": param.get("weirdnessConstraint"),
        "audio_weight": param.get("audioWeight"),
        "persona_id": param.get("personaId"),
        "negative_tags": param.get("negativeTags"),
        "instrumental": param.get("instrumental"),
    }


class TaskReconciler:
    """Turns one upstream task descriptor into a caller result and a history patch."""

    def reconcile(self, task_id: str, task: dict) -> Reconciliation:
        raw_state = map_status(task.get("status"))
        title = task.get("title")
        clips = normalize_clips(find_raw_clips(task), title)

        if clips:
            state = CanonicalStatus.SUCCEEDED
            patch = {
                "status": PERSISTED_STATUS[state],
                "clips": [c.to_dict() for c in clips],
                "title": clips[0].title or title,
                "metadata": extract_metadata(task),
                "error_msg": None,
            }
            logger.info("Task %s: %d clip(s) ready", task_id, len(clips))
            return Reconciliation(CheckResult(state, task_id, clips=clips), patch)

        if raw_state is CanonicalStatus.SUCCEEDED:
            logger.warning("Task %s reported success without audio", task_id)
            return self._failed(task_id, EMPTY_SUCCESS_ERROR)

        if raw_state is CanonicalStatus.FAILED:
            reason = _first(task, _FAIL_REASON_KEYS) or UNKNOWN_FAILURE_ERROR
            logger.info("Task %s failed upstream: %s", task_id, reason)
            return self._failed(task_id, str(reason))

        logger.debug("Task %s still in progress (status=%r)", task_id, task.get("status"))
        return Reconciliation(CheckResult(CanonicalStatus.SUBMITTED, task_id))

    @staticmethod
    def _failed(task_id: str, reason: str) -> Reconciliation:
        patch = {
            "status": PERSISTED_STATUS[CanonicalStatus.FAILED],
            "clips": [],
            "error_msg": reason,
        }
        return Reconciliation(
            CheckResult(CanonicalStatus.FAILED, task_id, error=reason),
            patch,
        )
