"""Data models for the Suno relay: upstream responses, clips, and history records."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class CanonicalStatus(str, Enum):
    """Normalized job state reported to callers."""
    SUBMITTED = "submitted"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# Persisted history uses "completed" where callers see "succeeded".
PERSISTED_STATUS = {
    CanonicalStatus.SUBMITTED: "submitted",
    CanonicalStatus.SUCCEEDED: "completed",
    CanonicalStatus.FAILED: "failed",
}


@dataclass
class UpstreamResponse:
    """Decoded JSON body of one call attempt against the generation API.

    Attributes:
        code: Integer status signal from the body (not the HTTP status).
        msg: Human-readable message from the body.
        data: Endpoint-specific payload.
        http_status: HTTP status of the response that produced this body.
        raw: The full decoded body.
    """
    code: int | None
    msg: str = ""
    data: Any = None
    http_status: int = 200
    raw: dict = field(default_factory=dict)

    @classmethod
    def from_body(cls, body: dict, http_status: int = 200) -> UpstreamResponse:
        code = body.get("code")
        try:
            code = int(code) if code is not None else None
        except (TypeError, ValueError):
            code = None
        return cls(
            code=code,
            msg=str(body.get("msg") or body.get("message") or ""),
            data=body.get("data"),
            http_status=http_status,
            raw=body,
        )

    @property
    def ok(self) -> bool:
        return self.code == 200


@dataclass
class Clip:
    """One generated audio artifact.

    Attributes:
        id: Upstream clip identifier.
        audio_url: Playable audio URL; clips without one are never emitted.
        image_url: Cover image URL, if any.
        video_url: Companion video URL, if any.
        duration: Length in seconds, if reported.
        title: Clip title, falling back to the task title.
        index: 1-based position among the task's clips.
    """
    id: str
    audio_url: str
    image_url: str | None = None
    video_url: str | None = None
    duration: float | None = None
    title: str | None = None
    index: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.audio_url,
            "image_url": self.image_url,
            "video_url": self.video_url,
            "duration": self.duration,
            "title": self.title,
            "index": self.index,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Clip:
        return cls(
            id=data.get("id", ""),
            audio_url=data.get("url") or data.get("audio_url", ""),
            image_url=data.get("image_url"),
            video_url=data.get("video_url") or data.get("video"),
            duration=data.get("duration"),
            title=data.get("title"),
            index=data.get("index", 1),
        )


@dataclass
class CheckResult:
    """Caller-facing outcome of a status check."""
    state: CanonicalStatus
    task_id: str
    clips: list[Clip] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"state": self.state.value, "task_id": self.task_id}
        if self.clips:
            out["clips"] = [c.to_dict() for c in self.clips]
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass
class Reconciliation:
    """Result of reconciling one upstream task descriptor.

    ``patch`` is ``None`` when history must not change (task still running).
    """
    result: CheckResult
    patch: dict[str, Any] | None = None


@dataclass
class GenerationJob:
    """A music generation request as accepted from the caller.

    Attributes:
        mode: "custom" for custom mode, anything else for description mode.
        task_type: Generation mode; "cover_music" uploads a reference track.
        title: Song title (custom mode).
        tags: Style tags (custom mode).
        prompt: Lyrics in custom mode, description otherwise.
        ref_url: Reference audio URL, required for cover jobs.
        options: Extra knobs (model, instrumental, vocal_gender, style_influence,
            weirdness, negative_tags, audio_weight, persona_id).
    """
    prompt: str = ""
    mode: str = "simple"
    task_type: str = "generate_music"
    title: str = ""
    tags: str = ""
    ref_url: str | None = None
    options: dict[str, Any] = field(default_factory=dict)

    @property
    def is_cover(self) -> bool:
        return self.task_type == "cover_music"

    @property
    def is_custom(self) -> bool:
        return self.mode == "custom"


@dataclass
class Submission:
    """Outcome of submitting a generation job upstream."""
    task_id: str | None
    code: int | None
    msg: str = ""

    @property
    def accepted(self) -> bool:
        return self.task_id is not None


@dataclass
class TaskRecord:
    """A persisted entry in a user's generation history.

    ``status`` is "submitted", "completed" or "failed"; "completed" holds
    exactly when ``clips`` is non-empty.
    """
    task_id: str
    title: str = ""
    tags: str = ""
    prompt: str = ""
    type: str = ""
    status: str = "submitted"
    created_at: str = ""
    ref_url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    clips: list[Clip] = field(default_factory=list)
    error_msg: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "title": self.title,
            "tags": self.tags,
            "prompt": self.prompt,
            "type": self.type,
            "status": self.status,
            "created_at": self.created_at,
            "ref_url": self.ref_url,
            "metadata": dict(self.metadata),
            "clips": [c.to_dict() for c in self.clips],
            "error_msg": self.error_msg,
        }

    @classmethod
    def from_dict(cls, data: dict) -> TaskRecord:
        return cls(
            task_id=data["task_id"],
            title=data.get("title") or "",
            tags=data.get("tags") or "",
            prompt=data.get("prompt") or "",
            type=data.get("type") or "",
            status=data.get("status") or "submitted",
            created_at=data.get("created_at") or "",
            ref_url=data.get("ref_url"),
            metadata=data.get("metadata") or {},
            clips=[Clip.from_dict(c) for c in data.get("clips") or [] if isinstance(c, dict)],
            error_msg=data.get("error_msg"),
        )

    @property
    def needs_refresh(self) -> bool:
        """Whether a bulk refresh should re-check this record upstream."""
        if self.status in ("submitted", "failed"):
            return True
        return self.status == "completed" and not self.clips
