"""Tests for suno_relay.reconciler."""
from __future__ import annotations

import json

import pytest

from suno_relay.models import CanonicalStatus
from suno_relay.reconciler import (
    EMPTY_SUCCESS_ERROR,
    TaskReconciler,
    decode_if_string,
    extract_metadata,
    find_raw_clips,
    map_status,
    normalize_clips,
)


@pytest.fixture
def reconciler() -> TaskReconciler:
    return TaskReconciler()


class TestMapStatus:
    @pytest.mark.parametrize("raw", ["SUCCESS", "completed", " first_success "])
    def test_success_family(self, raw):
        assert map_status(raw) is CanonicalStatus.SUCCEEDED

    @pytest.mark.parametrize("raw", ["FAILED", "generate_audio_failed", "CREATE_TASK_FAILED", "SENSITIVE_WORD_ERROR"])
    def test_failed_family(self, raw):
        assert map_status(raw) is CanonicalStatus.FAILED

    @pytest.mark.parametrize("raw", ["PENDING", "TEXT_SUCCESS", "", None])
    def test_everything_else_is_submitted(self, raw):
        assert map_status(raw) is CanonicalStatus.SUBMITTED


class TestDecodeIfString:
    def test_json_string_decoded(self):
        assert decode_if_string('{"a": 1}') == {"a": 1}

    def test_invalid_json_returned_unchanged(self):
        assert decode_if_string("not json") == "not json"

    def test_non_string_passthrough(self):
        payload = {"a": 1}
        assert decode_if_string(payload) is payload


class TestFindRawClips:
    def test_direct_suno_data(self):
        assert find_raw_clips({"sunoData": [{"id": "a"}]}) == [{"id": "a"}]

    def test_nested_in_response_object(self):
        task = {"response": {"sunoData": [{"id": "b"}]}}
        assert find_raw_clips(task) == [{"id": "b"}]

    def test_nested_in_response_json_string(self):
        task = {"response": json.dumps({"sunoData": [{"id": "c"}]})}
        assert find_raw_clips(task) == [{"id": "c"}]

    def test_response_is_the_list(self):
        assert find_raw_clips({"response": json.dumps([{"id": "d"}])}) == [{"id": "d"}]

    def test_generic_clips_field(self):
        assert find_raw_clips({"clips": [{"id": "e"}]}) == [{"id": "e"}]

    def test_empty_source_falls_through_to_next(self):
        task = {"sunoData": [], "response": {"sunoData": [{"id": "f"}]}}
        assert find_raw_clips(task) == [{"id": "f"}]

    def test_priority_order(self):
        task = {"sunoData": [{"id": "first"}], "clips": [{"id": "last"}]}
        assert find_raw_clips(task) == [{"id": "first"}]

    def test_nothing_found(self):
        assert find_raw_clips({"response": "garbage"}) == []


class TestNormalizeClips:
    def test_field_synonyms(self):
        clips = normalize_clips([
            {"audioId": "a1", "audio_url": "https://x/1.mp3", "image": "https://x/1.jpg",
             "video_url": "https://x/1.mp4", "duration": 120.5},
        ], task_title="Task title")
        assert len(clips) == 1
        clip = clips[0]
        assert clip.id == "a1"
        assert clip.audio_url == "https://x/1.mp3"
        assert clip.image_url == "https://x/1.jpg"
        assert clip.video_url == "https://x/1.mp4"
        assert clip.duration == 120.5
        assert clip.title == "Task title"
        assert clip.index == 1

    def test_clips_without_audio_are_dropped(self):
        clips = normalize_clips([
            {"id": "no-audio", "imageUrl": "https://x/0.jpg"},
            {"id": "ok", "audio": "https://x/2.mp3", "title": "Own title"},
            "not a dict",
        ])
        assert [c.id for c in clips] == ["ok"]
        assert clips[0].index == 1
        assert clips[0].title == "Own title"

    def test_missing_id_gets_positional_fallback(self):
        clips = normalize_clips([{"audioUrl": "https://x/a.mp3"}, {"audioUrl": "https://x/b.mp3"}])
        assert [c.id for c in clips] == ["clip_0", "clip_1"]
        assert [c.index for c in clips] == [1, 2]


class TestExtractMetadata:
    def test_param_as_json_string(self):
        task = {"param": json.dumps({
            "model": "V5", "vocalGender": "f", "styleWeight": 0.6,
            "weirdnessConstraint": 0.2, "audioWeight": 0.5, "personaId": "p1",
            "negativeTags": "metal", "instrumental": False,
        })}
        assert extract_metadata(task) == {
            "model": "V5",
            "gender": "female",
            "style": 0.6,
            "weirdness": 0.2,
            "audio_weight": 0.5,
            "persona_id": "p1",
            "negative_tags": "metal",
            "instrumental": False,
        }

    def test_gender_codes(self):
        assert extract_metadata({"param": {"vocalGender": "m"}})["gender"] == "male"
        assert extract_metadata({"param": {"vocalGender": "x"}})["gender"] == "x"
        assert extract_metadata({"param": {}})["gender"] is None

    def test_missing_or_unparseable_param(self):
        assert extract_metadata({}) == {}
        assert extract_metadata({"param": "{broken"}) == {}


class TestReconcile:
    def test_success_with_clips(self, reconciler):
        task = {"status": "SUCCESS", "sunoData": [{"audioUrl": "https://x/a.mp3", "id": "c1"}]}
        rec = reconciler.reconcile("t1", task)

        assert rec.result.state is CanonicalStatus.SUCCEEDED
        out = rec.result.to_dict()
        assert out["state"] == "succeeded"
        assert out["clips"][0]["id"] == "c1"
        assert out["clips"][0]["url"] == "https://x/a.mp3"
        assert out["clips"][0]["index"] == 1
        assert rec.patch["status"] == "completed"
        assert rec.patch["clips"][0]["url"] == "https://x/a.mp3"
        assert rec.patch["error_msg"] is None

    @pytest.mark.parametrize("status", ["PENDING", "FAILED", None])
    def test_clips_override_raw_status(self, reconciler, status):
        task = {"status": status, "clips": [{"audio_url": "https://x/a.mp3"}]}
        rec = reconciler.reconcile("t1", task)
        assert rec.result.state is CanonicalStatus.SUCCEEDED
        assert rec.patch["status"] == "completed"

    @pytest.mark.parametrize("task", [
        {"status": "SUCCESS", "sunoData": []},
        {"status": "FIRST_SUCCESS", "response": "not json"},
        {"status": "completed", "sunoData": [{"id": "x", "imageUrl": "https://x/i.jpg"}]},
    ])
    def test_success_without_audio_is_failure(self, reconciler, task):
        rec = reconciler.reconcile("t1", task)
        assert rec.result.to_dict() == {"state": "failed", "task_id": "t1", "error": EMPTY_SUCCESS_ERROR}
        assert rec.patch == {"status": "failed", "clips": [], "error_msg": EMPTY_SUCCESS_ERROR}

    def test_upstream_failure_reason_carried(self, reconciler):
        rec = reconciler.reconcile("t1", {"status": "SENSITIVE_WORD_ERROR", "failReason": "blocked word"})
        assert rec.result.state is CanonicalStatus.FAILED
        assert rec.result.error == "blocked word"
        assert rec.patch["error_msg"] == "blocked word"

    def test_upstream_failure_without_reason(self, reconciler):
        rec = reconciler.reconcile("t1", {"status": "FAILED"})
        assert rec.result.error == "Unknown error"

    def test_in_progress_has_no_patch(self, reconciler):
        rec = reconciler.reconcile("t1", {"status": "TEXT_SUCCESS", "sunoData": []})
        assert rec.result.state is CanonicalStatus.SUBMITTED
        assert rec.patch is None
        assert rec.result.to_dict() == {"state": "submitted", "task_id": "t1"}

    def test_title_and_metadata_in_patch(self, reconciler):
        task = {
            "status": "SUCCESS",
            "title": "Task title",
            "param": {"model": "V4_5", "vocalGender": "m"},
            "response": {"sunoData": [{"id": "c1", "audioUrl": "https://x/a.mp3", "title": "Clip title"}]},
        }
        rec = reconciler.reconcile("t1", task)
        assert rec.patch["title"] == "Clip title"
        assert rec.patch["metadata"]["model"] == "V4_5"
        assert rec.patch["metadata"]["gender"] == "male"

    def test_reconcile_is_idempotent(self, reconciler):
        task = {"status": "SUCCESS", "param": '{"model": "V5"}',
                "sunoData": [{"id": "c1", "audioUrl": "https://x/a.mp3", "duration": 90}]}
        first = reconciler.reconcile("t1", task)
        second = reconciler.reconcile("t1", task)
        assert first.patch == second.patch
        assert first.result == second.result
