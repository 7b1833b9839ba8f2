# tests/session/test_instance.py
"""
Tests for the Instance and SandboxInfo models.
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from aoe.session.instance import Instance, SandboxInfo, SandboxState


def make_instance(**kwargs) -> Instance:
    kwargs.setdefault("title", "fix flaky test")
    kwargs.setdefault("project_path", "/home/me/proj")
    return Instance(**kwargs)


class TestIsSandboxed:

    def test_no_record(self):
        assert make_instance().is_sandboxed() is False

    def test_disabled_record(self):
        info = SandboxInfo(enabled=False, container_name="aoe-sandbox-abcd1234")
        assert make_instance(sandbox_info=info).is_sandboxed() is False

    def test_enabled_without_container(self):
        """Intent alone counts, even before any container exists."""
        info = SandboxInfo(enabled=True, container_name="aoe-sandbox-abcd1234")
        assert make_instance(sandbox_info=info).is_sandboxed() is True

    def test_enabled_with_container(self):
        info = SandboxInfo(enabled=True, container_name="aoe-sandbox-abcd1234", container_id="f" * 64)
        assert make_instance(sandbox_info=info).is_sandboxed() is True


class TestSandboxInfo:

    def test_requested(self):
        info = SandboxInfo.requested("abcdefghijklmnop", image="aoe-sandbox:latest", yolo_mode=True)
        assert info.enabled is True
        assert info.container_name == "aoe-sandbox-abcdefgh"
        assert info.container_id is None
        assert info.created_at is None
        assert info.image == "aoe-sandbox:latest"
        assert info.yolo_mode is True

    def test_state(self):
        info = SandboxInfo.requested("abcd1234")
        assert info.state == SandboxState.PENDING

        info.mark_created("c" * 64, "aoe-sandbox:latest")
        assert info.state == SandboxState.ACTIVE
        assert info.created_at is not None
        assert info.created_at.tzinfo is not None

        info.mark_absent()
        assert info.state == SandboxState.PENDING
        assert info.container_id is None
        assert info.created_at is None
        assert info.image == "aoe-sandbox:latest"

        info.enabled = False
        assert info.state == SandboxState.DISABLED

    def test_mark_created_explicit_time(self):
        when = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
        info = SandboxInfo.requested("abcd1234")
        info.mark_created("c" * 64, "alpine:latest", created_at=when)
        assert info.created_at == when

    def test_naive_timestamp_assumed_utc(self):
        info = SandboxInfo(enabled=True, container_name="n", created_at=datetime(2026, 1, 1, 8, 30))
        assert info.created_at == datetime(2026, 1, 1, 8, 30, tzinfo=timezone.utc)

    def test_offset_timestamp_normalized(self):
        info = SandboxInfo(enabled=True, container_name="n", created_at="2026-01-01T10:30:00+02:00")
        assert info.created_at == datetime(2026, 1, 1, 8, 30, tzinfo=timezone.utc)
        assert info.created_at.utcoffset() == timedelta(0)

    def test_z_suffix(self):
        info = SandboxInfo(enabled=True, container_name="n", created_at="2026-01-01T08:30:00Z")
        assert info.created_at == datetime(2026, 1, 1, 8, 30, tzinfo=timezone.utc)

    def test_invalid_timestamp(self):
        with pytest.raises(ValidationError):
            SandboxInfo(enabled=True, container_name="n", created_at="yesterday")

    def test_container_name_required(self):
        with pytest.raises(ValidationError):
            SandboxInfo(enabled=True)


class TestSerialization:
    """JSON round trips through pydantic."""

    def test_full_record_round_trip(self):
        info = SandboxInfo(
            enabled=True,
            container_id="a1b2c3" * 10,
            image="aoe-sandbox:latest",
            container_name="aoe-sandbox-abcd1234",
            created_at=datetime(2026, 10, 19, 9, 15, 42, 123456, tzinfo=timezone.utc),
            yolo_mode=False,
        )
        restored = SandboxInfo.model_validate_json(info.model_dump_json())
        assert restored == info
        assert restored.created_at.microsecond == 123456

    def test_absent_fields_round_trip(self):
        info = SandboxInfo(enabled=True, container_name="aoe-sandbox-abcd1234")
        data = info.model_dump(mode="json", exclude_none=True)
        assert data == {"enabled": True, "container_name": "aoe-sandbox-abcd1234"}

        restored = SandboxInfo.model_validate(data)
        assert restored.container_id is None
        assert restored.image is None
        assert restored.created_at is None
        assert restored.yolo_mode is None

    def test_yolo_false_kept_distinct_from_absent(self):
        info = SandboxInfo(enabled=True, container_name="n", yolo_mode=False)
        restored = SandboxInfo.model_validate(info.model_dump(mode="json", exclude_none=True))
        assert restored.yolo_mode is False

    def test_instance_round_trip(self):
        instance = make_instance(
            id="abcd1234ef567890",
            tool="codex",
            sandbox_info=SandboxInfo.requested("abcd1234ef567890", image="aoe-sandbox:latest"),
        )
        restored = Instance.model_validate_json(instance.model_dump_json(exclude_none=True))
        assert restored == instance
        assert restored.is_sandboxed()

    def test_unsandboxed_instance_round_trip(self):
        instance = make_instance()
        data = instance.model_dump(mode="json", exclude_none=True)
        assert "sandbox_info" not in data
        assert Instance.model_validate(data).sandbox_info is None


class TestInstance:

    def test_generated_id(self):
        a, b = make_instance(), make_instance()
        assert len(a.id) == 16
        assert a.id != b.id

    def test_empty_id_rejected(self):
        with pytest.raises(ValidationError):
            make_instance(id="")

    def test_defaults(self):
        instance = make_instance()
        assert instance.tool == "claude"
        assert instance.sandbox_info is None
        assert instance.created_at.tzinfo is not None
