"""Tests for image and build models."""

from burrow.models.image import BuildEvent, ImageBuildResult


class TestBuildEvent:
    """Test BuildEvent constructors."""

    def test_log_event(self):
        event = BuildEvent.log("Step 1/3 : FROM alpine")
        assert event.type == "log"
        assert event.line == "Step 1/3 : FROM alpine"
        assert not event.terminal

    def test_terminal_events(self):
        assert BuildEvent.succeeded("burrow-dev1:latest").terminal
        assert BuildEvent.failed("boom").terminal

    def test_dump_skips_unset_fields(self):
        assert BuildEvent.succeeded("t:1").model_dump(exclude_none=True) == {"type": "success", "tag": "t:1"}


class TestImageBuildResult:
    """Test ImageBuildResult."""

    def test_success(self):
        assert ImageBuildResult(tag="t:1").success

    def test_failure(self):
        assert not ImageBuildResult(error="boom").success
        assert not ImageBuildResult().success
