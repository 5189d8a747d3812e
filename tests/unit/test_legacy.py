"""Unit tests for the legacy ``docker build`` transcript translator."""

from __future__ import annotations

import json

import pytest

from clawker.engine.legacy import LegacyBuilder, LegacyStreamTranslator, step_id_for
from clawker.errors import BuildError
from clawker.models.events import LogLineEvent, StatusEvent
from clawker.models.options import BuildOptions
from clawker.models.steps import StepStatus

TRANSCRIPT = """\
Sending build context to Docker daemon  4.096kB
Step 1/3 : FROM alpine:3.19
 ---> 05455a08881e
Step 2/3 : RUN apk add --no-cache git
 ---> Running in 3f2a1c9d
fetch https://dl-cdn.alpinelinux.org/alpine/v3.19/main/x86_64/APKINDEX.tar.gz
OK: 12 MiB in 20 packages
Removing intermediate container 3f2a1c9d
 ---> 9b1d2e3f
Step 3/3 : COPY . /app
 ---> Using cache
 ---> 77aa11bb
Successfully built 77aa11bb
Successfully tagged app:latest
"""


@pytest.fixture
def events() -> list:
    return []


@pytest.fixture
def translator(events) -> LegacyStreamTranslator:
    return LegacyStreamTranslator(events.append)


def _feed(translator: LegacyStreamTranslator, text: str) -> None:
    for line in text.splitlines(keepends=True):
        translator.feed_line(line)


class TestStepIds:
    def test_zero_based(self):
        assert step_id_for(1) == "step-0"
        assert step_id_for(12) == "step-11"


class TestLegacyStreamTranslator:
    def test_full_transcript(self, translator, events):
        _feed(translator, TRANSCRIPT)
        translator.finish()

        summary = [
            (e.step_id, e.status if isinstance(e, StatusEvent) else e.log_line) for e in events
        ]
        assert summary == [
            ("step-0", StepStatus.RUNNING),
            ("step-0", StepStatus.COMPLETE),
            ("step-1", StepStatus.RUNNING),
            ("step-1", "fetch https://dl-cdn.alpinelinux.org/alpine/v3.19/main/x86_64/APKINDEX.tar.gz"),
            ("step-1", "OK: 12 MiB in 20 packages"),
            ("step-1", StepStatus.COMPLETE),
            ("step-2", StepStatus.RUNNING),
            ("step-2", StepStatus.CACHED),
        ]
        assert events[0].step_name == "FROM alpine:3.19"
        assert translator.total_steps == 3

    def test_cached_only_once(self, translator, events):
        _feed(translator, "Step 1/1 : FROM alpine\n ---> Using cache\n ---> Using cache\n")
        translator.finish()
        statuses = [e.status for e in events if isinstance(e, StatusEvent)]
        assert statuses == [StepStatus.RUNNING, StepStatus.CACHED]

    def test_failed_run_marks_step_error(self, translator, events):
        _feed(
            translator,
            "Step 1/2 : FROM alpine\n"
            "Step 2/2 : RUN exit 3\n"
            "The command '/bin/sh -c exit 3' returned a non-zero code: 3\n",
        )
        last = events[-1]
        assert isinstance(last, StatusEvent)
        assert last.step_id == "step-1"
        assert last.status == StepStatus.ERROR
        assert "non-zero code: 3" in translator.first_error

    def test_json_stream_messages(self, translator, events):
        translator.feed_line(json.dumps({"stream": "Step 1/1 : FROM alpine\n"}))
        translator.feed_line(json.dumps({"stream": "hello\n"}))
        translator.feed_line(json.dumps({"errorDetail": {"message": "pull access denied"}}))

        assert isinstance(events[1], LogLineEvent)
        assert events[1].log_line == "hello"
        assert events[-1].status == StepStatus.ERROR
        assert translator.first_error == "pull access denied"

    def test_output_before_first_step_ignored(self, translator, events):
        _feed(translator, "DEPRECATED: The legacy builder is deprecated\nsomething odd\n")
        assert events == []
        assert translator.current_step is None

    def test_finish_is_idempotent(self, translator, events):
        _feed(translator, "Step 1/1 : FROM alpine\n")
        translator.finish()
        translator.finish()
        assert [e.status for e in events] == [StepStatus.RUNNING, StepStatus.COMPLETE]


class TestLegacyBuilder:
    def test_build_command(self):
        argv = LegacyBuilder("podman").build_command("app:latest", BuildOptions(pull=True))
        assert argv == ["podman", "build", "--pull", "-t", "app:latest", "."]

    def test_runs_with_buildkit_disabled(self, monkeypatch, events):
        seen: dict = {}

        def fake_run(command, on_line, **kwargs):
            seen.update(kwargs)
            on_line("Step 1/1 : FROM alpine\n")
            return 0

        monkeypatch.setattr("clawker.engine.legacy.run_streaming", fake_run)
        LegacyBuilder().build("app", BuildOptions(on_progress=events.append))

        assert seen["env"] == {"DOCKER_BUILDKIT": "0"}
        assert seen["stream"] == "stdout"
        assert events[-1].status == StepStatus.COMPLETE

    def test_nonzero_exit_raises(self, monkeypatch, events):
        def fake_run(command, on_line, **kwargs):
            on_line("Step 1/1 : RUN false\n")
            return 1

        monkeypatch.setattr("clawker.engine.legacy.run_streaming", fake_run)
        with pytest.raises(BuildError, match="exited with status 1"):
            LegacyBuilder().build("app", BuildOptions(on_progress=events.append))
        assert events[-1].status == StepStatus.ERROR
