"""Unit tests for ProcessRunner using real Python subprocesses."""

import sys
import threading
import time
from pathlib import Path

import pytest

from acquisition.pipeline.broadcaster import OutputBroadcaster
from acquisition.pipeline.models import OutputKind
from acquisition.pipeline.process import SPAWN_FAILURE_EXIT_CODE, ProcessRunner


@pytest.fixture
def broadcaster():
    return OutputBroadcaster()


@pytest.fixture
def events(broadcaster):
    received = []
    broadcaster.subscribe(received.append)
    return received


@pytest.fixture
def runner(broadcaster):
    return ProcessRunner(broadcaster)


def python(code: str):
    """Command and args running a snippet in the current interpreter."""
    return sys.executable, ["-c", code]


class TestProcessRunner:
    """Test suite for ProcessRunner.run()."""

    def test_captures_stdout_lines(self, runner, events):
        """Test each stdout line is published and collected."""
        command, args = python("print('one'); print('two'); print('three')")

        result = runner.run(command, args)

        assert result.exit_code == 0
        assert result.succeeded
        assert result.output == "one\ntwo\nthree\n"
        assert [(e.kind, e.text) for e in events] == [
            (OutputKind.STDOUT, "one\n"),
            (OutputKind.STDOUT, "two\n"),
            (OutputKind.STDOUT, "three\n"),
        ]

    def test_stderr_prefixed_in_output_not_in_events(self, runner, events):
        """Test [ERROR] prefix applies only to the combined output."""
        command, args = python("import sys; sys.stderr.write('bad thing\\n')")

        result = runner.run(command, args)

        assert result.output == "[ERROR] bad thing\n"
        assert [(e.kind, e.text) for e in events] == [(OutputKind.STDERR, "bad thing\n")]

    def test_mixed_streams_all_collected(self, runner):
        command, args = python(
            "import sys; print('out', flush=True); sys.stderr.write('err\\n'); sys.stderr.flush(); print('more')"
        )

        result = runner.run(command, args)

        assert "out\n" in result.output
        assert "more\n" in result.output
        assert "[ERROR] err\n" in result.output

    def test_exit_code_propagated(self, runner):
        command, args = python("import sys; print('partial'); sys.exit(3)")

        result = runner.run(command, args)

        assert result.exit_code == 3
        assert not result.succeeded
        assert result.output == "partial\n"

    def test_final_line_without_newline(self, runner, events):
        command, args = python("import sys; sys.stdout.write('no newline')")

        result = runner.run(command, args)

        assert result.output == "no newline"
        assert events[-1].text == "no newline"

    def test_working_directory(self, runner, tmp_path):
        command, args = python("import os; print(os.getcwd())")

        result = runner.run(command, args, working_directory=tmp_path)

        assert Path(result.output.strip()).resolve() == tmp_path.resolve()

    def test_env_overrides_and_inheritance(self, runner, monkeypatch):
        """Test stage env is layered over the caller's environment."""
        monkeypatch.setenv("ACQ_INHERITED", "from-parent")
        command, args = python(
            "import os; print(os.environ['ACQ_INHERITED']); print(os.environ['ACQ_STAGE'])"
        )

        result = runner.run(command, args, env={"ACQ_STAGE": "from-stage"})

        assert result.output == "from-parent\nfrom-stage\n"

    def test_missing_command_reports_process_error(self, runner, events):
        """Test spawn failure: exit 1, synthetic stderr line, no exception."""
        result = runner.run("definitely-not-a-real-command-xyz", ["--flag"])

        assert result.exit_code == SPAWN_FAILURE_EXIT_CODE
        assert result.output.startswith("[ERROR] Process error: ")
        assert len(events) == 1
        assert events[0].kind is OutputKind.STDERR
        assert events[0].text.startswith("Process error: ")

    def test_missing_working_directory_reports_process_error(self, runner, tmp_path):
        command, args = python("print('unreachable')")

        result = runner.run(command, args, working_directory=tmp_path / "missing")

        assert result.exit_code == 1
        assert "Process error:" in result.output
        assert "unreachable" not in result.output

    def test_runs_without_broadcaster(self):
        command, args = python("print('quiet')")

        result = ProcessRunner().run(command, args)

        assert result.output == "quiet\n"

    def test_many_lines_not_lost(self, runner, events):
        command, args = python("for i in range(2000): print(i)")

        result = runner.run(command, args)

        assert len(result.output.splitlines()) == 2000
        assert len(events) == 2000

    def test_interleaved_streams_delivered_one_at_a_time(self, broadcaster, runner):
        """Test that stdout and stderr readers never run a subscriber concurrently."""
        lock = threading.Lock()
        active = [0]
        peak = [0]
        received = []

        def slow_subscriber(event):
            with lock:
                active[0] += 1
                peak[0] = max(peak[0], active[0])
            time.sleep(0.001)
            received.append(event)
            with lock:
                active[0] -= 1

        broadcaster.subscribe(slow_subscriber)
        command, args = python(
            "import sys\n"
            "for i in range(30):\n"
            "    print(f'out {i}', flush=True)\n"
            "    print(f'err {i}', file=sys.stderr, flush=True)\n"
        )

        result = runner.run(command, args)

        assert peak[0] == 1
        assert len(received) == 60
        expected = "".join(
            e.text if e.kind is OutputKind.STDOUT else f"[ERROR] {e.text}" for e in received
        )
        assert result.output == expected
