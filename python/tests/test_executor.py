"""Command executor tests against real child processes"""

from __future__ import annotations

import asyncio
import sys
import time

import pytest

from pydep_pilot.cancellation import CancellationToken
from pydep_pilot.errors import NonZeroExit, OperationCancelled, SpawnFailed
from pydep_pilot.packages.manager import parse_listing
from pydep_pilot.stdio.diagnostics import DiagnosticLog
from pydep_pilot.stdio.executor import CommandExecutor


def _run(coro):
    return asyncio.run(coro)


class TestExecute:
    def test_success_returns_stdout(self) -> None:
        executor = CommandExecutor()
        out = _run(executor.execute(sys.executable, ["-c", "print('hello')"]))
        assert out.strip() == "hello"

    def test_nonzero_exit_carries_stderr(self) -> None:
        executor = CommandExecutor()
        script = "import sys; sys.stderr.write('ERROR: boom\\n'); sys.exit(3)"
        with pytest.raises(NonZeroExit) as info:
            _run(executor.execute(sys.executable, ["-c", script]))
        assert info.value.code == 3
        assert "ERROR: boom" in str(info.value)

    def test_nonzero_exit_without_stderr(self) -> None:
        executor = CommandExecutor()
        with pytest.raises(NonZeroExit, match="Command failed"):
            _run(executor.execute(sys.executable, ["-c", "import sys; sys.exit(1)"]))

    def test_warning_lines_not_accumulated(self) -> None:
        executor = CommandExecutor()
        script = (
            "import sys\n"
            "sys.stderr.write('WARNING: pip is old\\n')\n"
            "sys.stderr.write('real problem\\n')\n"
            "sys.exit(1)\n"
        )
        with pytest.raises(NonZeroExit) as info:
            _run(executor.execute(sys.executable, ["-c", script]))
        assert "WARNING" not in info.value.stderr
        assert "real problem" in info.value.stderr
        messages = [entry["message"] for entry in executor.diagnostics.get_lines()]
        assert "WARNING: pip is old" in messages

    def test_single_line_beyond_stream_limit(self) -> None:
        executor = CommandExecutor()
        script = "import sys; sys.stdout.write('x' * 150000); sys.stdout.write('\\nend\\n')"
        out = _run(executor.execute(sys.executable, ["-c", script]))
        first, second = out.splitlines()
        assert len(first) == 150000
        assert second == "end"

    def test_large_json_listing_parses(self) -> None:
        executor = CommandExecutor()
        script = (
            "import json\n"
            "print(json.dumps([{'name': f'package-{i:04d}', 'version': '1.0.0'} for i in range(3000)]))\n"
        )
        out = _run(executor.execute(sys.executable, ["-c", script]))
        listing = parse_listing(out)
        assert len(listing) == 3000
        assert listing[-1]["name"] == "package-2999"

    def test_missing_executable(self, tmp_path) -> None:
        executor = CommandExecutor()
        with pytest.raises(SpawnFailed):
            _run(executor.execute(str(tmp_path / "no-such-python"), ["-m", "pip"]))

    def test_invocation_mirrored_to_diagnostics(self) -> None:
        diagnostics = DiagnosticLog()
        executor = CommandExecutor(diagnostics)
        _run(executor.execute(sys.executable, ["-c", "print('line one')"]))
        text = diagnostics.text()
        assert f"exec {sys.executable} -c" in text
        assert "line one" in text


class TestCancellation:
    def test_cancel_kills_process(self) -> None:
        async def scenario():
            executor = CommandExecutor()
            token = CancellationToken()
            task = asyncio.ensure_future(
                executor.execute(sys.executable, ["-c", "import time; time.sleep(30)"], token)
            )
            await asyncio.sleep(0.5)
            started = time.monotonic()
            token.cancel()
            with pytest.raises(OperationCancelled):
                await asyncio.wait_for(task, timeout=10)
            return time.monotonic() - started

        assert _run(scenario()) < 10

    def test_cancelled_token_never_starts_process(self) -> None:
        executor = CommandExecutor()
        token = CancellationToken()
        token.cancel()
        with pytest.raises(OperationCancelled):
            _run(executor.execute(sys.executable, ["-c", "print('x')"], token))
