from __future__ import annotations

import io
from pathlib import Path
from typing import List

from conftest import skip_unless_posix
from hytale_runner.process.relay import ConsoleStreams, IoRelay, forward_input, pump_lines
from hytale_runner.process.supervisor import ProcessSupervisor
from hytale_runner.workspace.stager import WorkspaceStager


class _RecordingSink(io.StringIO):
    """记录 flush 次数与 close 状态的 sink。"""

    def __init__(self) -> None:
        super().__init__()
        self.flushes = 0
        self.was_closed = False
        self.snapshot = ""

    def flush(self) -> None:
        self.flushes += 1
        super().flush()

    def close(self) -> None:
        self.snapshot = self.getvalue()
        self.was_closed = True
        super().close()


class _ExplodingSource:
    def readline(self) -> str:
        raise OSError("pipe broken")


def test_pump_lines_copies_every_line_and_flushes() -> None:
    sink = _RecordingSink()

    count = pump_lines(io.StringIO("one\ntwo\nthree"), sink)

    assert count == 3
    assert sink.getvalue() == "one\ntwo\nthree"
    assert sink.flushes == 3


def test_pump_stops_silently_on_io_error() -> None:
    sink = _RecordingSink()
    assert pump_lines(_ExplodingSource(), sink, name="stdout") == 0  # type: ignore[arg-type]
    assert pump_lines(None, sink) == 0
    assert sink.getvalue() == ""


def test_forward_input_reterminates_and_flushes_each_line() -> None:
    sink = _RecordingSink()

    count = forward_input(io.StringIO("stop\r\nsay hi\nlast"), sink)

    assert count == 3
    assert sink.snapshot == "stop\nsay hi\nlast\n"
    assert sink.flushes >= 3
    assert sink.was_closed is True


def test_forward_input_write_error_does_not_raise() -> None:
    class _ClosedSink(io.StringIO):
        def write(self, s: str) -> int:
            raise BrokenPipeError("child gone")

    assert forward_input(io.StringIO("a\nb\n"), _ClosedSink()) == 0


def test_relay_runs_three_pumps_against_real_process(tmp_path: Path, make_config, fake_java) -> None:
    """
    三路转发端到端：
    - console stdin 的每一行都能到达子进程；
    - 子进程 stdout/stderr 分别回到 console stdout/stderr。
    """

    skip_unless_posix()
    java = fake_java(
        """
while IFS= read -r line; do
  echo "got:$line"
done
echo "stdin closed" >&2
"""
    )
    cfg = make_config({"launch": {"java_executable": str(java)}})
    src = tmp_path / "s.jar"
    src.write_bytes(b"s")
    ws = WorkspaceStager(cfg).stage(src)

    console = ConsoleStreams(stdin=io.StringIO("help\nstop\n"), stdout=io.StringIO(), stderr=io.StringIO())
    proc = ProcessSupervisor(cfg).launch(ws)
    relay = IoRelay(proc, console)
    relay.start()

    assert [t.name for t in relay.threads] == ["relay-stdout", "relay-stderr", "relay-stdin"]
    assert all(t.daemon for t in relay.threads)

    assert proc.wait(timeout=10) == 0
    relay.join(timeout=5)

    lines: List[str] = console.stdout.getvalue().splitlines()  # type: ignore[attr-defined]
    assert lines == ["got:help", "got:stop"]
    assert console.stderr.getvalue() == "stdin closed\n"  # type: ignore[attr-defined]


class _BrokenConsole(io.StringIO):
    def write(self, s: str) -> int:
        raise OSError("console gone")


def test_broken_console_stdout_leaves_other_pumps_running(tmp_path: Path, make_config, fake_java) -> None:
    skip_unless_posix()
    java = fake_java(
        """
echo "to-stdout"
IFS= read -r line
echo "stderr:$line" >&2
"""
    )
    cfg = make_config({"launch": {"java_executable": str(java)}})
    src = tmp_path / "s.jar"
    src.write_bytes(b"s")
    ws = WorkspaceStager(cfg).stage(src)

    console = ConsoleStreams(stdin=io.StringIO("hello\n"), stdout=_BrokenConsole(), stderr=io.StringIO())
    proc = ProcessSupervisor(cfg).launch(ws)
    relay = IoRelay(proc, console)
    relay.start()

    assert proc.wait(timeout=10) == 0
    relay.join(timeout=5)

    stdout_pump = relay.threads[0]
    assert stdout_pump.name == "relay-stdout"
    assert not stdout_pump.is_alive()
    assert console.stderr.getvalue() == "stderr:hello\n"  # type: ignore[attr-defined]
