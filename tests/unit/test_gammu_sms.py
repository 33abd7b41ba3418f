"""
Unit tests for hydro.channels.gammu_sms.

These tests validate:
- mobile number normalization
- the gammu command line and stdin message
- exit code / timeout / spawn failure mapping
- serialized job processing and behavior after stop

gammu is never executed: a fake ``runner`` replaces subprocess.run.
"""

from __future__ import annotations

import subprocess
import threading
from typing import Any, List, Optional

import pytest

from hydro.channels.gammu_sms import GammuConfig, GammuSmsChannel, normalize_number
from hydro.domain.errors import ChannelError, GammuError, InvalidMobileNumberError


class FakeRunner:
    """
    subprocess.run replacement recording invocations.

    Parameters
    ----------
    returncode
        Exit code reported for every invocation.
    raises
        Exception raised instead of returning.
    """

    def __init__(self, returncode: int = 0, raises: Optional[BaseException] = None) -> None:
        self.returncode = returncode
        self.raises = raises
        self.calls: List[dict] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def __call__(self, cmd: List[str], **kwargs: Any) -> subprocess.CompletedProcess:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            self.calls.append({"cmd": cmd, **kwargs})
            if self.raises is not None:
                raise self.raises
            return subprocess.CompletedProcess(cmd, self.returncode, stdout="", stderr="")
        finally:
            with self._lock:
                self.active -= 1


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("600100200", "+48600100200"),
        ("600 100 200", "+48600100200"),
        ("+48 600-100-200", "+48600100200"),
        ("48600100200", "+48600100200"),
    ],
)
def test_normalize_number(raw: str, expected: str) -> None:
    assert normalize_number(raw) == expected


@pytest.mark.parametrize("raw", ["", "12345", "0048600100200", "600100200123"])
def test_normalize_number_rejects_invalid(raw: str) -> None:
    with pytest.raises(InvalidMobileNumberError):
        normalize_number(raw)


def test_send_text_runs_gammu_with_message_on_stdin() -> None:
    runner = FakeRunner()
    channel = GammuSmsChannel(GammuConfig(gammu="/opt/gammu", gammurc="/etc/rc", timeout_s=7), runner=runner)

    channel.send_text("600100200", "Low chlorine\r\nCheck dosing ")
    channel.stop()

    assert runner.calls[0]["cmd"] == ["/opt/gammu", "-c", "/etc/rc", "sendsms", "TEXT", "+48600100200"]
    assert runner.calls[0]["input"] == "Low chlorine\nCheck dosing"
    assert runner.calls[0]["timeout"] == 7


def test_nonzero_exit_code_is_gammu_error() -> None:
    channel = GammuSmsChannel(runner=FakeRunner(returncode=149))

    with pytest.raises(GammuError) as exc_info:
        channel.send_text("600100200", "x")
    channel.stop()

    assert exc_info.value.code == "NOSIM"


def test_timeout_is_gammu_timeout() -> None:
    channel = GammuSmsChannel(runner=FakeRunner(raises=subprocess.TimeoutExpired(cmd="gammu", timeout=1)))

    with pytest.raises(GammuError) as exc_info:
        channel.send_text("600100200", "x")
    channel.stop()

    assert exc_info.value.code == "TIMEOUT"


def test_missing_binary_is_spawn_failure() -> None:
    channel = GammuSmsChannel(runner=FakeRunner(raises=FileNotFoundError("gammu")))

    with pytest.raises(ChannelError) as exc_info:
        channel.send_text("600100200", "x")
    channel.stop()

    assert exc_info.value.code == "SPAWN_FAILED"


def test_invalid_number_fails_without_running_gammu() -> None:
    runner = FakeRunner()
    channel = GammuSmsChannel(runner=runner)

    with pytest.raises(InvalidMobileNumberError):
        channel.send_text("123", "x")
    channel.stop()

    assert runner.calls == []


def test_jobs_never_overlap() -> None:
    """
    Concurrent senders are serialized through the single worker.
    """
    runner = FakeRunner()
    channel = GammuSmsChannel(runner=runner)
    errors: List[BaseException] = []

    def sender(i: int) -> None:
        try:
            channel.send_text("600100200", f"msg {i}")
        except BaseException as e:
            errors.append(e)

    threads = [threading.Thread(target=sender, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)
    channel.stop()

    assert errors == []
    assert len(runner.calls) == 8
    assert runner.max_active == 1


def test_security_code_entered_on_start() -> None:
    runner = FakeRunner()
    channel = GammuSmsChannel(GammuConfig(security_code="1234"), runner=runner)

    channel.start()
    channel.send_text("600100200", "x")
    channel.stop()

    assert runner.calls[0]["cmd"][-3:] == ["entersecuritycode", "PIN", "1234"]
    assert runner.calls[1]["cmd"][-3:] == ["sendsms", "TEXT", "+48600100200"]


def test_send_after_stop_fails() -> None:
    channel = GammuSmsChannel(runner=FakeRunner())
    channel.start()
    channel.stop()

    with pytest.raises(ChannelError) as exc_info:
        channel.send_text("600100200", "x")

    assert exc_info.value.code == "STOPPED"
