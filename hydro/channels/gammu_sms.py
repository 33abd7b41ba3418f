"""
SMS delivery through a GSM modem driven by the gammu CLI.

The modem can only hold one conversation at a time, so every gammu
invocation goes through a bounded job queue consumed by a single worker
thread. Callers of :meth:`GammuSmsChannel.send_text` block until their job
has run; :meth:`GammuSmsChannel.schedule_text` returns a future instead.
"""

from __future__ import annotations

import itertools
import logging
import queue
import re
import subprocess
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, Tuple

from hydro.domain.errors import ChannelError, GammuError, InvalidMobileNumberError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class GammuConfig:
    """
    gammu channel settings.

    Parameters
    ----------
    gammu
        Path of the gammu executable.
    gammurc
        Path of the gammu configuration file.
    timeout_s
        Kill a gammu invocation after this many seconds.
    security_code_type, security_code
        SIM security code entered once at start (skipped when code is None).
    country_code
        Prefix added to 9-digit national numbers.
    max_queue
        Maximum number of pending jobs.
    """

    gammu: str = "/usr/bin/gammu"
    gammurc: str = "/etc/gammurc"
    timeout_s: float = 15.0
    security_code_type: str = "PIN"
    security_code: Optional[str] = None
    country_code: str = "48"
    max_queue: int = 100


def normalize_number(number: str, country_code: str = "48") -> str:
    """
    Convert a mobile number to the international ``+CCNNNNNNNNN`` form.

    Raises
    ------
    InvalidMobileNumberError
        If the number does not have 9 (national) or 11 (international) digits.
    """
    digits = re.sub(r"[^0-9]", "", number)
    if len(digits) == 9:
        digits = country_code + digits
    if len(digits) != 9 + len(country_code):
        raise InvalidMobileNumberError(number)
    return "+" + digits


@dataclass
class _Job:
    id: int
    name: str
    args: Tuple[Any, ...]
    future: "Future[None]"


class GammuSmsChannel:
    """
    `SmsChannel` implementation backed by gammu.

    Parameters
    ----------
    cfg
        Channel configuration.
    runner
        ``subprocess.run``-compatible callable (replaced in tests).
    """

    def __init__(self, cfg: GammuConfig | None = None, runner: Callable[..., Any] = subprocess.run):
        self._cfg = cfg or GammuConfig()
        self._runner = runner
        self._q: "queue.Queue[Optional[_Job]]" = queue.Queue(maxsize=self._cfg.max_queue)
        self._ids = itertools.count(1)
        self._stop = threading.Event()
        self._started = False
        self._start_lock = threading.Lock()
        self._thread = threading.Thread(target=self._run, name="gammu-sms", daemon=True)

    def start(self) -> None:
        """
        Start the worker thread and enter the SIM security code if configured.
        """
        with self._start_lock:
            if self._started:
                return
            self._started = True
            self._thread.start()

        if self._cfg.security_code:
            fut = self.enter_security_code(self._cfg.security_code_type, self._cfg.security_code)
            fut.add_done_callback(_log_security_code_result)

    def stop(self) -> None:
        self._stop.set()
        try:
            self._q.put_nowait(None)
        except queue.Full:
            pass
        if self._started:
            self._thread.join(timeout=2.0)

        while True:
            try:
                job = self._q.get_nowait()
            except queue.Empty:
                break
            if job is not None:
                job.future.cancel()

    def send_text(self, number: str, text: str) -> None:
        """
        Send an SMS and wait for the modem to finish.

        Raises
        ------
        InvalidMobileNumberError
            If the number cannot be normalized.
        GammuError
            If gammu exits with an error or times out.
        ChannelError
            If the job queue is full or the channel is stopped.
        """
        self.schedule_text(number, text).result()

    def schedule_text(self, number: str, text: str) -> "Future[None]":
        return self._schedule("sendText", number, text)

    def enter_security_code(self, code_type: str, code: str) -> "Future[None]":
        return self._schedule("enterSecurityCode", code_type, str(code))

    def _schedule(self, name: str, *args: Any) -> "Future[None]":
        if not self._started:
            self.start()

        fut: "Future[None]" = Future()
        if self._stop.is_set():
            fut.set_exception(ChannelError("SMS channel stopped", code="STOPPED"))
            return fut

        job = _Job(id=next(self._ids), name=name, args=args, future=fut)
        try:
            self._q.put_nowait(job)
        except queue.Full:
            fut.set_exception(ChannelError("SMS job queue is full", code="QUEUE_FULL"))
            return fut

        log.debug("[%s] Scheduled job #%d (%d total)", name, job.id, self._q.qsize())
        return fut

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                job = self._q.get(timeout=0.5)
            except queue.Empty:
                continue

            if job is None:
                break

            if not job.future.set_running_or_notify_cancel():
                continue

            log.debug("[%s] Running job #%d (%d left)...", job.name, job.id, self._q.qsize())

            try:
                if job.name == "sendText":
                    self._send_text(*job.args)
                else:
                    self._enter_security_code(*job.args)
            except Exception as e:
                job.future.set_exception(e)
            else:
                job.future.set_result(None)

    def _send_text(self, number: str, text: str) -> None:
        to = normalize_number(number, self._cfg.country_code)
        body = re.sub(r"\r\n|\r", "\n", text).strip()
        self._spawn(["sendsms", "TEXT", to], stdin=body)

    def _enter_security_code(self, code_type: str, code: str) -> None:
        self._spawn(["entersecuritycode", code_type, code])

    def _spawn(self, args: Sequence[str], stdin: Optional[str] = None) -> None:
        cmd = [self._cfg.gammu, "-c", self._cfg.gammurc, *args]
        try:
            proc = self._runner(
                cmd,
                input=stdin,
                capture_output=True,
                text=True,
                timeout=self._cfg.timeout_s,
            )
        except subprocess.TimeoutExpired as e:
            raise GammuError.timeout() from e
        except OSError as e:
            raise ChannelError(f"Failed to run gammu: {e}", code="SPAWN_FAILED") from e

        if proc.returncode:
            raise GammuError.from_exit_code(proc.returncode)


def _log_security_code_result(fut: "Future[None]") -> None:
    if fut.cancelled():
        return
    err = fut.exception()
    if err is not None:
        log.error("Failed to enter security code: %s", err)
