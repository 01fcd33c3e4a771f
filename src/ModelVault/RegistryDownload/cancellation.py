# === NAVMAP v1 ===
# {
#   "module": "ModelVault.RegistryDownload.cancellation",
#   "purpose": "Bridge asynchronous interrupt signals to cooperative cancellation of download sessions",
#   "sections": [
#     {"id": "signals", "name": "SignalKind", "anchor": "SIG", "kind": "api"},
#     {"id": "state", "name": "CancellationState", "anchor": "STA", "kind": "api"},
#     {"id": "prompt", "name": "Confirmation Prompt", "anchor": "PRM", "kind": "helpers"},
#     {"id": "sources", "name": "Signal Sources", "anchor": "SRC", "kind": "api"},
#     {"id": "coordinator", "name": "CancellationCoordinator", "anchor": "COO", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Cooperative cancellation driven by SIGINT and SIGTERM.

A download session runs blocking network reads on the workflow thread, so
interrupt handling is split in two.  A background listener thread receives
the OS signals and decides what to do with them; the workflow observes the
shared :class:`CancellationState` at explicit checkpoints (between steps and
between chunks) and unwinds through its rollback ledger when cancellation is
confirmed.  Nothing here interrupts an in-flight read.

The listener follows a small state machine::

    Idle -> SignalPending -> Confirming -> {Cancelled, Resumed}

When a progress bar owns the terminal the listener only records the signal;
the blob fetcher performs the confirmation at its next chunk boundary with
the bar suspended, so the prompt never collides with a progress render.
Conversely, a bar cannot start while a listener prompt is still open.
"""

from __future__ import annotations

import contextlib
import enum
import logging
import os
import queue
import select
import signal
import sys
import threading
from typing import Callable, ContextManager, Optional, Protocol, TextIO

from .errors import UserCancelled
from .settings import LOGGER_NAME

CONFIRMATION_TIMEOUT_SEC = 10.0
CLEANUP_POLL_INTERVAL_SEC = 1.0
CLEANUP_WAIT_LIMIT_SEC = 30.0

_PROMPT_TEMPLATE = (
    "\n{label}: All partially completed downloaded data will be removed. "
    "Do you really want to exit? [y/N] (timeout to N in {timeout:g} seconds): "
)


class SignalKind(enum.IntEnum):
    """Signals that participate in the cancellation protocol."""

    NONE = 0
    INT = int(signal.SIGINT)
    TERM = int(signal.SIGTERM)

    @classmethod
    def from_signum(cls, signum: int) -> "SignalKind":
        if signum == int(signal.SIGTERM):
            return cls.TERM
        return cls.INT

    @property
    def label(self) -> str:
        return "Termination" if self is SignalKind.TERM else "Interrupt"

    @property
    def exit_code(self) -> int:
        """Conventional shell exit code (130 for SIGINT, 143 for SIGTERM)."""

        return 128 + int(self if self is not SignalKind.NONE else SignalKind.INT)


class CancellationState:
    """Shared flags read by the workflow thread and written by the listener.

    Boolean flags are :class:`threading.Event` objects so either thread can
    read them without blocking.  The pending-signal slot holds at most one
    outstanding request and is swapped under a short lock.
    """

    def __init__(self) -> None:
        self._interrupted = threading.Event()
        self._interrupt_requested = threading.Event()
        self._progress_active = threading.Event()
        self._confirmation_required = threading.Event()
        self._confirming = threading.Event()
        self._prompt_closed = threading.Event()
        self._prompt_closed.set()
        self._cleanup_done = threading.Event()
        self._lock = threading.Lock()
        self._pending = SignalKind.NONE
        self._interrupted_by = SignalKind.NONE

    # --- interrupted -------------------------------------------------------

    def is_interrupted(self) -> bool:
        return self._interrupted.is_set()

    def set_interrupted(self, kind: SignalKind = SignalKind.INT) -> None:
        with self._lock:
            self._interrupted_by = kind if kind is not SignalKind.NONE else SignalKind.INT
            self._interrupted.set()

    @property
    def interrupted_by(self) -> SignalKind:
        return self._interrupted_by

    # --- pending requests --------------------------------------------------

    def interrupt_requested(self) -> bool:
        return self._interrupt_requested.is_set()

    def request_interrupt(self, kind: SignalKind) -> bool:
        """Record ``kind`` as pending; returns ``False`` when a request is already outstanding."""

        with self._lock:
            if self._pending is not SignalKind.NONE or self._confirming.is_set():
                return False
            self._pending = kind
            self._interrupt_requested.set()
            return True

    def take_pending(self) -> SignalKind:
        """Atomically clear and return the pending request."""

        with self._lock:
            kind = self._pending
            self._pending = SignalKind.NONE
            self._interrupt_requested.clear()
            return kind

    @property
    def pending_signal(self) -> SignalKind:
        return self._pending

    # --- confirmation ------------------------------------------------------

    @property
    def confirmation_required(self) -> bool:
        return self._confirmation_required.is_set()

    def set_confirmation_required(self, required: bool) -> None:
        if required:
            self._confirmation_required.set()
        else:
            self._confirmation_required.clear()

    @property
    def confirming(self) -> bool:
        return self._confirming.is_set()

    def begin_confirming(self, *, defer_to_progress: bool = False) -> bool:
        """Enter the confirming state.

        Returns ``False`` when another prompt is already open, or when
        ``defer_to_progress`` is set and a progress display owns the terminal.
        """

        with self._lock:
            if self._confirming.is_set():
                return False
            if defer_to_progress and self._progress_active.is_set():
                return False
            self._confirming.set()
            self._prompt_closed.clear()
            return True

    def end_confirming(self) -> None:
        with self._lock:
            self._confirming.clear()
            self._prompt_closed.set()

    def wait_prompt_closed(self, timeout: Optional[float] = None) -> bool:
        """Block until no confirmation prompt is open."""

        return self._prompt_closed.wait(timeout)

    # --- progress & cleanup ------------------------------------------------

    @property
    def progress_active(self) -> bool:
        return self._progress_active.is_set()

    def set_progress_active(self, active: bool) -> None:
        """Mark the terminal as owned by a progress display.

        Activation waits for an open prompt to close first, so a bar is never
        drawn over a question the user has not answered yet.
        """

        if not active:
            self._progress_active.clear()
            return
        while True:
            self._prompt_closed.wait()
            with self._lock:
                if not self._confirming.is_set():
                    self._progress_active.set()
                    return

    @property
    def cleanup_done(self) -> bool:
        return self._cleanup_done.is_set()

    def set_cleanup_done(self) -> None:
        self._cleanup_done.set()

    def wait_cleanup_done(self, timeout: float) -> bool:
        return self._cleanup_done.wait(timeout)

    def reset(self) -> None:
        """Return every flag to its initial state.

        Intended for tests and for processes that run several sessions.
        """

        with self._lock:
            for flag in (
                self._interrupted,
                self._interrupt_requested,
                self._progress_active,
                self._confirming,
                self._cleanup_done,
            ):
                flag.clear()
            self._prompt_closed.set()
            self._pending = SignalKind.NONE
            self._interrupted_by = SignalKind.NONE


# --- Confirmation prompt ------------------------------------------------------

LineReader = Callable[[float], Optional[str]]
Prompt = Callable[[SignalKind], bool]


def _read_line_select(stream: TextIO, timeout: float) -> Optional[str]:
    ready, _, _ = select.select([stream], [], [], timeout)
    if not ready:
        return None
    return stream.readline()


def _read_line_thread(stream: TextIO, timeout: float) -> Optional[str]:
    answers: "queue.Queue[str]" = queue.Queue(maxsize=1)

    def _reader() -> None:
        answers.put(stream.readline())

    threading.Thread(target=_reader, name="modelvault-stdin", daemon=True).start()
    try:
        return answers.get(timeout=timeout)
    except queue.Empty:
        return None


def read_line_with_timeout(timeout: float, stream: Optional[TextIO] = None) -> Optional[str]:
    """Read one line from ``stream`` (stdin by default) or return ``None`` after ``timeout``.

    POSIX terminals are polled with :func:`select.select`; elsewhere a daemon
    reader thread is used, since a plain blocking read could never honour the
    timeout.
    """

    stream = stream if stream is not None else sys.stdin
    if stream is None:
        return None
    if os.name != "nt":
        try:
            stream.fileno()
        except (AttributeError, OSError, ValueError):
            return _read_line_thread(stream, timeout)
        return _read_line_select(stream, timeout)
    return _read_line_thread(stream, timeout)


def prompt_for_confirmation(
    kind: SignalKind,
    *,
    timeout: float = CONFIRMATION_TIMEOUT_SEC,
    reader: Optional[LineReader] = None,
    output: Optional[TextIO] = None,
    logger: Optional[logging.Logger] = None,
) -> bool:
    """Ask whether to abandon the download; no answer before ``timeout`` means No."""

    logger = logger or logging.getLogger(LOGGER_NAME)
    output = output if output is not None else sys.stderr
    output.write(_PROMPT_TEMPLATE.format(label=kind.label, timeout=timeout))
    output.flush()

    read = reader or read_line_with_timeout
    try:
        answer = read(timeout)
    except (OSError, ValueError) as exc:
        logger.error(
            "failed to read interrupt confirmation",
            extra={"stage": "cancel", "error": str(exc)},
        )
        return False
    if answer is None:
        logger.info("interrupt confirmation timed out; continuing", extra={"stage": "cancel"})
        return False
    return answer.strip().lower() in {"y", "yes"}


# --- Signal sources -----------------------------------------------------------


class SignalSource(Protocol):
    """Blocking source of delivered signal numbers."""

    def install(self) -> None:
        """Prepare delivery; called on the main thread before the listener starts."""

    def wait(self) -> int:
        """Block until a signal arrives and return its number."""


class SigwaitSignalSource:
    """Deliver SIGINT/SIGTERM to the listener thread via ``sigwait``.

    The signals are blocked on the installing thread (and hence on every
    thread started afterwards) so the kernel queues them for ``sigwait``.
    """

    signals = frozenset({signal.SIGINT, signal.SIGTERM})

    def install(self) -> None:
        signal.pthread_sigmask(signal.SIG_BLOCK, self.signals)

    def wait(self) -> int:
        return int(signal.sigwait(self.signals))


class QueueSignalSource:
    """Deliver signals through a queue fed by Python-level handlers or by :meth:`deliver`."""

    def __init__(self, *, register_os_handlers: bool = True) -> None:
        self._queue: "queue.Queue[int]" = queue.Queue()
        self.register_os_handlers = register_os_handlers

    def install(self) -> None:
        if not self.register_os_handlers:
            return
        for signum in (signal.SIGINT, signal.SIGTERM):
            signal.signal(signum, lambda received, _frame: self.deliver(received))

    def deliver(self, signum: int) -> None:
        self._queue.put(int(signum))

    def wait(self) -> int:
        return self._queue.get()


def default_signal_source() -> SignalSource:
    """Prefer ``sigwait`` where POSIX thread signal masks are available."""

    if hasattr(signal, "pthread_sigmask") and hasattr(signal, "sigwait"):
        return SigwaitSignalSource()
    return QueueSignalSource()


def _terminate_process(code: int) -> None:
    sys.stderr.flush()
    sys.stdout.flush()
    os._exit(code)


# --- Coordinator --------------------------------------------------------------


class SuspendableProgress(Protocol):
    def suspend(self) -> ContextManager[None]: ...


class CancellationCoordinator:
    """Own the signal listener and implement the confirm/timeout protocol.

    Args:
        state: Shared flags injected into download sessions.
        signal_source: Where signals come from; defaults to ``sigwait`` on POSIX.
        prompt: Callable asking the user to confirm; defaults to
            :func:`prompt_for_confirmation`.
        exit_func: Terminates the process with a given code.
        cleanup_wait_limit: Upper bound for waiting on the workflow's cleanup
            acknowledgement before exiting.
        poll_interval: Interval between cleanup acknowledgement checks.
    """

    def __init__(
        self,
        state: Optional[CancellationState] = None,
        *,
        signal_source: Optional[SignalSource] = None,
        prompt: Optional[Prompt] = None,
        exit_func: Callable[[int], None] = _terminate_process,
        cleanup_wait_limit: float = CLEANUP_WAIT_LIMIT_SEC,
        poll_interval: float = CLEANUP_POLL_INTERVAL_SEC,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.state = state or CancellationState()
        self.signal_source = signal_source or default_signal_source()
        self.logger = logger or logging.getLogger(LOGGER_NAME)
        self.prompt: Prompt = prompt or (lambda kind: prompt_for_confirmation(kind, logger=self.logger))
        self.exit_func = exit_func
        self.cleanup_wait_limit = cleanup_wait_limit
        self.poll_interval = poll_interval
        self._thread: Optional[threading.Thread] = None
        self._stopped = threading.Event()

    # --- listener side -----------------------------------------------------

    def install(self, *, confirmation_required: bool = True) -> None:
        """Start the background listener thread."""

        self.state.set_confirmation_required(confirmation_required)
        if self._thread is not None:
            return
        self.signal_source.install()
        self._thread = threading.Thread(
            target=self._listen, name="modelvault-signal-listener", daemon=True
        )
        self._thread.start()
        self.logger.debug("signal handlers installed", extra={"stage": "cancel"})

    def stop(self) -> None:
        """Ignore any signal delivered after this call."""

        self._stopped.set()

    def _listen(self) -> None:
        while not self._stopped.is_set():
            signum = self.signal_source.wait()
            if self._stopped.is_set():
                break
            self.handle_signal(SignalKind.from_signum(signum))

    def handle_signal(self, kind: SignalKind) -> None:
        """Apply the cancellation protocol to one delivered signal."""

        self.logger.info(
            "received signal",
            extra={"stage": "cancel", "signal": kind.name, "label": kind.label},
        )
        if not self.state.confirmation_required:
            sys.stderr.write(f"\n{kind.label} received. Exiting...\n")
            self.exit_func(kind.exit_code)
            return

        if self.state.confirming:
            self.logger.debug(
                "ignoring signal while confirmation is pending",
                extra={"stage": "cancel", "signal": kind.name},
            )
            return

        if not self.state.begin_confirming(defer_to_progress=True):
            if self.state.request_interrupt(kind):
                self.logger.debug(
                    "deferred confirmation to active transfer",
                    extra={"stage": "cancel", "signal": kind.name},
                )
            return
        # interrupted is set before the prompt closes so a waiting workflow
        # never resumes a transfer the user just abandoned
        try:
            confirmed = self.prompt(kind)
            if confirmed:
                self.state.set_interrupted(kind)
        finally:
            self.state.end_confirming()

        if not confirmed:
            self.logger.info("user declined cancellation; continuing", extra={"stage": "cancel"})
            return

        self.logger.info("user confirmed cancellation", extra={"stage": "cancel", "signal": kind.name})
        self._await_cleanup()
        self.exit_func(kind.exit_code)

    def _await_cleanup(self) -> bool:
        waited = 0.0
        while waited < self.cleanup_wait_limit:
            if self.state.wait_cleanup_done(self.poll_interval):
                return True
            waited += self.poll_interval
        self.logger.warning(
            "cleanup acknowledgement not received before exit",
            extra={"stage": "cancel", "waited_sec": waited},
        )
        return False

    # --- workflow side -----------------------------------------------------

    def confirm_pending(self) -> bool:
        """Resolve a deferred request on the workflow thread.

        Returns:
            ``True`` when the user confirmed and the state is now interrupted.
        """

        if not self.state.confirmation_required:
            return False
        if not self.state.interrupt_requested():
            return False
        if not self.state.begin_confirming():
            return False
        try:
            kind = self.state.take_pending()
            if kind is SignalKind.NONE:
                return False
            confirmed = self.prompt(kind)
            if confirmed:
                self.state.set_interrupted(kind)
        finally:
            self.state.end_confirming()
        if confirmed:
            self.logger.info("user confirmed cancellation", extra={"stage": "cancel", "signal": kind.name})
            return True
        self.logger.info("user declined cancellation; continuing", extra={"stage": "cancel"})
        return False

    def checkpoint(self, progress: Optional[SuspendableProgress] = None) -> None:
        """Raise :class:`UserCancelled` when cancellation is (or becomes) confirmed.

        A prompt opened by the listener is waited out first, so the caller
        never draws output over it and sees the user's answer.
        """

        self.state.wait_prompt_closed()
        check_cancelled(self.state)
        if self.state.interrupt_requested():
            suspend = progress.suspend() if progress is not None else contextlib.nullcontext()
            with suspend:
                confirmed = self.confirm_pending()
            if confirmed:
                raise UserCancelled(signum=int(self.state.interrupted_by))

    def acknowledge_cleanup(self) -> None:
        """Tell the listener that rollback or success handling has finished."""

        self.state.set_cleanup_done()


def check_cancelled(state: CancellationState) -> None:
    """Raise :class:`UserCancelled` if ``state`` is already interrupted."""

    if state.is_interrupted():
        raise UserCancelled(signum=int(state.interrupted_by))


__all__ = [
    "SignalKind",
    "CancellationState",
    "CancellationCoordinator",
    "SigwaitSignalSource",
    "QueueSignalSource",
    "default_signal_source",
    "prompt_for_confirmation",
    "read_line_with_timeout",
    "check_cancelled",
    "CONFIRMATION_TIMEOUT_SEC",
]
