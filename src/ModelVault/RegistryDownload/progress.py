# === NAVMAP v1 ===
# {
#   "module": "ModelVault.RegistryDownload.progress",
#   "purpose": "Progress sinks reporting blob transfer progress to the terminal",
#   "sections": [
#     {"id": "protocol", "name": "ProgressSink", "anchor": "PRO", "kind": "api"},
#     {"id": "tqdm", "name": "TqdmProgressSink", "anchor": "TQD", "kind": "api"},
#     {"id": "null", "name": "NullProgressSink", "anchor": "NUL", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Progress reporting for blob transfers.

While a sink is started it owns the terminal, which the cancellation state
records through ``progress_active`` so that interrupt prompts are deferred
to the fetcher's next chunk boundary.
"""

from __future__ import annotations

import contextlib
import sys
from typing import Iterator, Optional, Protocol, TextIO

from tqdm import tqdm

from .cancellation import CancellationState


class ProgressSink(Protocol):
    """Receives transfer updates for one blob at a time."""

    def start(self, total: Optional[int], description: str) -> None: ...

    def advance(self, n: int) -> None: ...

    def finish(self) -> None: ...

    def abort(self) -> None: ...

    def suspend(self) -> contextlib.AbstractContextManager[None]: ...


class _StateTrackingSink:
    def __init__(self, state: Optional[CancellationState] = None) -> None:
        self.state = state

    def _mark_active(self, active: bool) -> None:
        if self.state is not None:
            self.state.set_progress_active(active)


class TqdmProgressSink(_StateTrackingSink):
    """Byte progress bar rendered with :mod:`tqdm`.

    ``disable`` is handed to tqdm unchanged: ``None`` hides the bar when
    ``file`` is not a terminal, ``True`` always hides it.
    """

    def __init__(
        self,
        state: Optional[CancellationState] = None,
        *,
        file: Optional[TextIO] = None,
        disable: Optional[bool] = False,
    ) -> None:
        super().__init__(state)
        self.file = file if file is not None else sys.stderr
        self.disable = disable
        self._bar: Optional[tqdm] = None

    def start(self, total: Optional[int], description: str) -> None:
        self.finish()
        self._mark_active(True)
        self._bar = tqdm(
            total=total,
            desc=description,
            unit="B",
            unit_scale=True,
            unit_divisor=1024,
            file=self.file,
            leave=True,
            dynamic_ncols=True,
            disable=self.disable,
        )

    def advance(self, n: int) -> None:
        if self._bar is not None:
            self._bar.update(n)

    def finish(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None
        self._mark_active(False)

    def abort(self) -> None:
        if self._bar is not None:
            self._bar.set_postfix_str("failed", refresh=True)
            self._bar.close()
            self._bar = None
        self._mark_active(False)

    @contextlib.contextmanager
    def suspend(self) -> Iterator[None]:
        """Clear the bar while something else writes to the terminal."""

        with tqdm.external_write_mode(file=self.file):
            yield


class NullProgressSink(_StateTrackingSink):
    """Sink that only tracks totals; used for quiet runs and tests."""

    def __init__(self, state: Optional[CancellationState] = None) -> None:
        super().__init__(state)
        self.total: Optional[int] = None
        self.completed = 0
        self.description = ""
        self.aborted = False
        self.finished = False

    def start(self, total: Optional[int], description: str) -> None:
        self.total = total
        self.completed = 0
        self.description = description
        self.aborted = False
        self.finished = False
        self._mark_active(True)

    def advance(self, n: int) -> None:
        self.completed += n

    def finish(self) -> None:
        self.finished = True
        self._mark_active(False)

    def abort(self) -> None:
        self.aborted = True
        self._mark_active(False)

    @contextlib.contextmanager
    def suspend(self) -> Iterator[None]:
        yield


__all__ = ["ProgressSink", "TqdmProgressSink", "NullProgressSink"]
