"""Timeline annotations recorded while a cluster test runs."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Sequence

COLOR_INFO = "#FAFAFA"
COLOR_NEUTRAL = "#FFECB3"
COLOR_SUCCESS = "#C8E6C9"
COLOR_FAILURE = "#FFCDD2"
COLOR_FAULT = "#B3E5FC"
COLOR_USER = "#FFF176"

TAG_CHECKER = "$ Checker"
TAG_PARTITION = "$ Failure"
TAG_INFO = "$ Test Info"

# Gap inserted between adjacent intervals so a viewer does not overlap them.
_DELTA = 1000


def timestamp() -> int:
    """Nanoseconds since the Unix epoch."""
    return time.time_ns()


@dataclass
class Annotation:
    """A point (end == 0) or interval on the test timeline."""

    tag: str
    start: int
    end: int = 0
    description: str = ""
    details: str = ""
    background_color: str = ""


@dataclass
class _Continuous:
    start: int = 0
    desp: str = ""
    details: str = ""
    bgcolor: str = ""


@dataclass
class _FrameworkInfo:
    nservers: int
    connected: list[bool]
    crashed: list[bool]
    ckbegin_ts: int = 0
    ckbegin_details: str = ""
    lock: threading.Lock = field(default_factory=threading.Lock)


def _golist(items: Sequence[object]) -> str:
    return "[" + " ".join(str(x) for x in items) + "]"


class Annotator:
    """Collects annotations and tracks which servers are partitioned or crashed."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._annotations: list[Annotation] = []
        self._continuous: dict[str, _Continuous] = {}
        self._finalized = False
        self._finfo: _FrameworkInfo | None = None

    # Raw annotations.

    def annotate_point(self, tag: str, desp: str, details: str, bgcolor: str = COLOR_USER) -> None:
        with self._lock:
            self._annotations.append(
                Annotation(tag, timestamp(), 0, desp, details, bgcolor)
            )

    def annotate_interval(
        self, tag: str, start: int, desp: str, details: str, bgcolor: str = COLOR_USER
    ) -> None:
        with self._lock:
            self._annotations.append(
                Annotation(tag, start, timestamp(), desp, details, bgcolor)
            )

    def annotate_continuous(
        self, tag: str, desp: str, details: str, bgcolor: str = COLOR_USER
    ) -> None:
        """Open an interval for tag, closing the previous one for tag if any."""
        with self._lock:
            cont = self._continuous.get(tag)
            if cont is None:
                self._continuous[tag] = _Continuous(timestamp(), desp, details, bgcolor)
                return
            t = timestamp()
            self._annotations.append(
                Annotation(tag, cont.start, t, cont.desp, cont.details, cont.bgcolor)
            )
            self._continuous[tag] = _Continuous(t + _DELTA, desp, details, bgcolor)

    def annotate_continuous_end(self, tag: str) -> None:
        with self._lock:
            cont = self._continuous.pop(tag, _Continuous())
            self._annotations.append(
                Annotation(tag, cont.start, timestamp(), cont.desp, cont.details, cont.bgcolor)
            )

    def clear(self) -> None:
        with self._lock:
            self._annotations = []
            self._continuous = {}
            self._finalized = False

    def finalize(self) -> list[Annotation]:
        """Return all annotations, closing any still-open continuous ones."""
        with self._lock:
            result = list(self._annotations)
            t = timestamp()
            for tag, cont in self._continuous.items():
                result.append(
                    Annotation(tag, cont.start, t, cont.desp, cont.details, cont.bgcolor)
                )
            self._finalized = True
            return result

    def finalize_with_end(self, end: str) -> list[Annotation]:
        """Finalize, then append a closing info interval described by end."""
        result = self.finalize()
        t = timestamp()
        result.append(Annotation(TAG_INFO, t, t + _DELTA, end, end, COLOR_INFO))
        return result

    def is_finalized(self) -> bool:
        with self._lock:
            return self._finalized

    def set_finalized(self) -> None:
        with self._lock:
            self._finalized = True

    # Test framework.

    def _info(self) -> _FrameworkInfo:
        if self._finfo is None:
            raise RuntimeError("annotate_test has not been called")
        return self._finfo

    def annotate_test(self, desp: str, nservers: int) -> None:
        details = f"{desp} ({nservers} servers)"
        self._finfo = _FrameworkInfo(nservers, [True] * nservers, [False] * nservers)
        self.clear()
        self.annotate_point(TAG_INFO, details, details, COLOR_INFO)

    def checker_begin(self, details: str) -> None:
        info = self._info()
        with info.lock:
            info.ckbegin_ts = timestamp()
            info.ckbegin_details = details

    def checker_end(self, desp: str, details: str, color: str) -> None:
        info = self._info()
        with info.lock:
            if info.ckbegin_ts == 0:
                self.annotate_point(TAG_CHECKER, desp, details, color)
                return
            d = f"{info.ckbegin_details}: {details}"
            self.annotate_interval(TAG_CHECKER, info.ckbegin_ts, desp, d, color)

    def checker_success(self, desp: str, details: str) -> None:
        self.checker_end(desp, details, COLOR_SUCCESS)

    def checker_failure(self, desp: str, details: str) -> None:
        self.checker_end(desp, details, COLOR_FAILURE)

    def checker_neutral(self, desp: str, details: str) -> None:
        self.checker_end(desp, details, COLOR_NEUTRAL)

    def _annotate_fault(self, info: _FrameworkInfo) -> None:
        if all(info.connected) and not any(info.crashed):
            self.annotate_continuous_end(TAG_PARTITION)
            return
        conn: list[int] = []
        crashes: list[int] = []
        text = "partition = "
        for sid, connected in enumerate(info.connected):
            if info.crashed[sid]:
                crashes.append(sid)
            elif connected:
                conn.append(sid)
            else:
                text += f"[{sid}] "
        if conn:
            text += _golist(conn)
        if crashes:
            text += f" / crash = {_golist(crashes)}"
        self.annotate_continuous(TAG_PARTITION, text, text, COLOR_FAULT)

    def annotate_connection(self, connection: Sequence[bool]) -> None:
        info = self._info()
        with info.lock:
            if list(info.connected) == list(connection):
                return
            n = min(len(info.connected), len(connection))
            info.connected[:n] = list(connection)[:n]
            self._annotate_fault(info)

    def annotate_two_partitions(self, p1: Sequence[int], p2: Sequence[int]) -> None:
        text = f"partition = {_golist(p1)} {_golist(p2)}"
        self.annotate_continuous(TAG_PARTITION, text, text, COLOR_FAULT)

    def clear_failure(self) -> None:
        info = self._info()
        with info.lock:
            info.crashed = [False] * len(info.crashed)
            info.connected = [True] * len(info.connected)
            self.annotate_continuous_end(TAG_PARTITION)

    def annotate_shutdown(self, servers: Sequence[int]) -> None:
        info = self._info()
        with info.lock:
            changed = any(not info.crashed[sid] for sid in servers)
            for sid in servers:
                info.crashed[sid] = True
            if changed:
                self._annotate_fault(info)

    def annotate_shutdown_all(self) -> None:
        info = self._info()
        with info.lock:
            n = info.nservers
        self.annotate_shutdown(range(n))

    def annotate_restart(self, servers: Sequence[int]) -> None:
        info = self._info()
        with info.lock:
            changed = any(info.crashed[sid] for sid in servers)
            for sid in servers:
                info.crashed[sid] = False
            if changed:
                self._annotate_fault(info)

    def annotate_restart_all(self) -> None:
        info = self._info()
        with info.lock:
            n = info.nservers
        self.annotate_restart(range(n))