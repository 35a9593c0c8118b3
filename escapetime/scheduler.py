"""Parallel rendering of a canvas, one column per work unit."""

from __future__ import annotations

import os
import queue
import threading
import time
from dataclasses import dataclass
from typing import Optional

import numpy as np
import PIL.Image

from .evaluator import DETAIL, escape_times, max_iterations, shade
from .mapping import View

_STOP = None


class RenderError(RuntimeError):
    """A worker failed; the canvas was not handed out."""


class CanvasFrozenError(RuntimeError):
    """Raised on a write after the canvas has been handed to the caller."""


class Canvas:
    """RGBA pixel buffer shared by the render workers.

    Columns never overlap, so the lock is not needed for correctness; it is
    kept on by default and can be dropped with ``lock_writes=False``. Every
    write is counted so a finished canvas can prove each pixel was written
    exactly once.
    """

    def __init__(self, width: int, height: int, *, lock_writes: bool = True) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"canvas dimensions must be positive, got {width}x{height}")
        self.width = int(width)
        self.height = int(height)
        self.pixels = np.zeros((self.height, self.width, 4), dtype=np.uint8)
        self.writes = np.zeros((self.height, self.width), dtype=np.int32)
        self._lock: Optional[threading.Lock] = threading.Lock() if lock_writes else None
        self._frozen = False

    @property
    def lock_writes(self) -> bool:
        return self._lock is not None

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def complete(self) -> bool:
        return bool(np.all(self.writes == 1))

    def write_column(self, x: int, rgba: np.ndarray) -> None:
        self._check_writable()
        if self._lock is None:
            self._store_column(x, rgba)
        else:
            with self._lock:
                self._store_column(x, rgba)

    def freeze(self) -> None:
        self.pixels.flags.writeable = False
        self.writes.flags.writeable = False
        self._frozen = True

    def to_image(self) -> PIL.Image.Image:
        return PIL.Image.fromarray(np.ascontiguousarray(self.pixels))

    def _check_writable(self) -> None:
        if self._frozen:
            raise CanvasFrozenError("canvas has already been handed out")

    def _store_column(self, x: int, rgba: np.ndarray) -> None:
        self.pixels[:, x, :] = rgba
        self.writes[:, x] += 1


@dataclass(frozen=True)
class RenderResult:
    """A finished render and the parameters that produced it."""

    canvas: Canvas
    iterations: np.ndarray
    view: View
    max_iterations: int
    workers: int
    elapsed: float

    @property
    def width(self) -> int:
        return self.canvas.width

    @property
    def height(self) -> int:
        return self.canvas.height


def default_workers() -> int:
    return max(os.cpu_count() or 1, 1)


class _Worker(threading.Thread):

    def __init__(self, index: int, work: queue.Queue, canvas: Canvas, iterations: np.ndarray,
                 imaginary: np.ndarray, view: View, max_iter: int) -> None:
        super().__init__(name=f"escapetime-worker-{index}", daemon=True)
        self.work = work
        self.canvas = canvas
        self.iterations = iterations
        self.imaginary = imaginary
        self.view = view
        self.max_iter = max_iter
        self.error: Optional[BaseException] = None

    def run(self) -> None:
        while True:
            x = self.work.get()
            if x is _STOP:
                return
            if self.error is not None:
                # keep draining so the feeder is never left blocked
                continue
            try:
                self.render_column(x)
            except Exception as exc:
                self.error = exc

    def render_column(self, x: int) -> None:
        re = self.canvas_real(x)
        counts = escape_times(np.full(self.imaginary.shape, re), self.imaginary, self.max_iter)
        self.iterations[:, x] = counts
        self.canvas.write_column(x, shade(counts))

    def canvas_real(self, x: int) -> float:
        re, _ = self.view.plane_coordinates(x, 0, self.canvas.width, self.canvas.height)
        return re


def render(
    view: View,
    width: int,
    height: int,
    *,
    detail: int = DETAIL,
    workers: Optional[int] = None,
    lock_writes: bool = True,
) -> RenderResult:
    """Render ``view`` onto a new ``width`` x ``height`` canvas.

    Column indices are handed to a fixed pool of threads through a single
    queue. The call returns only after every worker has finished, with the
    canvas frozen; a failure in any worker raises :class:`RenderError`
    instead.
    """

    max_iter = max_iterations(detail)
    if workers is None:
        workers = default_workers()
    if workers < 1:
        raise ValueError(f"workers must be at least 1, got {workers}")

    started = time.perf_counter()
    canvas = Canvas(width, height, lock_writes=lock_writes)
    iterations = np.zeros((canvas.height, canvas.width), dtype=np.int64)
    imaginary = view.axis(canvas.height, view.y_offset)

    work: queue.Queue = queue.Queue(maxsize=1)
    pool = [
        _Worker(i, work, canvas, iterations, imaginary, view, max_iter)
        for i in range(workers)
    ]
    for worker in pool:
        worker.start()

    for x in range(canvas.width):
        work.put(x)
    for _ in pool:
        work.put(_STOP)

    for worker in pool:
        worker.join()

    errors = [worker.error for worker in pool if worker.error is not None]
    if errors:
        raise RenderError(f"{len(errors)} of {workers} workers failed") from errors[0]

    canvas.freeze()
    iterations.flags.writeable = False
    return RenderResult(
        canvas=canvas,
        iterations=iterations,
        view=view,
        max_iterations=max_iter,
        workers=workers,
        elapsed=time.perf_counter() - started,
    )
