"""Whole-canvas escape-time evaluation with TensorFlow."""

from __future__ import annotations

import time
from typing import Optional

import numpy as np
import tensorflow as tf

from .evaluator import DETAIL, ESCAPE_RADIUS_SQUARED, max_iterations, shade
from .mapping import View
from .scheduler import Canvas, RenderResult


@tf.function
def _escape_step(
    re: tf.Tensor,
    im: tf.Tensor,
    c_re: tf.Tensor,
    c_im: tf.Tensor,
    ns: tf.Tensor,
    active: tf.Tensor,
) -> tuple[tf.Tensor, tf.Tensor, tf.Tensor, tf.Tensor]:
    """Advance every orbit that has not escaped yet by one iteration."""

    new_re = re * re - im * im - c_re
    new_im = re * im * tf.constant(2.0, dtype=re.dtype) + c_im
    re = tf.where(active, new_re, re)
    im = tf.where(active, new_im, im)
    radius = tf.constant(ESCAPE_RADIUS_SQUARED, dtype=re.dtype)
    still_bounded = tf.logical_and(active, re * re + im * im <= radius)
    ns = ns + tf.cast(still_bounded, tf.int32)
    return re, im, ns, still_bounded


@tf.function
def _escape_run(c_re: tf.Tensor, c_im: tf.Tensor, max_iter: tf.Tensor) -> tf.Tensor:
    """Iterate all orbits ``max_iter + 1`` times or until none is bounded."""

    limit = tf.cast(max_iter, tf.int32) + 1
    i = tf.constant(0, dtype=tf.int32)
    re = tf.zeros_like(c_re)
    im = tf.zeros_like(c_im)
    ns = tf.zeros(tf.shape(c_re), tf.int32)
    active = tf.ones(tf.shape(c_re), tf.bool)

    def cond(i, re, im, ns, active):
        return tf.logical_and(tf.less(i, limit), tf.reduce_any(active))

    def body(i, re, im, ns, active):
        re, im, ns, active = _escape_step(re, im, c_re, c_im, ns, active)
        return i + 1, re, im, ns, active

    _, _, _, ns, _ = tf.while_loop(cond, body, (i, re, im, ns, active))
    return ns


def render_tensor(
    view: View,
    width: int,
    height: int,
    *,
    detail: int = DETAIL,
    device: Optional[str] = None,
) -> RenderResult:
    """Render ``view`` in a single TensorFlow pass.

    Produces the same canvas as :func:`escapetime.scheduler.render`. The
    reported worker count is 0 since no thread pool is involved.
    """

    max_iter = max_iterations(detail)
    started = time.perf_counter()
    canvas = Canvas(width, height, lock_writes=False)

    real = view.axis(canvas.width, view.x_offset)
    imaginary = view.axis(canvas.height, view.y_offset)
    c_re, c_im = np.meshgrid(real, imaginary)

    with tf.device(device if device is not None else "/CPU:0"):
        counts = _escape_run(
            tf.convert_to_tensor(c_re, dtype=tf.float64),
            tf.convert_to_tensor(c_im, dtype=tf.float64),
            tf.constant(max_iter, dtype=tf.int32),
        )
    iterations = counts.numpy().astype(np.int64)

    rgba = shade(iterations)
    for x in range(canvas.width):
        canvas.write_column(x, rgba[:, x, :])
    canvas.freeze()
    iterations.flags.writeable = False

    return RenderResult(
        canvas=canvas,
        iterations=iterations,
        view=view,
        max_iterations=max_iter,
        workers=0,
        elapsed=time.perf_counter() - started,
    )
