import math
import os
import stat
import sys
import tempfile
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

_VERBOSE_FLAGS = {"--verbose", "-v"}
_cli_verbose = any(arg in _VERBOSE_FLAGS for arg in sys.argv[1:])
_env_log_level = os.environ.get("TF_CPP_MIN_LOG_LEVEL")
_suppress_messages = (not _cli_verbose) and _env_log_level != "0"

if _suppress_messages and _env_log_level is None:
    os.environ["TF_CPP_MIN_LOG_LEVEL"] = "3"

if _suppress_messages:
    warnings.filterwarnings(
        "ignore",
        message=r"Protobuf gencode version .* is exactly one major version older than the runtime version .*",
        category=UserWarning,
        module="google.protobuf",
    )

VERBOSE = _cli_verbose


def log(message, *args, **kwargs):
    if VERBOSE:
        print(message, *args, **kwargs)


import numpy as np
import tensorflow as tf

if _suppress_messages:
    tf.get_logger().setLevel("ERROR")

import PIL.Image
from matplotlib import colormaps

from .evaluator import DETAIL
from .mapping import View
from .scheduler import default_workers, render
from .tensor import render_tensor

from argparse import ArgumentParser

WIDTH = 2560
HEIGHT = 1440
BACKENDS = ("threads", "tensor")


@dataclass
class OutputConfig:
    view: View
    width: int
    height: int
    detail: int
    workers: int
    lock_writes: bool
    backend: str
    colormap: Optional[str]
    image_path: Path
    image_format: str


def build_parser():
    parser = ArgumentParser(description="Render the escape-time fractal to an image file.")

    parser.add_argument('-z', '--zoom', type=float,
                        dest='zoom', help='zoom level in plane units per pixel - default = 0.002',
                        metavar='ZOOM', default=0.002)

    parser.add_argument('-x', '--x-offset', type=float,
                        dest='x_offset', help='x offset from the middle',
                        metavar='X_OFFSET', default=0.0)

    parser.add_argument('-y', '--y-offset', type=float,
                        dest='y_offset', help='y offset from the middle',
                        metavar='Y_OFFSET', default=0.0)

    parser.add_argument('--width', type=int,
                        dest='width', help='canvas width in pixels',
                        metavar='WIDTH', default=WIDTH)

    parser.add_argument('--height', type=int,
                        dest='height', help='canvas height in pixels',
                        metavar='HEIGHT', default=HEIGHT)

    parser.add_argument('--detail', type=int,
                        dest='detail', help='render quality; the iteration bound is 255 * DETAIL',
                        metavar='DETAIL', default=DETAIL)

    parser.add_argument('--workers', type=int,
                        dest='workers', help='number of worker threads (default: one per CPU)',
                        metavar='WORKERS', default=None)

    parser.add_argument('--no-lock', dest='lock_writes', action='store_false',
                        help='Let workers write their columns without taking the canvas lock.')

    parser.add_argument('--backend', choices=BACKENDS, default='threads',
                        help='"threads" renders columns on a thread pool, "tensor" evaluates the whole canvas with TensorFlow.')

    parser.add_argument('--colormap', type=str,
                        dest='colormap', help='matplotlib colormap applied to the gray bands (e.g. "twilight_shifted")',
                        metavar='COLORMAP', default=None)

    parser.add_argument('--output', dest='output', type=str, default='result.png',
                        help='Destination image file. An existing file is replaced.')

    parser.add_argument('--format', type=str,
                        dest='format', help='file format of the output image. Can be any extension supported by Pillow. Default: "png".',
                        metavar='FORMAT', default='png')

    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable verbose logging, including TensorFlow diagnostics.')

    return parser


def resolve_output_config(opt, parser: ArgumentParser) -> OutputConfig:
    for name in ('zoom', 'x_offset', 'y_offset'):
        if not math.isfinite(getattr(opt, name)):
            parser.error(f"--{name.replace('_', '-')} must be a finite number.")
    if opt.zoom == 0.0:
        parser.error("--zoom must be non-zero.")
    if opt.width <= 0 or opt.height <= 0:
        parser.error(f"Canvas dimensions must be positive, got {opt.width}x{opt.height}.")
    if opt.detail < 1:
        parser.error("--detail must be at least 1.")

    workers = opt.workers if opt.workers is not None else default_workers()
    if workers < 1:
        parser.error("--workers must be at least 1.")

    colormap = opt.colormap
    if colormap is not None and colormap not in colormaps:
        parser.error(f"Unknown colormap '{colormap}'.")

    image_format = (getattr(opt, "format", "png") or "png").lower().lstrip(".")
    if not image_format:
        image_format = "png"

    output_arg = opt.output
    if str(output_arg).endswith(tuple(filter(None, {os.sep, os.altsep}))):
        parser.error("--output must be a file path.")
    output_path = Path(output_arg).expanduser()
    if output_path.exists() and output_path.is_dir():
        parser.error("--output must point to a file, not a directory.")
    suffix = output_path.suffix
    expected_suffix = f".{image_format}"
    if suffix:
        if suffix.lower() != expected_suffix.lower():
            parser.error(f"--output extension {suffix} does not match --format {image_format}.")
    else:
        output_path = output_path.with_suffix(expected_suffix)

    return OutputConfig(
        view=View(x_offset=opt.x_offset, y_offset=opt.y_offset, zoom=opt.zoom),
        width=opt.width,
        height=opt.height,
        detail=opt.detail,
        workers=workers,
        lock_writes=bool(opt.lock_writes),
        backend=opt.backend,
        colormap=colormap,
        image_path=output_path.resolve(),
        image_format=image_format,
    )


def _pil_format_name(ext: str) -> str:
    upper = ext.upper()
    if upper == "JPG":
        return "JPEG"
    if upper == "TIF":
        return "TIFF"
    return upper


def _output_mode(output_path: Path) -> int:
    # an overwritten file keeps its mode, a new one gets the usual umask-derived mode
    if output_path.exists():
        return stat.S_IMODE(output_path.stat().st_mode)
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def write_single_image(image: PIL.Image.Image, output_path: Path, image_format: str) -> None:
    """Write ``image`` to ``output_path``, replacing any existing file.

    The image is encoded into a temporary file next to the target and moved
    into place only once encoding succeeded, so a failed write leaves no file
    behind.
    """

    pil_format = _pil_format_name(image_format)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    handle = tempfile.NamedTemporaryFile(
        dir=output_path.parent, prefix=f".{output_path.name}.", suffix=".tmp", delete=False
    )
    try:
        with handle:
            image.save(handle, format=pil_format)
        os.chmod(handle.name, _output_mode(output_path))
        os.replace(handle.name, output_path)
    except BaseException:
        os.unlink(handle.name)
        raise


def colorize(pixels: np.ndarray, name: str) -> np.ndarray:
    """Run the gray bands of ``pixels`` through a matplotlib colormap."""

    cmap = colormaps[name]
    rgba = np.array(cmap(pixels[..., 0] / 255.0), copy=True)
    rgba[..., 3] = 1.0
    return np.uint8(np.clip(rgba * 255, 0, 255))


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    opt = parser.parse_args(argv)

    global VERBOSE
    VERBOSE = bool(opt.verbose)

    config = resolve_output_config(opt, parser)
    view = config.view

    if config.backend == "tensor":
        log("TensorFlow version: %s" % tf.__version__)
        log("rendering {0}x{1} on the CPU".format(config.width, config.height))
        result = render_tensor(view, config.width, config.height, detail=config.detail)
    else:
        log("rendering {0}x{1} with {2} workers{3}".format(
            config.width, config.height, config.workers, "" if config.lock_writes else " (unlocked)"))
        result = render(
            view,
            config.width,
            config.height,
            detail=config.detail,
            workers=config.workers,
            lock_writes=config.lock_writes,
        )
    log("rendered in {0:.2f}s, max iterations {1}".format(result.elapsed, result.max_iterations))

    if config.colormap is not None:
        image = PIL.Image.fromarray(colorize(result.canvas.pixels, config.colormap))
    else:
        image = result.canvas.to_image()

    write_single_image(image, config.image_path, config.image_format)
    log("wrote %s" % config.image_path)
    return 0


if __name__ == '__main__':
    sys.exit(main())
