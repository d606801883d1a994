from __future__ import annotations

import argparse
import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path

from pydantic import ValidationError
from rich.console import Console
from rich.progress import Progress, TaskID
from rich.table import Table

from gif2gif.architecture import infer_ngf, missing_tensors
from gif2gif.backends import TorchTensorMath
from gif2gif.errors import DecodeError, FetchError, ShapeError
from gif2gif.fetchers import UrlWeightFetcher
from gif2gif.gif_io import GifFrameDecoder, GifFrameEncoder
from gif2gif.models import WeightMap
from gif2gif.pipeline import process_all
from gif2gif.settings import DEFAULT_MODEL_SOURCE, FRAME_DELAY_MS, Settings
from gif2gif.tensor_utils import load_state_dict
from gif2gif.weight_store import WeightStore
from gif2gif.weights import pack_weights


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    # SUPPRESS keeps a subcommand default from overwriting a global --verbose.
    common.add_argument(
        "--verbose",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Log progress to stdout",
    )

    parser = argparse.ArgumentParser(
        prog="gif2gif", description="gif2gif CLI", parents=[common]
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser(
        "run", help="Translate every frame of an animated GIF", parents=[common]
    )
    run.add_argument("input", type=str, help="Input GIF path or URL")
    run.add_argument("output", type=str, help="Path of the generated GIF")
    run.add_argument(
        "--model",
        type=str,
        default=DEFAULT_MODEL_SOURCE,
        help=f"Weight file path or URL (default: {DEFAULT_MODEL_SOURCE})",
    )
    run.add_argument(
        "--delay",
        type=int,
        default=FRAME_DELAY_MS,
        help=f"Per-frame delay in milliseconds (default: {FRAME_DELAY_MS})",
    )
    run.add_argument(
        "--device", type=str, default="cpu", help="Torch device (default: cpu)"
    )
    run.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Network timeout in seconds (default: 30)",
    )

    inspect = subparsers.add_parser(
        "inspect", help="List the tensors of a weight file", parents=[common]
    )
    inspect.add_argument("weights", type=str, help="Weight file path or URL")

    pack = subparsers.add_parser(
        "pack",
        help="Quantize a .pth state dict into a weight file",
        parents=[common],
    )
    pack.add_argument("checkpoint", type=str, help="Path to the .pth state dict")
    pack.add_argument("output", type=str, help="Path of the weight file to write")
    pack.add_argument(
        "--levels",
        type=int,
        default=256,
        help="Codebook entries, at most 256 (default: 256)",
    )
    return parser


async def _translate(
    settings: Settings, input_source: str, output_path: Path, console: Console
) -> int:
    fetcher = UrlWeightFetcher(timeout=settings.fetch_timeout)
    store = WeightStore(fetcher)
    math = TorchTensorMath(settings.device)

    data = await fetcher.fetch(input_source)
    frames = GifFrameDecoder(settings.frame_size).decode(data)
    if not frames:
        console.print(f"No frames found in {input_source}.")
        return 1

    with Progress(console=console, transient=True) as progress:
        download: TaskID = progress.add_task("Loading weights", total=None)
        frame_task: TaskID = progress.add_task("Frames", total=len(frames))

        def _on_bytes(loaded: int, total: int | None) -> None:
            progress.update(download, completed=loaded, total=total)

        def _on_frame(done: int, total: int) -> None:
            progress.update(frame_task, completed=done, total=total)

        outputs = await process_all(
            frames,
            settings.model_source,
            store=store,
            math=math,
            progress=_on_bytes,
            on_frame=_on_frame,
        )

    GifFrameEncoder().encode(
        outputs, settings.frame_delay_ms, on_finished=output_path.write_bytes
    )
    console.print(f"Wrote {len(outputs)} frames to {output_path}")
    return 0


def _run_translate(args: argparse.Namespace, *, console: Console) -> int:
    try:
        settings = Settings(
            model_source=args.model,
            frame_delay_ms=args.delay,
            device=args.device,
            fetch_timeout=args.timeout,
        )
    except ValidationError as exc:
        console.print(f"Invalid options: {exc}")
        return 2

    try:
        return asyncio.run(
            _translate(settings, args.input, Path(args.output), console)
        )
    except FetchError as exc:
        console.print(f"Fetch failed: {exc}")
        return 2
    except DecodeError as exc:
        console.print(f"Weight file is corrupt: {exc}")
        return 1
    except (ShapeError, ValueError) as exc:
        console.print(f"Translation aborted: {exc}")
        return 1


def _render_weights(console: Console, weights: WeightMap) -> None:
    table = Table(title=f"Tensors in {weights.source}")
    table.add_column("Tensor", style="bold")
    table.add_column("Shape")
    table.add_column("Params", justify="right")
    for name, values in weights.items():
        table.add_row(name, str(tuple(values.shape)), f"{values.size:,}")
    console.print(table)
    console.print(f"tensor_count: {len(weights)}  total_params: {weights.total_params:,}")


def _run_inspect(source: str, *, console: Console) -> int:
    store = WeightStore()
    try:
        weights = asyncio.run(store.get_weights(source))
    except FetchError as exc:
        console.print(f"Fetch failed: {exc}")
        return 2
    except DecodeError as exc:
        console.print(f"Weight file is corrupt: {exc}")
        return 1

    _render_weights(console, weights)
    problems = missing_tensors(weights)
    if problems:
        console.print(f"[red]Generator mismatch ({len(problems)})[/red]")
        for problem in problems:
            console.print(f"  {problem}")
        return 1
    console.print(f"Generator architecture: ok (ngf={infer_ngf(weights)})")
    return 0


def _run_pack(
    checkpoint: Path, output: Path, levels: int, *, console: Console
) -> int:
    try:
        arrays = load_state_dict(checkpoint)
    except FileNotFoundError:
        console.print(f"Checkpoint not found: {checkpoint}")
        return 2
    except TypeError as exc:
        console.print(str(exc))
        return 1

    try:
        payload = pack_weights(arrays, levels=levels)
    except ValueError as exc:
        console.print(str(exc))
        return 1
    output.write_bytes(payload)
    console.print(
        f"Packed {len(arrays)} tensors into {output} ({len(payload):,} bytes)"
    )
    return 0


def run_cli(
    argv: Sequence[str] | None = None, *, console: Console | None = None
) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    verbose = getattr(args, "verbose", False)
    logging.getLogger().setLevel(logging.INFO if verbose else logging.ERROR)
    out_console = console or Console()

    if args.command == "run":
        return _run_translate(args, console=out_console)
    if args.command == "inspect":
        return _run_inspect(args.weights, console=out_console)
    if args.command == "pack":
        return _run_pack(
            Path(args.checkpoint),
            Path(args.output),
            args.levels,
            console=out_console,
        )
    parser.error("Unknown command.")
    return 2


def main() -> None:
    raise SystemExit(run_cli())
