from __future__ import annotations

import io
import logging
from collections import OrderedDict
from collections.abc import Callable
from pathlib import Path

import numpy as np
import torch
from PIL import Image
from rich.console import Console

from gif2gif.cli import run_cli
from gif2gif.weights import decode_weight_file, pack_weights

GeneratorFactory = Callable[..., dict[str, np.ndarray]]


def _console() -> Console:
    return Console(
        record=True,
        force_terminal=False,
        color_system=None,
        width=160,
    )


def _write_gif(path: Path, frames: int = 2) -> Path:
    images = [
        Image.new("RGB", (32, 32), (40 * index, 0, 255 - 40 * index))
        for index in range(frames)
    ]
    images[0].save(path, format="GIF", save_all=True, append_images=images[1:])
    return path


def _write_model(tmp_path: Path, make_generator: GeneratorFactory) -> Path:
    path = tmp_path / "model.pict"
    path.write_bytes(pack_weights(make_generator("random", ngf=1, seed=0)))
    return path


def test_cli_run_happy_path(tmp_path: Path, make_generator: GeneratorFactory) -> None:
    model = _write_model(tmp_path, make_generator)
    source = _write_gif(tmp_path / "in.gif", frames=3)
    output = tmp_path / "out.gif"
    console = _console()

    exit_code = run_cli(
        ["run", str(source), str(output), "--model", str(model), "--delay", "120"],
        console=console,
    )

    assert exit_code == 0
    assert "Wrote 3 frames" in console.export_text()
    with Image.open(io.BytesIO(output.read_bytes())) as image:
        assert image.size == (256, 256)
        assert image.info["duration"] == 120


def test_cli_run_missing_model(tmp_path: Path) -> None:
    source = _write_gif(tmp_path / "in.gif")
    console = _console()

    exit_code = run_cli(
        [
            "run",
            str(source),
            str(tmp_path / "out.gif"),
            "--model",
            str(tmp_path / "absent.pict"),
        ],
        console=console,
    )

    assert exit_code == 2
    assert "Fetch failed" in console.export_text()
    assert not (tmp_path / "out.gif").exists()


def test_cli_run_corrupt_model(tmp_path: Path) -> None:
    model = tmp_path / "corrupt.pict"
    model.write_bytes(b"\x00\x00\x10\x00tiny")
    source = _write_gif(tmp_path / "in.gif")
    console = _console()

    exit_code = run_cli(
        ["run", str(source), str(tmp_path / "out.gif"), "--model", str(model)],
        console=console,
    )

    assert exit_code == 1
    assert "corrupt" in console.export_text()


def test_cli_run_rejects_bad_delay(tmp_path: Path) -> None:
    console = _console()

    exit_code = run_cli(
        ["run", "in.gif", str(tmp_path / "out.gif"), "--delay", "0"],
        console=console,
    )

    assert exit_code == 2
    assert "Invalid options" in console.export_text()


def test_cli_inspect_lists_tensors(
    tmp_path: Path, make_generator: GeneratorFactory
) -> None:
    model = _write_model(tmp_path, make_generator)
    console = _console()

    exit_code = run_cli(["inspect", str(model)], console=console)

    output = console.export_text()
    assert exit_code == 0
    assert "generator/encoder_1/conv2d/kernel" in output
    assert "Generator architecture: ok (ngf=1)" in output


def test_cli_inspect_flags_foreign_weights(tmp_path: Path) -> None:
    model = tmp_path / "other.pict"
    model.write_bytes(pack_weights({"w": np.ones(3, dtype=np.float32)}))
    console = _console()

    exit_code = run_cli(["inspect", str(model)], console=console)

    assert exit_code == 1
    assert "Generator mismatch" in console.export_text()


def test_cli_pack_writes_weight_file(tmp_path: Path) -> None:
    state: OrderedDict[str, torch.Tensor] = OrderedDict(
        kernel=torch.zeros((4, 4, 3, 2), dtype=torch.float32),
        bias=torch.ones(2, dtype=torch.float64),
    )
    checkpoint = tmp_path / "model.pth"
    torch.save(state, checkpoint)
    output = tmp_path / "model.pict"
    console = _console()

    exit_code = run_cli(
        ["pack", str(checkpoint), str(output), "--levels", "16"], console=console
    )

    assert exit_code == 0
    assert "Packed 2 tensors" in console.export_text()
    weights = decode_weight_file(output.read_bytes())
    assert list(weights) == ["kernel", "bias"]
    np.testing.assert_array_equal(weights["bias"], [1.0, 1.0])


def test_cli_pack_missing_checkpoint(tmp_path: Path) -> None:
    console = _console()

    exit_code = run_cli(
        ["pack", str(tmp_path / "absent.pth"), str(tmp_path / "out.pict")],
        console=console,
    )

    assert exit_code == 2
    assert "Checkpoint not found" in console.export_text()


def test_cli_run_accepts_verbose_after_subcommand(
    tmp_path: Path, make_generator: GeneratorFactory
) -> None:
    model = _write_model(tmp_path, make_generator)
    source = _write_gif(tmp_path / "in.gif")
    output = tmp_path / "out.gif"

    exit_code = run_cli(
        ["run", str(source), str(output), "--model", str(model), "--verbose"],
        console=_console(),
    )

    assert exit_code == 0
    assert logging.getLogger().level == logging.INFO
    assert output.exists()


def test_cli_verbose_before_subcommand_is_kept(
    tmp_path: Path, make_generator: GeneratorFactory
) -> None:
    model = _write_model(tmp_path, make_generator)

    exit_code = run_cli(["--verbose", "inspect", str(model)], console=_console())

    assert exit_code == 0
    assert logging.getLogger().level == logging.INFO


def test_cli_defaults_to_quiet_logging(
    tmp_path: Path, make_generator: GeneratorFactory
) -> None:
    model = _write_model(tmp_path, make_generator)

    exit_code = run_cli(["inspect", str(model)], console=_console())

    assert exit_code == 0
    assert logging.getLogger().level == logging.ERROR
