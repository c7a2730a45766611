import numpy as np
import pytest
from PIL import Image

from hdr_pipeline.scripts import hdr_merge


def _write(path, value, size=(12, 10)):
    Image.fromarray(np.full((size[1], size[0], 3), value, dtype=np.uint8)).save(path)
    return str(path)


def test_low_mid_high_flags(tmp_path, capsys):
    low = _write(tmp_path / "low.png", 50)
    mid = _write(tmp_path / "mid.png", 128)
    high = _write(tmp_path / "high.png", 200)
    out = tmp_path / "out" / "hdr.png"

    code = hdr_merge.main(["--low", low, "--mid", mid, "--high", high, "--output", str(out), "--exactly-three"])

    assert code == 0
    with Image.open(out) as img:
        assert img.size == (12, 10)
    assert "successfully saved" in capsys.readouterr().out


def test_positional_inputs_with_drago(tmp_path):
    paths = [_write(tmp_path / f"{v}.png", v) for v in (40, 220)]
    out = tmp_path / "drago.jpg"
    code = hdr_merge.main(paths + ["--output", str(out), "--tonemapper", "drago", "--align", "none", "--workers", "2"])
    assert code == 0
    assert out.exists()


def test_unknown_tonemapper_reports_error(tmp_path, capsys):
    paths = [_write(tmp_path / f"{v}.png", v) for v in (40, 220)]
    code = hdr_merge.main(paths + ["--output", str(tmp_path / "x.png"), "--tonemapper", "mantiuk06"])
    assert code == 1
    assert "unsupported tone mapper" in capsys.readouterr().err
    assert not (tmp_path / "x.png").exists()


def test_mismatched_sizes_fall_back_then_fail_validation(tmp_path, capsys):
    a = _write(tmp_path / "a.png", 60, size=(12, 10))
    b = _write(tmp_path / "b.png", 180, size=(10, 10))
    code = hdr_merge.main([a, b, "--output", str(tmp_path / "x.png")])
    assert code == 1
    assert "expected 12x10" in capsys.readouterr().err


def test_exactly_three_policy(tmp_path, capsys):
    paths = [_write(tmp_path / f"{v}.png", v) for v in (40, 220)]
    code = hdr_merge.main(paths + ["--output", str(tmp_path / "x.png"), "--exactly-three"])
    assert code == 1
    assert "exactly 3" in capsys.readouterr().err


@pytest.mark.parametrize("count", [0, 1])
def test_too_few_inputs_skip_alignment(tmp_path, capsys, caplog, count):
    paths = [_write(tmp_path / f"{v}.png", v) for v in (40, 220)][:count]
    code = hdr_merge.main(paths + ["--output", str(tmp_path / "x.png")])
    assert code == 1
    assert "at least 2 exposures" in capsys.readouterr().err
    assert "unaligned" not in caplog.text
