from pathlib import Path

import pytest

from nool.__main__ import main
from nool.common import VERSION


def test_expected_error_goes_to_stderr(
    isolated_dir: Path,
    local_root: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    path = isolated_dir / "config.toml"
    path.write_text(f'state_dir = "{isolated_dir / "state"}"\nroot_dir = "{local_root}"\n')
    monkeypatch.setattr("sys.argv", ["nool", "--config", str(path), "reset"])

    with pytest.raises(SystemExit) as exc:
        main()
    assert exc.value.code == 1
    out, err = capsys.readouterr()
    assert out == ""
    assert "nool.cli.CliExpectedError: reset only applies to the virtual tree: pass --virtual\n" in err


def test_success_exits_cleanly(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.setattr("sys.argv", ["nool", "version"])
    with pytest.raises(SystemExit) as exc:
        main()
    assert exc.value.code == 0
    assert capsys.readouterr().out.strip() == VERSION
