import argparse

import pytest

import monclissh


@pytest.mark.parametrize("text, seconds", [
    ("2", 2.0),
    ("2s", 2.0),
    ("1.5s", 1.5),
    ("500ms", 0.5),
    ("1m", 60.0),
])
def test_parse_duration(text, seconds):
    assert monclissh.parse_duration(text) == pytest.approx(seconds)


@pytest.mark.parametrize("text", ["", "fast", "0", "0ms", "-1s", "2h"])
def test_parse_duration_rejects(text):
    with pytest.raises(argparse.ArgumentTypeError):
        monclissh.parse_duration(text)


def test_defaults():
    args = monclissh.build_parser().parse_args([])
    assert args.interval == 2.0
    assert args.debug is False
    assert args.config == "configs/hosts.yaml"
    assert args.command_timeout is None
    assert args.max_sessions is None
    assert args.clear_stale is False


def test_flags():
    args = monclissh.build_parser().parse_args(
        ["-t", "500ms", "--debug", "--max-sessions", "4", "--command-timeout", "3s"])
    assert args.interval == pytest.approx(0.5)
    assert args.debug is True
    assert args.max_sessions == 4
    assert args.command_timeout == 3.0


def test_config_error_is_fatal(tmp_path, capsys):
    code = monclissh.main(["--config", str(tmp_path / "missing.yaml")])
    assert code == 1
    assert "Error loading configuration" in capsys.readouterr().err
