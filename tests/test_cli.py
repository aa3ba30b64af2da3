from __future__ import annotations

import io
import json
import logging
from pathlib import Path
from typing import Any, Iterator

import pytest

from php_startup_optimizer import StaticProbe
from php_startup_optimizer import optimizer as optimizer_module
from phpopt import cli


class _ProbeFactory:
    def __init__(self, probe: StaticProbe) -> None:
        self.probe = probe
        self.kwargs: dict[str, Any] = {}

    def __call__(self, **kwargs: Any) -> StaticProbe:
        self.kwargs = kwargs
        return self.probe


def _full_probe() -> StaticProbe:
    return StaticProbe(
        php_version="8.3.4",
        extensions={"Zend OPcache"},
        ini={"opcache.jit": "tracing"},
    )


@pytest.fixture(autouse=True)
def _reset_logger(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.delenv("PHP_BINARY", raising=False)
    logger = logging.getLogger("php_startup_optimizer")
    saved = (logger.level, list(logger.handlers), logger.propagate)
    yield
    logger.setLevel(saved[0])
    logger.handlers[:] = saved[1]
    logger.propagate = saved[2]


@pytest.fixture
def factory(monkeypatch: pytest.MonkeyPatch) -> _ProbeFactory:
    probe_factory = _ProbeFactory(_full_probe())
    monkeypatch.setattr(optimizer_module, "PhpBinaryProbe", probe_factory)
    return probe_factory


def test_cli_params_shell(factory: _ProbeFactory, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["params"])
    output = capsys.readouterr().out.strip()

    assert code == 0
    assert output.startswith("-d opcache.enable_cli=1 -d opcache.max_accelerated_files=50000")
    assert output.endswith("-d opcache.jit_hot_side_exit=127")
    assert "opcache.jit_buffer_size=100M" in output
    assert factory.kwargs == {"php_binary": "php", "timeout_seconds": 10}


def test_cli_params_json_without_jit(factory: _ProbeFactory, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["params", "--no-jit", "--format", "json"])
    flags = json.loads(capsys.readouterr().out)

    assert code == 0
    assert len(flags) == 12
    assert "opcache.jit=tracing" not in flags


def test_cli_params_no_opcache_prints_nothing(factory: _ProbeFactory, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["params", "--no-opcache"])

    assert code == 0
    assert capsys.readouterr().out == ""


def test_cli_jit_custom_buffer_lines(factory: _ProbeFactory, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["jit", "--jit-buffer-size", "200M", "--format", "lines"])
    lines = capsys.readouterr().out.splitlines()

    assert code == 0
    assert lines[:2] == ["-d", "opcache.jit=tracing"]
    assert "opcache.jit_buffer_size=200M" in lines


def test_cli_opcache_only(factory: _ProbeFactory, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["opcache", "--format", "json"])
    flags = json.loads(capsys.readouterr().out)

    assert code == 0
    assert flags[1] == "opcache.enable_cli=1"
    assert len(flags) == 12


def test_cli_global_binary_and_timeout(factory: _ProbeFactory, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["--php", "/usr/bin/php8.2", "--timeout-seconds", "4", "opcache"])

    assert code == 0
    assert factory.kwargs == {"php_binary": "/usr/bin/php8.2", "timeout_seconds": 4}


def test_cli_config_file(
    factory: _ProbeFactory,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    config = tmp_path / "phpopt.toml"
    config.write_text(
        '[optimizer]\nphp_binary = "php8.1"\nenable_jit = false\n',
        encoding="utf-8",
    )

    code = cli.main(["--config", str(config), "params", "--format", "json"])
    flags = json.loads(capsys.readouterr().out)

    assert code == 0
    assert factory.kwargs["php_binary"] == "php8.1"
    assert "opcache.jit=tracing" not in flags


def test_cli_bad_config_reports_error(
    factory: _ProbeFactory,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    config = tmp_path / "phpopt.toml"
    config.write_text("[optimizer]\nbogus = 1\n", encoding="utf-8")

    code = cli.main(["--config", str(config), "status"])
    output = capsys.readouterr().out

    assert code == 2
    assert "Unknown settings key" in output


def test_cli_status_table(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.setattr(optimizer_module, "PhpBinaryProbe", _ProbeFactory(StaticProbe(php_version="8.2.1")))

    code = cli.main(["status"])
    output = capsys.readouterr().out

    assert code == 0
    assert "PHP 8.2.1" in output
    assert "OPcache extension not loaded" in output
    assert "JIT requires OPcache to be enabled" in output


def test_cli_status_json(factory: _ProbeFactory, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["status", "--json"])
    payload = json.loads(capsys.readouterr().out)

    assert code == 0
    assert payload == {"opcache": True, "jit": True, "php_version": "8.3.4", "reasons": {}}


def test_cli_verbose_enables_debug_logging(factory: _ProbeFactory, capsys: pytest.CaptureFixture[str]) -> None:
    cli.main(["-v", "status", "--json"])

    assert logging.getLogger("php_startup_optimizer").level == logging.DEBUG


def test_cli_subcommand_help(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["params", "--help"])
    output = capsys.readouterr().out
    assert exc.value.code == 0
    assert "Leave out JIT flags." in output


def test_cli_top_level_help_examples(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["--help"])
    output = capsys.readouterr().out
    assert exc.value.code == 0
    assert "Quick Examples:" in output
    assert "phpopt params --no-jit" in output
    assert "Binary Selection:" in output


def test_cli_unknown_format_exits_2(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["params", "--format", "xml"])
    assert exc.value.code == 2
    assert "Error:" in capsys.readouterr().out


def test_cli_print_help_writes_to_requested_stream(capsys: pytest.CaptureFixture[str]) -> None:
    parser = cli.build_parser()
    buffer = io.StringIO()
    parser.print_help(file=buffer)
    output = capsys.readouterr().out
    assert output == ""
    help_text = buffer.getvalue()
    assert "Usage:" in help_text
    assert "php-startup-optimizer CLI" in help_text


def test_cli_php_help_lists_config_before_env(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit):
        cli.main(["--help"])
    output = capsys.readouterr().out
    assert "Default: the config file, then $PHP_BINARY" in output
