"""Tests for the ``py-vmm`` command-line entry point."""

import io
from pathlib import Path

import pytest

from py_vmm.cli import EXIT_FAILURE, EXIT_OK, build_logger, build_parser, load_config, main
from py_vmm.config import KernelConfig
from py_vmm.logging import LogLevel

BAD_USAGE = 2


class TestParser:
    """Verify option parsing and configuration layering."""

    def test_defaults(self) -> None:
        """No options give the default configuration."""
        args = build_parser().parse_args([])
        assert load_config(args) == KernelConfig()

    def test_classic_options(self) -> None:
        """The -n, -s, -i and -f options override the defaults."""
        args = build_parser().parse_args(["-n", "5", "-s", "2", "-i", "10", "-f", "run.log"])
        config = load_config(args)
        expected_total = 5
        expected_simul = 2
        expected_interval = 10
        assert config.total_processes == expected_total
        assert config.max_concurrent == expected_simul
        assert config.launch_interval_ms == expected_interval
        assert config.log_file == "run.log"

    def test_extra_options(self) -> None:
        """Seed, time limit and recycling are optional."""
        args = build_parser().parse_args(["--seed", "7", "--time-limit", "2.5", "--recycle-slots"])
        config = load_config(args)
        expected_seed = 7
        assert config.seed == expected_seed
        assert config.wall_clock_limit_s == pytest.approx(2.5)
        assert config.recycle_slots

    def test_options_override_config_file(self, tmp_path: Path) -> None:
        """Command-line values win over the config file."""
        path = tmp_path / "vmm.json"
        path.write_text('{"total_processes": 9, "total_frames": 16}', encoding="utf-8")
        args = build_parser().parse_args(["--config", str(path), "-n", "4"])
        config = load_config(args)
        expected_total = 4
        expected_frames = 16
        assert config.total_processes == expected_total
        assert config.total_frames == expected_frames

    def test_quiet_and_verbose_are_exclusive(self) -> None:
        """-q and -v cannot be combined."""
        with pytest.raises(SystemExit) as exc:
            build_parser().parse_args(["-q", "-v"])
        assert exc.value.code == BAD_USAGE


class TestBuildLogger:
    """Verify console and file wiring."""

    def test_console_and_file(self, tmp_path: Path) -> None:
        """By default INFO goes to the console and everything to the file."""
        config = KernelConfig(log_file=str(tmp_path / "oss.log"))
        stream = io.StringIO()
        logger = build_logger(config, stream=stream)
        logger.debug("trace", source="paging")
        logger.info("created", source="scheduler")
        logger.close()
        assert stream.getvalue() == "[INFO] scheduler: created\n"
        assert "trace" in (tmp_path / "oss.log").read_text(encoding="utf-8")

    def test_verbose_console(self, tmp_path: Path) -> None:
        """Verbose mode shows DEBUG on the console."""
        config = KernelConfig(log_file=str(tmp_path / "oss.log"))
        stream = io.StringIO()
        logger = build_logger(config, verbose=True, stream=stream)
        logger.log(LogLevel.DEBUG, "trace", source="paging")
        logger.close()
        assert "trace" in stream.getvalue()

    def test_quiet_has_no_console(self, tmp_path: Path) -> None:
        """Quiet mode logs to the file only."""
        config = KernelConfig(log_file=str(tmp_path / "oss.log"))
        stream = io.StringIO()
        logger = build_logger(config, quiet=True, stream=stream)
        logger.info("created", source="scheduler")
        logger.close()
        assert stream.getvalue() == ""


class TestMain:
    """Verify whole runs through ``main``."""

    def test_quiet_run_prints_statistics(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        """A small quiet run prints the final statistics and exits 0."""
        log = tmp_path / "oss.log"
        status = main(["-n", "2", "-s", "1", "-i", "1", "-q", "--seed", "1", "--time-limit", "1", "-f", str(log)])
        assert status == EXIT_OK
        out = capsys.readouterr().out
        assert out.startswith("Final Statistics:")
        assert "Starting simulation" in log.read_text(encoding="utf-8")

    def test_invalid_option_value(self) -> None:
        """Concurrency above the table size is a usage error."""
        with pytest.raises(SystemExit) as exc:
            main(["-s", "99"])
        assert exc.value.code == BAD_USAGE

    def test_config_file_with_wrong_type(self, tmp_path: Path) -> None:
        """A config file value of the wrong type is a usage error, not a crash."""
        path = tmp_path / "vmm.json"
        path.write_text('{"max_concurrent": "3"}', encoding="utf-8")
        with pytest.raises(SystemExit) as exc:
            main(["--config", str(path), "-q", "-f", str(tmp_path / "oss.log")])
        assert exc.value.code == BAD_USAGE

    def test_unwritable_log_file(self, tmp_path: Path) -> None:
        """A log file that cannot be opened exits 1."""
        status = main(["-q", "-f", str(tmp_path / "missing" / "oss.log")])
        assert status == EXIT_FAILURE
