"""
P2P Chat - Command line tests.

Created by orpheus497

Tests argument parsing, the non-interactive commands and logging setup.
"""

import logging

import pytest
from rich.console import Console

from p2pchat import __version__, main as cli
from p2pchat.config import Config


@pytest.fixture
def console():
    return Console(record=True, width=120, color_system=None)


@pytest.fixture
def package_logger():
    logger = logging.getLogger("p2pchat")
    handlers = list(logger.handlers)
    level = logger.level
    yield logger
    for handler in logger.handlers[:]:
        if handler not in handlers:
            handler.close()
            logger.removeHandler(handler)
    logger.setLevel(level)


def test_parser_defaults():
    """Test that no arguments means the interactive UI."""
    args = cli.build_parser().parse_args([])
    assert args.join is None
    assert args.port is None
    assert args.addresses is False
    assert args.show_code is None


def test_parser_options():
    """Test the options that take values."""
    args = cli.build_parser().parse_args(
        ["--port", "5000", "--join", "[::1]:5000", "--data-dir", "/tmp/x", "--debug"]
    )
    assert args.port == 5000
    assert args.join == "[::1]:5000"
    assert args.data_dir == "/tmp/x"
    assert args.debug is True


def test_version(capsys):
    """Test that --version prints and exits."""
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["--version"])
    assert exc_info.value.code == 0
    assert __version__ in capsys.readouterr().out


def test_print_join_code(console, sample_peer):
    """Test that a join code and QR are printed."""
    assert cli.print_join_code(console, sample_peer['address'], str(sample_peer['port'])) == 0

    output = console.export_text()
    assert sample_peer['code'] in output
    assert "█" in output


def test_print_join_code_bad_address(console):
    """Test that an invalid address is reported."""
    assert cli.print_join_code(console, "192.168.1.1", "5000") == 2
    assert "Cannot build join code" in console.export_text()


def test_print_join_code_bad_port(console):
    """Test that a non-numeric port is reported."""
    assert cli.print_join_code(console, "::1", "http") == 2


def test_print_addresses(console, monkeypatch):
    """Test the address table."""
    monkeypatch.setattr(cli, "get_local_ipv6_addresses", lambda: ["2606:4700::1111"])
    assert cli.print_addresses(console) == 0
    assert "2606:4700::1111" in console.export_text()


def test_print_addresses_none(console, monkeypatch):
    """Test the message for hosts without IPv6."""
    monkeypatch.setattr(cli, "get_local_ipv6_addresses", lambda: [])
    assert cli.print_addresses(console) == 1
    assert "No routable IPv6 address" in console.export_text()


def test_setup_logging_file(temp_dir, package_logger):
    """Test that file logging writes under the logs directory."""
    config = Config(temp_dir / "config.toml")

    logger = cli.setup_logging(config, temp_dir)
    logger.info("hello log")
    for handler in logger.handlers:
        handler.flush()

    log_file = temp_dir / "logs" / "p2pchat.log"
    assert log_file.exists()
    assert "hello log" in log_file.read_text()
    assert logger.level == logging.INFO


def test_setup_logging_debug(temp_dir, package_logger):
    """Test that --debug forces DEBUG and file logging can be off."""
    config = Config(temp_dir / "config.toml")
    config.set("logging", "file_logging", False)

    logger = cli.setup_logging(config, temp_dir, debug=True)

    assert logger.level == logging.DEBUG
    assert not (temp_dir / "logs").exists()


def test_main_bad_config(temp_dir, capsys):
    """Test that a broken config file exits with an error."""
    (temp_dir / "config.toml").write_text("[network\n")

    assert cli.main(["--data-dir", str(temp_dir)]) == 1
    assert "E704" in capsys.readouterr().out
