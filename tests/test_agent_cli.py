import pytest

from metrical.agent_cli import (
    UsageError,
    build_config,
    get_env_int_or_default,
    get_env_or_default,
    get_final_int_value,
    get_final_value,
    main,
)
from metrical.agent_config import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_REPORT_INTERVAL,
    DEFAULT_SERVER_URL,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ("ADDRESS", "POLL_INTERVAL", "REPORT_INTERVAL"):
        monkeypatch.delenv(key, raising=False)


@pytest.mark.parametrize(
    "args, url, poll, report",
    [
        ([], DEFAULT_SERVER_URL, DEFAULT_POLL_INTERVAL, DEFAULT_REPORT_INTERVAL),
        (
            ["-a", "http://example.com:9090"],
            "http://example.com:9090",
            DEFAULT_POLL_INTERVAL,
            DEFAULT_REPORT_INTERVAL,
        ),
        (["-p", "5"], DEFAULT_SERVER_URL, 5, DEFAULT_REPORT_INTERVAL),
        (["-r", "15"], DEFAULT_SERVER_URL, DEFAULT_POLL_INTERVAL, 15),
        (
            ["-a", "http://test.com:8080", "-p", "3", "-r", "20"],
            "http://test.com:8080",
            3,
            20,
        ),
    ],
)
def test_flags(args, url, poll, report):
    config = build_config(args)
    assert config.server_url == url
    assert config.poll_interval == poll
    assert config.report_interval == report
    assert config.verbose_logging is False


def test_verbose_flag():
    config = build_config(["-v"])
    assert config.verbose_logging is True
    assert config.server_url == DEFAULT_SERVER_URL


def test_unknown_argument():
    with pytest.raises(UsageError) as excinfo:
        build_config(["unknown"])
    assert str(excinfo.value) == "unknown arguments: [unknown]"


def test_multiple_unknown_arguments():
    with pytest.raises(UsageError) as excinfo:
        build_config(["-a", "localhost:8080", "x", "y"])
    assert str(excinfo.value) == "unknown arguments: [x y]"


@pytest.mark.parametrize(
    "args, reason",
    [
        (["-p", "-1"], "poll interval must be positive"),
        (["-r", "0"], "report interval must be positive"),
    ],
)
def test_invalid_intervals(args, reason):
    with pytest.raises(UsageError) as excinfo:
        build_config(args)
    assert str(excinfo.value) == f"invalid configuration: {reason}"


def test_non_integer_interval():
    with pytest.raises(UsageError):
        build_config(["-p", "abc"])


def test_help(capsys):
    with pytest.raises(SystemExit) as excinfo:
        build_config(["--help"])
    assert excinfo.value.code == 0
    assert "Poll interval in seconds" in capsys.readouterr().out


def test_env_overrides_flag(monkeypatch):
    monkeypatch.setenv("ADDRESS", "http://env-host:7070")
    monkeypatch.setenv("REPORT_INTERVAL", "30")
    config = build_config(["-a", "http://flag-host:9090", "-r", "5"])
    assert config.server_url == "http://env-host:7070"
    assert config.report_interval == 30


def test_invalid_env_int_falls_back_to_flag(monkeypatch):
    monkeypatch.setenv("POLL_INTERVAL", "fast")
    assert build_config(["-p", "4"]).poll_interval == 4


def test_get_env_or_default(monkeypatch):
    assert get_env_or_default("ADDRESS", "fallback") == "fallback"
    monkeypatch.setenv("ADDRESS", "")
    assert get_env_or_default("ADDRESS", "fallback") == ""


def test_get_env_int_or_default(monkeypatch):
    assert get_env_int_or_default("POLL_INTERVAL", 2) == 2
    monkeypatch.setenv("POLL_INTERVAL", "7")
    assert get_env_int_or_default("POLL_INTERVAL", 2) == 7
    monkeypatch.setenv("POLL_INTERVAL", "seven")
    assert get_env_int_or_default("POLL_INTERVAL", 2) == 2


def test_get_final_value(monkeypatch):
    assert get_final_value("ADDRESS", "custom", "default") == "custom"
    assert get_final_value("ADDRESS", "", "default") == "default"
    assert get_final_value("ADDRESS", "default", "default") == "default"
    monkeypatch.setenv("ADDRESS", "env")
    assert get_final_value("ADDRESS", "custom", "default") == "env"


def test_get_final_int_value(monkeypatch):
    assert get_final_int_value("POLL_INTERVAL", 5, 2) == 5
    assert get_final_int_value("POLL_INTERVAL", 2, 2) == 2
    monkeypatch.setenv("POLL_INTERVAL", "9")
    assert get_final_int_value("POLL_INTERVAL", 5, 2) == 9
    monkeypatch.setenv("POLL_INTERVAL", "bad")
    assert get_final_int_value("POLL_INTERVAL", 5, 2) == 5


def test_main_returns_error_for_bad_arguments():
    assert main(["unknown"]) == 1


def test_main_returns_error_for_invalid_config():
    assert main(["-r", "0"]) == 1