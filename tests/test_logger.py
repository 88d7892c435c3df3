import logging
from pathlib import Path

from spend_categorizer.logger import LOG_FILENAME, ColourizedFormatter, get_logging_config


def _record(msg: str, level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord("spend_categorizer.test", level, __file__, 1, msg, None, None)


def test_formatter_colours_level_and_tag() -> None:
    formatter = ColourizedFormatter(fmt="%(levelname)s %(message)s", use_colors=True)
    record = _record("[TRAIN] Complete")

    output = formatter.format(record)

    assert f"{ColourizedFormatter.GREEN}INFO{ColourizedFormatter.RESET}" in output
    assert f"{ColourizedFormatter.CYAN}[TRAIN]{ColourizedFormatter.RESET} Complete" in output
    # The shared record is restored for other handlers
    assert record.levelname == "INFO"
    assert record.msg == "[TRAIN] Complete"


def test_formatter_without_colours() -> None:
    formatter = ColourizedFormatter(fmt="%(levelname)s %(message)s", use_colors=False)

    assert formatter.format(_record("[ENV] ok", logging.WARNING)) == "WARNING [ENV] ok"


def test_logging_config_file_handler(tmp_path: Path) -> None:
    config = get_logging_config(level="debug", log_dir=str(tmp_path / "logs"))

    assert config["loggers"][""]["level"] == "DEBUG"
    assert config["loggers"][""]["handlers"] == ["console", "file"]
    assert config["handlers"]["file"]["filename"] == str(tmp_path / "logs" / LOG_FILENAME)
    assert (tmp_path / "logs").is_dir()


def test_logging_config_console_only(monkeypatch) -> None:
    monkeypatch.delenv("LOG_DIR", raising=False)

    config = get_logging_config(level="INFO")

    assert "file" not in config["handlers"]
