import io
import logging

from rich.console import Console
from rich.logging import RichHandler

from ionhost.utils.logging import configure_logging, get_logger


def test_get_logger_nests_under_ionhost():
    assert get_logger().name == "ionhost"
    assert get_logger("cli").name == "ionhost.cli"
    assert get_logger("ionhost.runtime").name == "ionhost.runtime"


def test_configure_logging_replaces_rich_handler():
    buffer = io.StringIO()
    console = Console(file=buffer, width=120)

    configure_logging("debug")
    logger = configure_logging("warning", console=console)

    rich_handlers = [h for h in logger.handlers if isinstance(h, RichHandler)]
    assert len(rich_handlers) == 1
    assert logger.level == logging.WARNING

    get_logger("runtime.channel").warning("Channel read failed: reset")
    get_logger("runtime.channel").info("hidden")
    assert "Channel read failed: reset" in buffer.getvalue()
    assert "hidden" not in buffer.getvalue()


def test_configure_logging_unknown_level_defaults_to_info():
    assert configure_logging("chatty").level == logging.INFO
