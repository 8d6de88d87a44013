import logging
from typing import Union

from pythonjsonlogger.json import JsonFormatter


class WorkspaceLogFilter(logging.Filter):
    """
    Ensures every record carries ``workspace_id`` and ``agent_name``.

    Records from third-party libraries (aiohttp, redis) have neither; they are
    labelled "-" and "System" so the format string never fails.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "workspace_id", None) is None:
            record.workspace_id = "-"
        if getattr(record, "agent_name", None) is None:
            record.agent_name = "System"
        if not record.name or record.name == "root":
            record.name = "DefaultLogger"
        return True


def configure_logging(
    level: Union[int, str] = logging.INFO,
    json_output: bool = False,
    clear_existing_handlers: bool = True,
) -> None:
    """
    Install a console handler on the root logger.

    Args:
        level: Root logger level (name or number)
        json_output: Emit one JSON object per line instead of plain text
        clear_existing_handlers: Remove handlers already on the root logger to
            avoid duplicate output when called twice
    """
    root_logger = logging.getLogger()

    if clear_existing_handlers:
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()

    stream_handler = logging.StreamHandler()
    if json_output:
        formatter = JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(workspace_id)s %(agent_name)s %(message)s",
            rename_fields={"levelname": "level", "asctime": "time"},
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(levelname)s - [%(name)s] [%(workspace_id)s] [%(agent_name)s] %(message)s"
        )
    stream_handler.setFormatter(formatter)
    stream_handler.addFilter(WorkspaceLogFilter())

    root_logger.addHandler(stream_handler)
    root_logger.setLevel(level.upper() if isinstance(level, str) else level)

    logging.getLogger(__name__).info(
        f"Logging configured (level={logging.getLevelName(root_logger.level)}, json={json_output})"
    )
