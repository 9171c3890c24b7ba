import json
import logging

from sketchboard.core.request_context import (
    get_grammar_id,
    get_panel_number,
    get_session_id,
)
from sketchboard.core.settings import settings


class SessionContextFilter(logging.Filter):
    """Populate structured log records with the active session and panel."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = get_session_id() or "unknown"
        record.panel_number = get_panel_number()
        record.grammar_id = get_grammar_id() or ""
        return True


class StructuredJsonFormatter(logging.Formatter):
    """Emit log records as JSON with consistent fields."""

    _SKIP_FIELDS = {
        "args",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
        "session_id",
        "panel_number",
        "grammar_id",
    }

    def format(self, record: logging.LogRecord) -> str:
        log_payload: dict[str, object | None] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "session_id": getattr(record, "session_id", "unknown"),
        }
        panel_number = getattr(record, "panel_number", None)
        if panel_number is not None:
            log_payload["panel_number"] = panel_number
        grammar_id = getattr(record, "grammar_id", None)
        if grammar_id:
            log_payload["grammar_id"] = grammar_id
        log_payload.update(self._extract_extra(record))
        if record.exc_info:
            log_payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            log_payload["stack_info"] = record.stack_info
        try:
            return json.dumps(log_payload, default=str)
        except (TypeError, ValueError):
            return super().format(record)

    def _extract_extra(self, record: logging.LogRecord) -> dict[str, object]:
        extras: dict[str, object] = {}
        for key, value in record.__dict__.items():
            if key in self._SKIP_FIELDS or key.startswith("_"):
                continue
            if value is None:
                continue
            extras[key] = value
        return extras


def configure_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """Install the session filter and formatter on the root logger.

    Called by the surrounding application; library code only uses module loggers.
    """
    level_name = (level or settings.log_level).upper()
    use_json = settings.log_json if json_output is None else json_output

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    if use_json:
        formatter: logging.Formatter = StructuredJsonFormatter(datefmt="%Y-%m-%dT%H:%M:%S%z")
    else:
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s [session=%(session_id)s] %(message)s"
        )

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    stream_handler.addFilter(SessionContextFilter())
    root_logger.addHandler(stream_handler)

    # google-genai and httpx are chatty at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("google_genai").setLevel(logging.WARNING)
