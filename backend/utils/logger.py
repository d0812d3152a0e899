import logging
import sys
import json
from datetime import datetime, timezone
from pathlib import Path

# Default logs directory at the repository root
LOG_DIR = Path(__file__).parent.parent.parent / 'logs'
LOG_FILE = 'prospect_research.json.log'

# Engine modules log through the standard library under this prefix
ENGINE_LOGGER = 'src.intelligence'

# Extra attributes copied into the JSON record when present
CONTEXT_FIELDS = ('job_id', 'task_id', 'source', 'state')


class JsonFormatter(logging.Formatter):
    """One JSON object per line, with job context when the call site passed it."""
    def format(self, record):
        log_obj = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.lineno}",
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_obj[field] = value
        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_obj, default=str)


def _attach_handlers(logger: logging.Logger, log_dir: Path, level: int):
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%H:%M:%S'
    ))
    logger.addHandler(console_handler)

    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_dir / LOG_FILE)
    file_handler.setLevel(level)
    file_handler.setFormatter(JsonFormatter())
    logger.addHandler(file_handler)


def get_logger(name: str, log_dir: Path = None, level: str = "INFO"):
    """
    Get a service-layer logger.
    Text goes to stdout, JSON lines to <log_dir>/prospect_research.json.log.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    numeric = logging.getLevelName(level.upper())
    logger.setLevel(numeric)
    _attach_handlers(logger, Path(log_dir) if log_dir else LOG_DIR, numeric)
    return logger


def configure_engine_logging(log_dir: Path = None, level: str = "INFO"):
    """Route the research engine's module loggers through the same handlers."""
    return get_logger(ENGINE_LOGGER, log_dir=log_dir, level=level)
