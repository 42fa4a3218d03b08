"""Centralized logging configuration module"""

import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from datetime import datetime
from typing import Optional

# Whether already initialized
_initialized = False

LOG_FORMAT = '[%(asctime)s] [%(levelname)s] %(name)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 3


def setup_logging(log_dir: Optional[Path] = None, level: Optional[str] = None, log_file_name: str = "server.log"):
    """Configure console and rotating file logging for the application"""
    global _initialized

    if _initialized:
        return

    from .config import settings

    logs_dir = Path(log_dir or settings.log_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_file = logs_dir / log_file_name
    log_level = getattr(logging, str(level or settings.log_level).upper(), logging.INFO)

    # Write session separator
    with open(log_file, 'a', encoding='utf-8') as f:
        f.write("\n" + "=" * 100 + "\n")
        f.write(f"Server started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
        f.write("=" * 100 + "\n\n")

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding='utf-8',
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)

    # Configure root logger
    logging.basicConfig(
        level=log_level,
        handlers=[console_handler, file_handler],
        force=True
    )

    # Set log levels for specific modules
    logging.getLogger('src').setLevel(log_level)
    logging.getLogger('llm_interactions').setLevel(logging.INFO)

    # Reduce log level for third-party libraries
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('openai').setLevel(logging.WARNING)

    _initialized = True

    logging.getLogger(__name__).info(
        "Logging initialized: %s (max %sMB per file, keep %s backups)",
        log_file.absolute(),
        MAX_LOG_BYTES // (1024 * 1024),
        LOG_BACKUP_COUNT,
    )
