# -*- coding: utf-8 -*-
"""
tradezen.logger

Standard logger for the TradeZen store.
"""

import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from loguru import logger as _logger

from tradezen.config import WORKSPACE_ROOT

_file_level = os.getenv("TRADEZEN_LOG_LEVEL", "DEBUG")


def define_log_level(print_level: str = "INFO", logfile_level: Optional[str] = None, name: Optional[str] = None):
    """
    Configure Loguru logger.
    print_level: console log threshold (console sink only when TRADEZEN_LOG_CONSOLE is set)
    logfile_level: file log threshold
    name: optional prefix for log filename
    """
    logs_dir = Path(os.getenv("TRADEZEN_LOG_DIR", str(WORKSPACE_ROOT / "logs")))
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
    log_name = f"{name}_{timestamp}" if name else timestamp
    log_path = logs_dir / f"{log_name}.log"

    # Remove all sinks
    _logger.remove()

    if os.getenv("TRADEZEN_LOG_CONSOLE"):
        _logger.add(
            sys.stderr,
            level=print_level,
            backtrace=True,
            diagnose=False,
        )

    _logger.add(
        log_path,
        level=logfile_level or _file_level,
        backtrace=True,
        diagnose=True,
        enqueue=True,
        rotation="50 MB",
        retention="14 days",
    )

    return _logger


# Create global logger with defaults
logger = define_log_level(name="tradezen")
