"""
Relay Logger
============
One static logger for every component. A leading ``[TAG]`` on the message
names the emitting component and picks the console icon:

    Logger.info("[BUILDER] deposit USDC: 4 instruction(s)")
    Logger.success("[SIGNER] Confirmed 5Kq3...")
    Logger.warning("[LEDGER] Update rejected for 9f2c1a0b: missing or terminal")
    Logger.section("Pipeline")

Console output goes through rich; every line (including DEBUG, which never
reaches the console) is also appended to a rotating file under ``logs/``.
"""

import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Optional, Tuple

from rich.console import Console
from rich.text import Text

from config.settings import Settings


# =============================================================================
# COMPONENT TAGS
# =============================================================================

SOURCE_ICONS = {
    "RELAY": "🛰️",
    "FLOW": "🧭",
    "BUILDER": "🏗️",
    "VENUE": "📊",
    "SIGNER": "🔐",
    "RPC": "📡",
    "LEDGER": "📋",
    "PIPELINE": "🚀",
    "DB": "📦",
}

DEFAULT_SOURCE = "RELAY"

# level -> (console style, file level); a None style means file only
LEVELS = {
    "DEBUG": (None, logging.DEBUG),
    "INFO": ("cyan", logging.INFO),
    "SUCCESS": ("green bold", logging.INFO),
    "WARNING": ("yellow", logging.WARNING),
    "ERROR": ("red bold", logging.ERROR),
    "CRITICAL": ("red bold reverse", logging.CRITICAL),
}

_console = Console()
_file_logger: Optional[logging.Logger] = None


def _get_file_logger() -> logging.Logger:
    """Created on first use so importing the module has no filesystem side effects."""
    global _file_logger
    if _file_logger is None:
        os.makedirs(Settings.LOG_DIR, exist_ok=True)
        run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
        handler = RotatingFileHandler(
            os.path.join(Settings.LOG_DIR, f"drift_relay_{run_id}.log"),
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8",
        )
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
        ))
        logger = logging.getLogger("drift_relay")
        logger.setLevel(logging.DEBUG)
        logger.propagate = False
        logger.addHandler(handler)
        _file_logger = logger
    return _file_logger


# =============================================================================
# LOGGER
# =============================================================================

class Logger:
    """Static facade: ``Logger.info(...)`` from anywhere, no instance needed."""

    _silent_mode = False

    @staticmethod
    def _split_source(message: str) -> Tuple[str, str]:
        stripped = message.strip()
        if stripped.startswith("[") and "]" in stripped:
            end = stripped.index("]")
            tag = stripped[1:end].upper()
            if 0 < len(tag) < 15:
                return tag, stripped[end + 1:].strip()
        return DEFAULT_SOURCE, message

    @staticmethod
    def _console_enabled() -> bool:
        return not (Logger._silent_mode or Settings.SILENT_MODE)

    @staticmethod
    def _emit(level: str, message: str) -> None:
        source, text = Logger._split_source(message)
        style, file_level = LEVELS[level]

        if style is not None and Logger._console_enabled():
            now = datetime.now()
            icon = SOURCE_ICONS.get(source, "")
            line = Text()
            line.append(f"{now:%H:%M:%S}.{now.microsecond // 1000:03d} ", style="dim")
            line.append(f"| {level:<8} ", style=style)
            line.append(f"| {source[:10]:<10} | ", style="dim")
            line.append(f"{icon} {text}" if icon else text)
            _console.print(line)

        _get_file_logger().log(file_level, f"[{source}] {text}")

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    @staticmethod
    def debug(message: str) -> None:
        Logger._emit("DEBUG", message)

    @staticmethod
    def info(message: str) -> None:
        Logger._emit("INFO", message)

    @staticmethod
    def success(message: str) -> None:
        Logger._emit("SUCCESS", message)

    @staticmethod
    def warning(message: str) -> None:
        Logger._emit("WARNING", message)

    @staticmethod
    def error(message: str) -> None:
        Logger._emit("ERROR", message)

    @staticmethod
    def critical(message: str) -> None:
        Logger._emit("CRITICAL", message)

    @staticmethod
    def section(title: str) -> None:
        if Logger._console_enabled():
            _console.print()
            _console.rule(f"[bold magenta]{title}[/]", style="dim")
        _get_file_logger().info(f"[{DEFAULT_SOURCE}] === {title} ===")

    @staticmethod
    def set_silent(silent: bool) -> None:
        """Console on/off; the file log is always written."""
        Logger._silent_mode = silent
