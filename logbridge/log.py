"""
Coloured stderr logging shared by every bridge module.

Levels are ordered ERROR < WARN < INFO < DEBUG; a message prints when its
level is at or below settings.LOG_LEVEL. success() prints at INFO.
"""

import sys

from logbridge.config import settings

# Colors
BLUE = '\033[0;34m'
GREEN = '\033[0;32m'
YELLOW = '\033[1;33m'
RED = '\033[0;31m'
GRAY = '\033[0;90m'
NC = '\033[0m'

LEVELS = {"ERROR": 0, "WARN": 1, "INFO": 2, "DEBUG": 3}


def _enabled(level: str) -> bool:
    threshold = LEVELS.get(settings.LOG_LEVEL.upper(), LEVELS["INFO"])
    return LEVELS[level] <= threshold


def _emit(color: str, tag: str, msg: str):
    if settings.LOG_COLOR:
        print(f"{color}[{tag}]{NC} {msg}", file=sys.stderr)
    else:
        print(f"[{tag}] {msg}", file=sys.stderr)


def debug(msg: str):
    if _enabled("DEBUG"):
        _emit(GRAY, "DEBUG", msg)

def log(msg: str):
    if _enabled("INFO"):
        _emit(BLUE, "INFO", msg)

def success(msg: str):
    if _enabled("INFO"):
        _emit(GREEN, "SUCCESS", msg)

def warn(msg: str):
    if _enabled("WARN"):
        _emit(YELLOW, "WARN", msg)

def error(msg: str):
    if _enabled("ERROR"):
        _emit(RED, "ERROR", msg)
