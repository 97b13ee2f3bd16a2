"""Console formatting for CLI reports, with ASCII fallbacks."""

import os
import sys

from colorama import Fore, Style


def _supports_unicode() -> bool:
    encoding = sys.stdout.encoding or "ascii"
    try:
        "✓✗●".encode(encoding)
    except (UnicodeEncodeError, LookupError):
        return False
    return True


if os.name == "nt":
    try:
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    except (AttributeError, OSError):
        pass

USE_UNICODE = _supports_unicode()

CHECK = "✓" if USE_UNICODE else "[+]"
CROSS = "✗" if USE_UNICODE else "[-]"
DOT = "●" if USE_UNICODE else "*"

LEVEL_LABELS = {0: "none", 1: "watch", 2: "high", 3: "urgent"}
LEVEL_COLORS = {0: "", 1: Fore.CYAN, 2: Fore.YELLOW, 3: Fore.RED + Style.BRIGHT}


def ok(msg: str) -> str:
    return f"{Fore.GREEN}{CHECK}{Style.RESET_ALL} {msg}"


def fail(msg: str) -> str:
    return f"{Fore.RED}{CROSS}{Style.RESET_ALL} {msg}"


def header(title: str, width: int = 60) -> str:
    return f"\n{'=' * width}\n{title}\n{'=' * width}"


def separator(width: int = 60) -> str:
    return "-" * width


def level_badge(level: int) -> str:
    """Colored "DOT urgent (3)" style label for a suggestion level."""
    color = LEVEL_COLORS.get(level, "")
    label = LEVEL_LABELS.get(level, "?")
    reset = Style.RESET_ALL if color else ""
    return f"{color}{DOT} {label} ({level}){reset}"


def signed(value: float, digits: int = 4) -> str:
    return f"{value:+.{digits}f}"
