"""ANSI color codes for terminal output.

All colors use the 256-color palette.

Usage:
    from saga_core.logging.colors import GREEN, RED, RESET

    print(f"{GREEN}Compensated{RESET}")
"""

# Basic colors
RESET = "\033[0m"

# Primary colors for status indication
GREEN = "\033[38;5;82m"  # Success - bright green
RED = "\033[38;5;196m"  # Failure - bright red
YELLOW = "\033[38;5;226m"  # Warnings - bright yellow
ORANGE = "\033[38;5;208m"  # Unwind / compensation - orange

# Secondary colors for information
LIGHT_BLUE = "\033[38;5;153m"  # Context data - light blue
CYAN = "\033[38;5;51m"  # Info - cyan
MAGENTA = "\033[38;5;201m"  # Workflow - magenta

# Color aliases for semantic meaning
SUCCESS = GREEN
FAILURE = RED
WARNING = YELLOW
INFO = LIGHT_BLUE
UNWIND = ORANGE

__all__ = [
    "RESET",
    "GREEN",
    "RED",
    "YELLOW",
    "ORANGE",
    "LIGHT_BLUE",
    "CYAN",
    "MAGENTA",
    "SUCCESS",
    "FAILURE",
    "WARNING",
    "INFO",
    "UNWIND",
]
