"""ANSI colouring for operator-facing output."""

from __future__ import annotations

from typing import Literal

from colorama import Fore, Style

Color = Literal["grey", "green", "red", "yellow", "cyan"]

_CODES: dict[str, str] = {
    "grey": Fore.LIGHTBLACK_EX,
    "green": Fore.GREEN,
    "red": Fore.RED,
    "yellow": Fore.YELLOW,
    "cyan": Fore.CYAN,
}


def paint(text: str, color: Color, *, enabled: bool = True) -> str:
    if not enabled or not text:
        return text
    return f"{_CODES[color]}{text}{Style.RESET_ALL}"
