"""Session PIN generation."""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING

from mohoot.logic.exceptions import CapacityError
from mohoot.logic.settings import PIN_MAX, PIN_MIN

if TYPE_CHECKING:
    from collections.abc import Callable, Container


def random_pin() -> str:
    return str(PIN_MIN + secrets.randbelow(PIN_MAX - PIN_MIN + 1))


def generate_pin(taken: Container[str], attempts: int, draw: Callable[[], str] = random_pin) -> str:
    """Draw a six-digit PIN that is not in `taken`, retrying on collision."""
    for _ in range(attempts):
        pin = draw()
        if pin not in taken:
            return pin
    raise CapacityError(f"no free session PIN after {attempts} attempts")
