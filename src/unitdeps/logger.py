"""Loguru logger writing through a Rich handler on stderr."""

from loguru import logger
from rich.console import Console
from rich.logging import RichHandler

console = Console(stderr=True)

_handler_id: int | None = None


def set_level(level: str) -> None:
    """Route records at ``level`` and above to the rich console."""
    global _handler_id
    logger.level(level)  # raises ValueError for unknown levels
    if _handler_id is not None:
        logger.remove(_handler_id)
    _handler_id = logger.add(
        RichHandler(console=console, markup=False, show_time=True, show_path=True),
        level=level,
        format="{message}",
    )


logger.remove()
set_level("INFO")

__all__ = ["logger", "console", "set_level"]
