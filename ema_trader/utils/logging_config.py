import logging
import sys


def configure_logging(level: str = "INFO"):
    """Configure logging for the application."""
    root = logging.getLogger()
    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    handler.setFormatter(formatter)
    root.addHandler(handler)
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))


class EventLog:
    """Logging capability handed to every component.

    One instance is built at startup and passed by reference; each record is
    routed to the stdlib logger named after the emitting component.
    """

    def __init__(self, prefix: str = "ema_trader"):
        self.prefix = prefix

    def record(self, level: int, component: str, message: str, exc_info: bool = False) -> None:
        logging.getLogger(f"{self.prefix}.{component}").log(level, message, exc_info=exc_info)


__all__ = ['configure_logging', 'EventLog']
