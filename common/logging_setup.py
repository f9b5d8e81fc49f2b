from __future__ import annotations

import logging

# Hide ORM SQL and HTTP client chatter unless something goes wrong.
_NOISY_LOGGERS = ("sqlalchemy.engine", "urllib3", "httpx", "paho")

_configured = False


def configure_logging(level: str | int = "INFO") -> None:
    global _configured
    if _configured:
        return

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True
