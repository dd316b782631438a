"""
Logging setup for bartersearch.

Modules log through named loggers under the ``bartersearch`` namespace
(``bartersearch.core``, ``bartersearch.storage``, ...). Applications call
``configure_logging`` once to attach a console handler.
"""

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a single stream handler to the ``bartersearch`` logger."""
    root = logging.getLogger("bartersearch")
    root.setLevel(level)
    if not any(getattr(h, "_bartersearch", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._bartersearch = True
        root.addHandler(handler)
    # Per-module loggers pin INFO; follow the configured level instead
    for name, item in logging.root.manager.loggerDict.items():
        if name.startswith("bartersearch.") and isinstance(item, logging.Logger):
            item.setLevel(level)
    return root
