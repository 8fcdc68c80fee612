"""Logging setup for the ``latent-labels`` command line.

``cli.main`` calls ``configure_logging()`` before running a subcommand, so
warnings such as degenerate subjects reach the console and
``logs/latent_labels.log``. The library modules only create named loggers
and never configure handlers themselves. Calling it again is a no-op once
the root logger has handlers.
"""

import logging
import os

LOG_DIR = "logs"
LOG_FILE = "latent_labels.log"


def configure_logging(level: int = logging.INFO, log_dir: str = LOG_DIR) -> None:
    """Configure root logger with console + optional file handler.

    Only configures if the root logger has no handlers (idempotent).
    """
    root = logging.getLogger()
    if root.handlers:
        return

    fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = logging.Formatter(fmt)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    # File handler only if the log directory exists or can be created
    try:
        os.makedirs(log_dir, exist_ok=True)
        fh = logging.FileHandler(os.path.join(log_dir, LOG_FILE), mode="a")
        fh.setFormatter(formatter)
        root.addHandler(fh)
    except OSError:
        pass

    root.setLevel(level)
