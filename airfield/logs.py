# airfield/logs.py
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional
import logging, sys

FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str = "INFO", log_dir: Optional[str] = None) -> None:
    """Console on stdout, plus a rotating file when log_dir is given."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, (level or "INFO").upper(), logging.INFO))
    fmt = logging.Formatter(FORMAT)

    ch = logging.StreamHandler(sys.stdout); ch.setFormatter(fmt)
    handlers = [ch]

    if log_dir:
        logs_dir = Path(log_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(
            logs_dir / "airfield_notams.log", maxBytes=2_000_000, backupCount=5, encoding="utf-8"
        )
        fh.setFormatter(fmt)
        handlers.append(fh)

    root.handlers = handlers

    # Quiet noisy libraries a bit
    for name in ("urllib3", "requests", "apscheduler", "solace"):
        logging.getLogger(name).setLevel(logging.WARNING)
