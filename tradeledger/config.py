# tradeledger/config.py
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

from .encoding import DEFAULT_ENCODINGS

load_dotenv()


@dataclass
class Settings:
    store_dir: Path = Path("data/ledger")
    namespace: str = "investment-"
    source: str = "rakuten"
    base_currency: str = "JPY"
    encodings: Tuple[str, ...] = field(default_factory=lambda: DEFAULT_ENCODINGS)
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Settings from the environment (and .env, loaded at import)."""
    encodings = os.getenv("TRADELEDGER_ENCODINGS")
    return Settings(
        store_dir=Path(os.getenv("TRADELEDGER_STORE_DIR", "data/ledger")).expanduser(),
        namespace=os.getenv("TRADELEDGER_NAMESPACE", "investment-"),
        source=os.getenv("TRADELEDGER_SOURCE", "rakuten"),
        base_currency=os.getenv("TRADELEDGER_BASE_CURRENCY", "JPY").strip().upper(),
        encodings=tuple(e.strip() for e in encodings.split(",") if e.strip()) if encodings else DEFAULT_ENCODINGS,
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )


def configure_logging(level: Optional[str] = None) -> None:
    """Attach a single stream handler to the package logger."""
    logger = logging.getLogger("tradeledger")
    if not logger.handlers:
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        logger.addHandler(ch)
    logger.setLevel(getattr(logging, (level or "INFO").upper(), logging.INFO))
