"""Root conftest: load .env.tests, route structlog through stdlib for caplog, isolate log context."""

from pathlib import Path

import pytest
import structlog
from dotenv import load_dotenv

from shared.logging import SHARED_PROCESSORS, serialize_enums

REPO_ROOT = Path(__file__).resolve().parent.parent

# variables already exported take precedence over the file
load_dotenv(REPO_ROOT / ".env.tests", override=False)

structlog.configure(
    processors=[
        *SHARED_PROCESSORS,
        serialize_enums,
        structlog.processors.UnicodeDecoder(),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=False,
)


@pytest.fixture(autouse=True)
def _clear_log_context():
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


@pytest.fixture(autouse=True)
def _no_ambient_server_env(monkeypatch):
    """Keep developer TTT_* variables (other than the .env.tests ones) out of settings tests."""
    for name in ("TTT_LOG_DIR", "TTT_CORS_ORIGINS", "TTT_DATA_DIR"):
        monkeypatch.delenv(name, raising=False)
