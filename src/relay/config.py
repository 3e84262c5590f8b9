import logging
import os

# ------------------------------------------------------------------------------
# Configuration
# ------------------------------------------------------------------------------
HOST = os.getenv("RELAY_HOST", "0.0.0.0")
PORT = int(os.getenv("RELAY_PORT", "3001"))
SEND_TIMEOUT_S = float(os.getenv("RELAY_SEND_TIMEOUT_S", "5.0"))
LOG_LEVEL = os.getenv("RELAY_LOG_LEVEL", "INFO")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Install the root handler. Called once by the entry point."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
