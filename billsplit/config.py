"""
Configuration for the Bill Splitter application.

Values come from the environment (optionally a .env file in the working
directory).
"""
import logging
import os

from dotenv import load_dotenv

load_dotenv()

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
GEMINI_MODEL = os.getenv("BILLSPLIT_GEMINI_MODEL", "gemini-2.5-flash")
HISTORY_PATH = os.path.expanduser(
    os.getenv("BILLSPLIT_HISTORY_PATH", "~/.billsplit/history.json")
)
LOG_LEVEL = os.getenv("BILLSPLIT_LOG_LEVEL", "WARNING")

DEFAULT_TIP_PERCENTAGE = 15.0
DEFAULT_CURRENCY = "$"
MAX_HISTORY = 5

PERSON_COLORS = [
    "#6366f1",
    "#ec4899",
    "#10b981",
    "#f59e0b",
    "#3b82f6",
    "#8b5cf6",
    "#ef4444",
    "#14b8a6",
]


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Set up root logging once for the command line app."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
