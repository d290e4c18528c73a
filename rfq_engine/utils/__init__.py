from .logger import setup_logging
from .clock import utc_now

__all__ = ["setup_logging", "utc_now"]
