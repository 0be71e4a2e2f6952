"""
Logging infrastructure shared by the proxy server and the client core.
"""

from .config import setup_logging
from .logger import Logger, logger

__all__ = ['logger', 'Logger', 'setup_logging']
