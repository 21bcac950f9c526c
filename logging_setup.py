"""
Balance Snapshot - Logging Setup
Unified, colored console format for the API server and batch scripts
"""
import logging
import os


class _ColorFormatter(logging.Formatter):
    """Simple color formatter for console logs."""
    COLORS = {
        'DEBUG': '\x1b[90m',   # dim gray
        'INFO': '\x1b[37m',    # white
        'WARNING': '\x1b[33m', # yellow
        'ERROR': '\x1b[31m',   # red
        'CRITICAL': '\x1b[41m' # red background
    }
    RESET = '\x1b[0m'

    def format(self, record):
        color = self.COLORS.get(record.levelname, '')
        formatted = super().format(record)
        return f"{color}{formatted}{self.RESET}"


def setup_logging(level=None):
    root = logging.getLogger()
    if root.handlers:
        return  # already configured

    if level is None:
        level = getattr(logging, os.environ.get('LOG_LEVEL', 'INFO').upper(), logging.INFO)

    fmt = '%(asctime)s %(levelname)-7s [%(name)s] %(message)s'
    handler = logging.StreamHandler()
    handler.setFormatter(_ColorFormatter(fmt, datefmt='%H:%M:%S'))

    root.setLevel(level)
    root.addHandler(handler)

    # Module specific defaults to reduce noise
    logging.getLogger('werkzeug').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('web3').setLevel(logging.WARNING)
