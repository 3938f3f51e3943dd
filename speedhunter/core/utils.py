"""
Core utilities and helper functions.

This module contains common utility functions used throughout
the speed hunter.
"""

import ipaddress
import logging
import sys
from typing import Tuple


# Sent with every probe request
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_12_6) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/98.0.4758.80 Safari/537.36"
)


def format_host_port(ip: str, port: int) -> str:
    """Render ip:port, bracketing IPv6 literals."""
    if ":" in ip:
        return f"[{ip}]:{port}"
    return f"{ip}:{port}"


def parse_source_address(value: str) -> Tuple[str, int]:
    """
    Parse a local bind address for outgoing probes.

    Accepts ``ip``, ``ip:port``, ``[v6]`` and ``[v6]:port``. A missing port
    means "any" (0).
    """
    value = value.strip()
    if not value:
        raise ValueError("empty source address")

    if value.startswith("["):
        host, _, rest = value[1:].partition("]")
        port = int(rest[1:]) if rest.startswith(":") else 0
    elif value.count(":") == 1:
        host, _, port_str = value.partition(":")
        port = int(port_str)
    else:
        host, port = value, 0

    ipaddress.ip_address(host)
    if not 0 <= port <= 65535:
        raise ValueError(f"source port out of range: {port}")
    return host, port


def format_speed(bytes_per_second: float) -> str:
    """Format a download speed as MB/s."""
    return f"{bytes_per_second / 1024 / 1024:.2f} MB/s"


def setup_logging(level: int = logging.INFO):
    """Setup colored logging for the application."""
    from colorama import Fore, Style, init

    init(autoreset=True)

    class ColoredFormatter(logging.Formatter):
        FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
        DATEFMT = "%Y-%m-%d %H:%M:%S"
        FORMATS = {
            logging.DEBUG: Fore.CYAN + FORMAT + Style.RESET_ALL,
            logging.INFO: Fore.GREEN + FORMAT + Style.RESET_ALL,
            logging.WARNING: Fore.YELLOW + FORMAT + Style.RESET_ALL,
            logging.ERROR: Fore.RED + FORMAT + Style.RESET_ALL,
            logging.CRITICAL: Fore.RED + Style.BRIGHT + FORMAT + Style.RESET_ALL,
        }

        def format(self, record):
            log_fmt = self.FORMATS.get(record.levelno, self.FORMAT)
            formatter = logging.Formatter(log_fmt, datefmt=self.DATEFMT)
            return formatter.format(record)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(ColoredFormatter())

    logging.basicConfig(level=logging.DEBUG, handlers=[console_handler])

    # Reduce noise from external libraries
    logging.getLogger("urllib3.connectionpool").setLevel(logging.ERROR)
