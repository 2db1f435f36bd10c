"""Connectivity checks run before every protocol step."""

from __future__ import annotations

import socket
from typing import Protocol

import structlog

logger = structlog.get_logger(__name__)


class Connectivity(Protocol):
    def has_internet(self) -> bool: ...


class SocketConnectivity:
    """Reports connectivity by resolving and connecting to a well-known host.

    Blocking; callers run it on the background pool.
    """

    def __init__(self, host: str = "dns.google", port: int = 443, timeout: float = 3.0):
        self.host = host
        self.port = port
        self.timeout = timeout

    def has_internet(self) -> bool:
        try:
            socket.getaddrinfo(self.host, self.port)
            with socket.create_connection((self.host, self.port), timeout=self.timeout):
                return True
        except OSError as exc:
            logger.info("connectivity.offline", host=self.host, error=str(exc))
            return False
