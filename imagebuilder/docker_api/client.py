"""
Docker Client - Main API entry point
"""

from typing import Optional
from .http_client import DockerHTTPClient
from .images import ImageCollection


class DockerClient:
    """
    Docker API Client
    Pure Python implementation without external dependencies
    """

    def __init__(self, base_url: Optional[str] = None, timeout: int = 60,
                 api_version: Optional[str] = None, tls: bool = False,
                 cert_path: Optional[str] = None):
        """
        Initialize Docker client

        Args:
            base_url: Daemon address (default: DOCKER_HOST or local socket)
            timeout: Request timeout in seconds
            api_version: Engine API version, e.g. '1.23'
            tls: Use TLS for tcp:// addresses
            cert_path: Directory with TLS client certificates
        """
        self.http = DockerHTTPClient(
            base_url=base_url,
            timeout=timeout,
            api_version=api_version,
            tls=tls,
            cert_path=cert_path
        )
        self.images = ImageCollection(self)

    def version(self) -> dict:
        """Get Docker version info"""
        return self.http.get('/version')

    def info(self) -> dict:
        """Get Docker system info"""
        return self.http.get('/info')

    def ping(self) -> str:
        """Ping Docker daemon"""
        return self.http.get('/_ping')

    def close(self):
        """Close client (connections are per request)"""
        pass
