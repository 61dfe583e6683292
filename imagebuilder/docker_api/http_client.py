"""
HTTP Client for the Docker daemon
Pure Python implementation using http.client over a Unix socket or TCP
"""

import socket
import http.client
import json
import logging
import platform
import os
import ssl
from typing import Optional, Dict, Any, Iterator
from urllib.parse import quote, urlsplit

from .exceptions import APIError

logger = logging.getLogger(__name__)

DEFAULT_UNIX_SOCKET = '/var/run/docker.sock'
DEFAULT_HTTP_PORT = 2375
DEFAULT_HTTPS_PORT = 2376


class UnixHTTPConnection(http.client.HTTPConnection):
    """HTTP connection over Unix socket"""

    def __init__(self, socket_path: str, timeout: int = 60):
        super().__init__('localhost', timeout=timeout)
        self.socket_path = socket_path

    def connect(self):
        """Connect to Unix socket"""
        self.sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        self.sock.settimeout(self.timeout)
        self.sock.connect(self.socket_path)


class StreamResponse:
    """
    Streaming response from the daemon

    Owns the underlying connection; closing the response closes both.
    """

    def __init__(self, response: http.client.HTTPResponse, connection: http.client.HTTPConnection):
        self.response = response
        self.connection = connection
        self.status = response.status

    def read(self, amt: Optional[int] = None) -> bytes:
        """Return what is available, up to amt bytes, without waiting for more"""
        if amt is None:
            return self.response.read()
        return self.response.read1(amt)

    def readline(self) -> bytes:
        return self.response.readline()

    def iter_chunks(self, chunk_size: int = 8192) -> Iterator[bytes]:
        """Yield raw body chunks until EOF"""
        while True:
            chunk = self.response.read1(chunk_size)
            if not chunk:
                break
            yield chunk

    def close(self):
        try:
            self.response.close()
        finally:
            self.connection.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()


class DockerHTTPClient:
    """HTTP client for Docker daemon"""

    def __init__(self, base_url: Optional[str] = None, timeout: int = 60,
                 api_version: Optional[str] = None, tls: bool = False,
                 cert_path: Optional[str] = None):
        """
        Initialize Docker HTTP client

        Args:
            base_url: Daemon address: unix:///path, tcp://host:port,
                http(s)://host:port (default: DOCKER_HOST or local socket)
            timeout: Request timeout in seconds
            api_version: Engine API version used as path prefix (e.g. '1.23')
            tls: Use TLS for tcp:// addresses
            cert_path: Directory holding ca.pem, cert.pem and key.pem
        """
        self.timeout = timeout
        self.api_version = api_version.lstrip('v') if api_version else None
        self.socket_path = None
        self.host = None
        self.port = None
        self.ssl_context = None

        if not base_url:
            base_url = os.environ.get('DOCKER_HOST') or None

        if base_url is None:
            # Auto-detect Docker socket
            self.scheme = 'unix'
            if platform.system() == "Darwin":  # macOS
                self.socket_path = os.path.expanduser('~/.docker/run/docker.sock')
                # Fallback to default Unix socket
                if not os.path.exists(self.socket_path):
                    self.socket_path = DEFAULT_UNIX_SOCKET
            else:  # Linux
                self.socket_path = DEFAULT_UNIX_SOCKET
        else:
            self._parse_base_url(base_url, tls)

        if self.scheme == 'unix' and not os.path.exists(self.socket_path):
            raise FileNotFoundError(f"Docker socket not found: {self.socket_path}")

        if self.scheme == 'https':
            self.ssl_context = self._create_ssl_context(cert_path)

    def _parse_base_url(self, base_url: str, tls: bool):
        if base_url.startswith('unix://'):
            self.scheme = 'unix'
            self.socket_path = base_url[len('unix://'):]
            return
        if base_url.startswith('/'):
            self.scheme = 'unix'
            self.socket_path = base_url
            return

        if '://' not in base_url:
            base_url = f"tcp://{base_url}"
        parts = urlsplit(base_url)
        if parts.scheme not in ('tcp', 'http', 'https'):
            raise ValueError(f"Unsupported Docker host: {base_url}")

        self.scheme = 'https' if parts.scheme == 'https' or tls else 'http'
        self.host = parts.hostname or '127.0.0.1'
        default_port = DEFAULT_HTTPS_PORT if self.scheme == 'https' else DEFAULT_HTTP_PORT
        self.port = parts.port or default_port

    @staticmethod
    def _create_ssl_context(cert_path: Optional[str]) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if cert_path:
            ca_file = os.path.join(cert_path, 'ca.pem')
            cert_file = os.path.join(cert_path, 'cert.pem')
            key_file = os.path.join(cert_path, 'key.pem')
            if os.path.exists(ca_file):
                context.load_verify_locations(cafile=ca_file)
            if os.path.exists(cert_file) and os.path.exists(key_file):
                context.load_cert_chain(cert_file, key_file)
        return context

    def _connection(self) -> http.client.HTTPConnection:
        if self.scheme == 'unix':
            return UnixHTTPConnection(self.socket_path, timeout=self.timeout)
        if self.scheme == 'https':
            return http.client.HTTPSConnection(
                self.host, self.port, timeout=self.timeout, context=self.ssl_context
            )
        return http.client.HTTPConnection(self.host, self.port, timeout=self.timeout)

    def build_url(self, path: str, params: Optional[Dict[str, Any]] = None) -> str:
        """
        Build request URL with API version prefix and query string

        Args:
            path: API path
            params: URL query parameters; None values are dropped

        Returns:
            URL path with query string
        """
        url = f"/v{self.api_version}{path}" if self.api_version else path
        if params:
            query_parts = []
            for key, value in params.items():
                if value is None:
                    continue
                if isinstance(value, bool):
                    value = 'true' if value else 'false'
                elif isinstance(value, (list, dict)):
                    value = json.dumps(value, separators=(',', ':'))
                query_parts.append(f"{key}={quote(str(value), safe='')}")
            if query_parts:
                url = f"{url}?{'&'.join(query_parts)}"
        return url

    def request(self, method: str, path: str, data: Any = None,
                params: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None,
                stream: bool = False) -> Any:
        """
        Make HTTP request to Docker daemon

        Args:
            method: HTTP method (GET, POST, DELETE, etc.)
            path: API path
            data: JSON data for request body, or raw bytes
            params: URL query parameters
            headers: HTTP headers
            stream: If True, return a StreamResponse for streaming

        Returns:
            Parsed JSON response or StreamResponse if stream=True

        Raises:
            APIError: If the daemon answers with status >= 400
        """
        url = self.build_url(path, params)

        req_headers = {}
        if headers:
            req_headers.update(headers)

        body = None
        if data is not None:
            if isinstance(data, bytes):
                # Raw bytes data (e.g., tar archive)
                body = data
                if 'Content-Length' not in req_headers:
                    req_headers['Content-Length'] = str(len(body))
            else:
                body = json.dumps(data).encode('utf-8')
                req_headers['Content-Type'] = 'application/json'
                req_headers['Content-Length'] = str(len(body))

        logger.debug(f"{method} {url}")

        conn = self._connection()
        streaming = False
        try:
            conn.request(method, url, body=body, headers=req_headers)
            response = conn.getresponse()

            if response.status >= 400:
                error_body = response.read().decode('utf-8', errors='replace')
                try:
                    error_data = json.loads(error_body)
                    error_msg = error_data.get('message', error_body)
                except (ValueError, AttributeError):
                    error_msg = error_body.strip()

                raise APIError(
                    f"Docker API error: {error_msg}",
                    response=response,
                    status_code=response.status
                )

            if stream:
                streaming = True
                return StreamResponse(response, conn)

            response_data = response.read()
            if not response_data:
                return None

            try:
                return json.loads(response_data.decode('utf-8'))
            except json.JSONDecodeError:
                # Return raw data if not JSON
                return response_data.decode('utf-8')

        finally:
            if not streaming:
                conn.close()

    def get(self, path: str, **kwargs) -> Any:
        """Make GET request"""
        return self.request('GET', path, **kwargs)

    def post(self, path: str, **kwargs) -> Any:
        """Make POST request"""
        return self.request('POST', path, **kwargs)

    def delete(self, path: str, **kwargs) -> Any:
        """Make DELETE request"""
        return self.request('DELETE', path, **kwargs)

    def put(self, path: str, **kwargs) -> Any:
        """Make PUT request"""
        return self.request('PUT', path, **kwargs)
