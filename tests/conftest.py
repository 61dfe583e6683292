import json
import sys
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from urllib.parse import parse_qs, urlsplit

import pytest

# Make the top-level package importable without installing
ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from imagebuilder.settings_manager import ENV_OVERRIDES  # noqa: E402


class FakeDaemon:
    """Records requests and answers them with canned responses"""

    def __init__(self):
        self.requests = []
        self.routes = {}
        self.base_url = None

    def add(self, method, path, status=200, body=b'', content_type='application/json'):
        if isinstance(body, (dict, list)):
            body = json.dumps(body).encode('utf-8')
        elif isinstance(body, str):
            body = body.encode('utf-8')
        self.routes[(method, path)] = (status, body, content_type)

    def add_stream(self, method, path, messages, status=200):
        body = ''.join(json.dumps(message) + '\r\n' for message in messages)
        self.add(method, path, status=status, body=body)

    @property
    def last(self):
        return self.requests[-1]


def _make_handler(daemon):
    class Handler(BaseHTTPRequestHandler):
        def _handle(self):
            length = int(self.headers.get('Content-Length') or 0)
            body = self.rfile.read(length) if length else b''
            split = urlsplit(self.path)
            daemon.requests.append({
                'method': self.command,
                'path': split.path,
                'query': parse_qs(split.query),
                'headers': dict(self.headers),
                'body': body,
            })
            status, payload, content_type = daemon.routes.get(
                (self.command, split.path),
                (404, b'{"message":"page not found"}', 'application/json')
            )
            self.send_response(status)
            self.send_header('Content-Type', content_type)
            self.send_header('Content-Length', str(len(payload)))
            self.end_headers()
            self.wfile.write(payload)

        do_GET = _handle
        do_POST = _handle
        do_DELETE = _handle
        do_PUT = _handle

        def log_message(self, format, *args):
            pass

    return Handler


@pytest.fixture
def fake_daemon():
    daemon = FakeDaemon()
    server = ThreadingHTTPServer(('127.0.0.1', 0), _make_handler(daemon))
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    daemon.base_url = f"tcp://127.0.0.1:{server.server_address[1]}"
    yield daemon
    server.shutdown()
    server.server_close()


@pytest.fixture(autouse=True)
def clean_docker_env(monkeypatch):
    for env_name in ENV_OVERRIDES.values():
        monkeypatch.delenv(env_name, raising=False)


@pytest.fixture
def build_context(tmp_path):
    context = tmp_path / 'context'
    context.mkdir()
    (context / 'Dockerfile').write_text('FROM busybox\nCOPY . /app\n')
    (context / 'app.py').write_text('print("hello")\n')
    return context
