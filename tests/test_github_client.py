"""PullRequestClient against a local HTTP server standing in for GitHub."""

import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from conftest import no_sleep
from github_client import PlatformError, PullRequestClient
from publisher import PublishError, Publisher


class UnavailableGitHub(BaseHTTPRequestHandler):
    """Answers reads with a minimal PR payload and every write with 503."""

    def _send(self, status: int, payload: dict) -> None:
        data = json.dumps(payload).encode()
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def do_GET(self) -> None:
        url = f"http://{self.headers['Host']}{self.path.split('?')[0]}"
        self._send(
            200,
            {
                "url": url,
                "full_name": "octo-org/service",
                "name": "service",
                "number": 7,
                "sha": "abc123",
                "head": {"sha": "abc123", "ref": "feature"},
            },
        )

    def do_POST(self) -> None:
        self.rfile.read(int(self.headers.get("Content-Length") or 0))
        self.server.posts.append(self.path)
        self._send(503, {"message": "Service Unavailable"})

    def log_message(self, format, *args) -> None:
        pass


@pytest.fixture
def github_down():
    server = ThreadingHTTPServer(("127.0.0.1", 0), UnavailableGitHub)
    server.posts = []
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


def make_client(server) -> PullRequestClient:
    host, port = server.server_address[:2]
    return PullRequestClient("octo-org/service", 7, "token", base_url=f"http://{host}:{port}")


def test_server_error_keeps_its_status(github_down) -> None:
    with pytest.raises(PlatformError) as excinfo:
        make_client(github_down).create_review("## body", "abc123")

    assert excinfo.value.status == 503
    assert excinfo.value.retryable
    assert len(github_down.posts) == 1


def test_publish_retries_are_bounded_per_channel(github_down) -> None:
    with pytest.raises(PublishError):
        Publisher(make_client(github_down), sleep=no_sleep).run("## body", "abc123")

    reviews = [path for path in github_down.posts if path.endswith("/reviews")]
    comments = [path for path in github_down.posts if path.endswith("/comments")]
    assert len(reviews) == 4
    assert len(comments) == 4
