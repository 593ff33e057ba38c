"""
Tests for the liveness server.

Tests:
1. Route status codes and bodies via TestClient
2. Live server on an ephemeral port
3. Bind failure on a busy port
"""

import os
import socket
import sys
import unittest

import requests
from fastapi.testclient import TestClient

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from autoapply.errors import ServerStartupError
from autoapply.server import HEALTH_PATH, LivenessServer, create_app


class TestLivenessApp(unittest.TestCase):
    """Tests for the FastAPI app."""

    def setUp(self):
        self.client = TestClient(create_app())

    def test_get_healthz(self):
        response = self.client.get(HEALTH_PATH)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.text, "OK")

    def test_head_healthz(self):
        """Test HEAD returns the status without a body."""
        response = self.client.head(HEALTH_PATH)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, b"")

    def test_post_healthz(self):
        """Test other methods on the health path are 405."""
        for method in ("POST", "PUT", "DELETE"):
            with self.subTest(method=method):
                response = self.client.request(method, HEALTH_PATH)
                self.assertEqual(response.status_code, 405)
                self.assertEqual(response.text, "Only GET or HEAD supported!")

    def test_unknown_path(self):
        response = self.client.get("/unknown")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.text, "Not found!")

    def test_trailing_slash_not_found(self):
        """Test the health path with a trailing slash is 404, not a redirect."""
        response = self.client.get(HEALTH_PATH + "/", follow_redirects=False)
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.text, "Not found!")

    def test_custom_path(self):
        client = TestClient(create_app("/alive"))
        self.assertEqual(client.get("/alive").status_code, 200)
        self.assertEqual(client.get(HEALTH_PATH).status_code, 404)

    def test_requests_are_debug_logged(self):
        with self.assertLogs("autoapply.server", level="DEBUG") as logs:
            self.client.get(HEALTH_PATH)
        self.assertIn(f"GET {HEALTH_PATH}", logs.output[0])


class TestLivenessServer(unittest.TestCase):
    """Tests for the threaded uvicorn server."""

    def test_serves_on_ephemeral_port(self):
        """Test the server answers real HTTP requests while running."""
        server = LivenessServer(port=0, host="127.0.0.1")
        server.start()
        try:
            self.assertTrue(server.running)
            self.assertNotEqual(server.port, 0)
            base = f"http://127.0.0.1:{server.port}"

            response = requests.get(base + HEALTH_PATH, timeout=5)
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.text, "OK")

            response = requests.head(base + HEALTH_PATH, timeout=5)
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.content, b"")

            self.assertEqual(requests.post(base + HEALTH_PATH, timeout=5).status_code, 405)
            self.assertEqual(requests.get(base + "/unknown", timeout=5).status_code, 404)
        finally:
            server.stop()
        self.assertFalse(server.running)

    def test_busy_port_fails(self):
        """Test binding a port already in use raises ServerStartupError."""
        busy = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        busy.bind(("127.0.0.1", 0))
        busy.listen(1)
        try:
            port = busy.getsockname()[1]
            server = LivenessServer(port=port, host="127.0.0.1")
            with self.assertRaises(ServerStartupError) as ctx:
                server.start()
            self.assertEqual(ctx.exception.port, port)
            self.assertFalse(server.running)
        finally:
            busy.close()

    def test_stop_without_start(self):
        LivenessServer(port=0).stop()


if __name__ == "__main__":
    unittest.main()
