"""Single-shot local HTTP server that captures config.json from the browser.

The design tool POSTs its configuration document to /api/generate. The first
well-formed submission is written to <workspace>/config.json, acknowledged, and
then the server stops: the response is flushed and the connection closed by
`handle_request()` before the listening socket is closed and the caller exits.
Anything short of a successful write leaves the server listening for a retry.
"""

from __future__ import annotations

import json
import os
import socket
import sys
import tempfile
from enum import Enum
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse

from rich.console import Console

from .branding import BRANDING
from .config import EMBuilderConfig
from .logging_config import setup_logger

logger = setup_logger("embuilder.capture_server", "embuilder.log")

PING_PATH = "/api/ping"
GENERATE_PATH = "/api/generate"
READ_CHUNK_SIZE = 64 * 1024
# Unread bodies up to this size are drained so the client sees the error reply.
DISCARD_LIMIT = 1024 * 1024


class CaptureState(str, Enum):
    LISTENING = "listening"
    RECEIVING_BODY = "receiving_body"
    PARSING = "parsing"
    PERSISTING = "persisting"
    RESPONDING = "responding"
    TERMINATING = "terminating"


class RequestBodyError(Exception):
    """The request body could not be received; carries the HTTP status to answer with."""

    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status


def write_config_atomically(path: Path, document: Any) -> None:
    """Write `document` as pretty-printed JSON, replacing `path` in one step."""
    text = json.dumps(document, indent=2, ensure_ascii=False) + "\n"
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class ConfigCaptureHandler(BaseHTTPRequestHandler):
    """Handle ping, CORS preflight and the one-time config submission."""

    server: "ConfigCaptureServer"

    def setup(self) -> None:
        # StreamRequestHandler applies self.timeout to the connection socket.
        self.timeout = self.server.receive_timeout
        super().setup()

    def _set_cors_headers(self) -> None:
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")
        # Browsers implementing Private Network Access ask for this on localhost.
        self.send_header("Access-Control-Allow-Private-Network", "true")

    def _send_body(self, status: int, body: bytes, content_type: Optional[str]) -> None:
        self.send_response(status)
        self._set_cors_headers()
        if content_type:
            self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Cache-Control", "no-store")
        self.end_headers()
        if body:
            self.wfile.write(body)

    def _send_json(self, status: int, data: dict) -> None:
        self._send_body(status, json.dumps(data).encode("utf-8"), "application/json")

    def _send_not_found(self) -> None:
        self._send_body(404, b"Not found", "text/plain; charset=utf-8")

    def do_OPTIONS(self) -> None:
        """Handle CORS preflight."""
        self._send_body(200, b"", None)

    def do_GET(self) -> None:
        if urlparse(self.path).path == PING_PATH:
            self._send_json(200, {"ok": True, "message": "pong"})
        else:
            self._send_not_found()

    def do_POST(self) -> None:
        if urlparse(self.path).path == GENERATE_PATH:
            self._handle_generate()
        else:
            self._send_not_found()

    def do_HEAD(self) -> None:
        self.send_response(404)
        self._set_cors_headers()
        self.send_header("Content-Length", "0")
        self.end_headers()

    def __getattr__(self, name: str):
        # handle_one_request() looks up do_<METHOD>; any other verb gets a 404, not a 501.
        if name.startswith("do_"):
            return self._send_not_found
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    def _handle_generate(self) -> None:
        server = self.server
        if server.state is not CaptureState.LISTENING:
            # Single-threaded loop: only reachable if a caller keeps serving after success.
            self._send_json(409, {"success": False, "error": "configuration already captured"})
            return

        server.state = CaptureState.RECEIVING_BODY
        try:
            raw = self._read_body()
        except RequestBodyError as e:
            server.state = CaptureState.LISTENING
            logger.warning(f"Rejected submission body: {e}")
            self._send_json(e.status, {"success": False, "error": str(e)})
            return

        server.state = CaptureState.PARSING
        try:
            document = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            server.state = CaptureState.LISTENING
            logger.error(f"Invalid JSON: {e}")
            self._send_json(400, {"success": False, "error": str(e)})
            return

        server.state = CaptureState.PERSISTING
        config_path = server.config_path
        try:
            write_config_atomically(config_path, document)
        except OSError as e:
            server.state = CaptureState.LISTENING
            logger.error(f"Failed to write {config_path}: {e}")
            self._send_json(
                500, {"success": False, "error": f"failed to write {config_path}: {e}"}
            )
            return

        server.state = CaptureState.RESPONDING
        self._send_json(200, {"success": True, "path": str(config_path)})
        self.close_connection = True
        logger.info(f"config.json written to {config_path}")

        # finish() flushes wfile and the server closes this connection before
        # handle_request() returns to serve_until_captured().
        server.captured_path = config_path
        server.state = CaptureState.TERMINATING

    def _read_body(self) -> bytes:
        limit = self.server.max_body_bytes
        try:
            if "chunked" in self.headers.get("Transfer-Encoding", "").lower():
                return self._read_chunked(limit)
            try:
                length = int(self.headers.get("Content-Length") or 0)
            except ValueError:
                raise RequestBodyError(400, "invalid Content-Length header") from None
            if length < 0:
                raise RequestBodyError(400, "invalid Content-Length header")
            if length > limit:
                self.close_connection = True
                self._discard(min(length, DISCARD_LIMIT))
                raise RequestBodyError(413, f"request body exceeds {limit} bytes")
            return self._read_exact(length)
        except socket.timeout:
            self.close_connection = True
            raise RequestBodyError(408, "timed out receiving request body") from None

    def _read_exact(self, length: int) -> bytes:
        chunks: list[bytes] = []
        remaining = length
        while remaining > 0:
            chunk = self.rfile.read(min(READ_CHUNK_SIZE, remaining))
            if not chunk:
                self.close_connection = True
                raise RequestBodyError(400, "request body ended early")
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)

    def _discard(self, length: int) -> None:
        remaining = length
        while remaining > 0:
            chunk = self.rfile.read(min(READ_CHUNK_SIZE, remaining))
            if not chunk:
                return
            remaining -= len(chunk)

    def _read_chunked(self, limit: int) -> bytes:
        chunks: list[bytes] = []
        total = 0
        while True:
            size_line = self.rfile.readline(1024)
            try:
                size = int(size_line.split(b";", 1)[0].strip(), 16)
            except ValueError:
                self.close_connection = True
                raise RequestBodyError(400, "malformed chunked body") from None
            if size == 0:
                # Drain optional trailers up to the terminating blank line.
                while self.rfile.readline(1024) not in (b"\r\n", b"\n", b""):
                    pass
                return b"".join(chunks)
            total += size
            if total > limit:
                self.close_connection = True
                raise RequestBodyError(413, f"request body exceeds {limit} bytes")
            chunks.append(self._read_exact(size))
            self.rfile.readline(1024)

    def log_message(self, format: str, *args) -> None:
        """Suppress default stderr logging; use our logger instead."""
        logger.debug(f"HTTP {self.address_string()} {format % args}")


class ConfigCaptureServer(HTTPServer):
    """HTTPServer that stops after the first persisted submission."""

    def __init__(self, config: EMBuilderConfig):
        self.config_path = config.config_path
        self.max_body_bytes = config.max_body_bytes
        self.receive_timeout = config.receive_timeout
        self.state = CaptureState.LISTENING
        self.captured_path: Optional[Path] = None
        super().__init__((config.host, config.port), ConfigCaptureHandler)

    def handle_error(self, request, client_address) -> None:
        if self.state is not CaptureState.TERMINATING:
            self.state = CaptureState.LISTENING
        logger.error(f"Error handling request from {client_address}", exc_info=True)

    @property
    def url(self) -> str:
        host, port = self.server_address[:2]
        return f"http://{host}:{port}"

    def serve_until_captured(self) -> Optional[Path]:
        """Serve requests one at a time until a submission is persisted.

        Each `handle_request()` returns only after the handler finished and the
        connection was flushed and closed; only then is the listening socket closed.
        """
        try:
            while self.state is not CaptureState.TERMINATING:
                self.handle_request()
        finally:
            self.server_close()
        logger.info(f"{BRANDING.server_label} stopped (captured: {self.captured_path})")
        return self.captured_path


def run_capture_server(config: EMBuilderConfig) -> int:
    """Run the capture server in the foreground; returns the process exit code."""
    console = Console()
    try:
        server = ConfigCaptureServer(config)
    except OSError as e:
        logger.error(f"Failed to bind {config.host}:{config.port}: {e}")
        console.print(f"[red]✗[/red] Cannot listen on {config.host}:{config.port}: {e}")
        return 1

    logger.info(f"{BRANDING.server_label} listening on {server.url}")
    console.print(f"🚀 {BRANDING.server_label} running on [cyan]{server.url}[/cyan]")
    console.print(f"  GET  {PING_PATH}")
    console.print(f"  POST {GENERATE_PATH}")
    console.print(f"  Config file: [cyan]{config.config_path}[/cyan]", style="dim")

    try:
        path = server.serve_until_captured()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted; no configuration captured.[/yellow]")
        return 130
    if path is None:
        console.print("[yellow]Server stopped without capturing a configuration.[/yellow]")
        return 1

    console.print(f"[green]✓[/green] config.json written to [cyan]{path}[/cyan]")
    console.print("🛑 Shutting down server...")
    return 0


if __name__ == "__main__":
    sys.exit(run_capture_server(EMBuilderConfig.from_env()))
