"""
HTTP control endpoint for a running Lighthouse.

Endpoints:
  GET  /health               — executor state, catalog size, last result
  POST /record               — start recording an object
  POST /identify             — start identifying an object
  POST /stop                 — cancel the current operation
  GET  /descriptions         — ids in the catalog
  GET  /descriptions/<id>    — summary of one description (404 if unknown)

Requests only flip the task cell; they return before the pipeline runs.
"""

from __future__ import annotations

import asyncio
import json
import logging

from lighthouse.vision.errors import NotFoundError
from lighthouse.vision.service import Lighthouse

logger = logging.getLogger(__name__)

ENDPOINTS = [
    "GET /health",
    "POST /record",
    "POST /identify",
    "POST /stop",
    "GET /descriptions",
    "GET /descriptions/<id>",
]


class ControlServer:
    def __init__(self, lighthouse: Lighthouse, host: str = "127.0.0.1", port: int = 8610):
        self.lighthouse = lighthouse
        self.host = host
        self.port = port
        self._server: asyncio.AbstractServer | None = None

    def _json_response(self, status: str, body: dict) -> bytes:
        """Build a minimal HTTP response."""
        body_str = json.dumps(body)
        return (
            f"HTTP/1.1 {status}\r\nContent-Type: application/json\r\n"
            f"Content-Length: {len(body_str)}\r\n\r\n{body_str}"
        ).encode()

    async def handle_request(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        data = await reader.read(8192)
        request = data.decode(errors="replace")

        first_line = request.split("\n")[0] if request else ""
        parts = first_line.split()
        method = parts[0] if len(parts) >= 1 else ""
        path = parts[1] if len(parts) >= 2 else ""

        try:
            resp = await self._route_request(method, path)
        except Exception as e:
            logger.error("Request handler error: %s", e, exc_info=True)
            resp = self._json_response("500 Internal Server Error", {"error": str(e)})

        writer.write(resp)
        await writer.drain()
        writer.close()

    async def _route_request(self, method: str, path: str) -> bytes:
        lh = self.lighthouse

        if path == "/health":
            return self._json_response("200 OK", lh.status())

        if method == "POST" and path in ("/record", "/identify", "/stop"):
            request = {
                "/record": lh.request_record,
                "/identify": lh.request_identify,
                "/stop": lh.request_stop,
            }[path]
            stamp = request()
            return self._json_response(
                "202 Accepted", {"task": path.lstrip("/"), "stamp": stamp}
            )

        if path == "/descriptions" and method == "GET":
            return self._json_response("200 OK", {"descriptions": lh.store.ids()})

        if path.startswith("/descriptions/") and method == "GET":
            description_id = path[len("/descriptions/"):]
            try:
                description = lh.get_description(description_id)
            except NotFoundError as e:
                return self._json_response("404 Not Found", {"error": str(e)})
            return self._json_response(
                "200 OK",
                {
                    "id": description.id,
                    "created_at": description.created_at,
                    "keypoints": len(description),
                    "has_source_image": description.source_image is not None,
                    "voice_label": lh.voice_label_path(description.id).exists(),
                },
            )

        return self._json_response(
            "404 Not Found", {"error": "Not found", "endpoints": ENDPOINTS}
        )

    async def start(self) -> None:
        self._server = await asyncio.start_server(self.handle_request, self.host, self.port)
        logger.info("HTTP endpoint listening on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
