from typing import Any, Dict, List, Tuple

import httpx

from mediatrack.services.email import EmailSender

JIKAN_BASE = "https://api.jikan.moe/v4"


class RecordingEmailSender(EmailSender):
    def __init__(self) -> None:
        self.sent: List[Dict[str, str]] = []

    async def deliver(self, to: str, subject: str, html: str) -> None:
        self.sent.append({"to": to, "subject": subject, "html": html})


class FakeJikan:
    """Canned Jikan responses keyed by path, served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.routes: Dict[str, Tuple[int, Any]] = {}
        self.calls: List[Tuple[str, Dict[str, str]]] = []
        self.down = False

    def add(self, path: str, payload: Any, status: int = 200) -> None:
        self.routes[path] = (status, payload)

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/v4")
        self.calls.append((path, dict(request.url.params)))
        if self.down:
            raise httpx.ConnectError("connection refused", request=request)
        if path not in self.routes:
            return httpx.Response(404, json={"status": 404, "message": "Resource does not exist"})
        status, payload = self.routes[path]
        return httpx.Response(status, json=payload)

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler), base_url=JIKAN_BASE)
