import asyncio
import logging
import pathlib
import sys
from dataclasses import dataclass, field

import pytest
from fastapi import FastAPI, Request, Response
from fastapi.testclient import TestClient

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from app.app_logging import init_logging
from app.conversations.models import InboundMessage
from app.core.services import ServiceRegistry
from app.notifications.alerts import OwnerAlerts
from app.notifications.gateway import SendResult
from app.realtime.broadcaster import ConversationBroadcaster
from app.realtime.hub import MONITORING_ROOM, QueueSubscriber, RoomHub

OWNER_PHONE = "+15550001111"


class RecordingGateway:
    """SMS gateway double that records every send."""

    def __init__(self, succeed: bool = True) -> None:
        self.succeed = succeed
        self.sent: list[tuple[str, str]] = []

    async def send_sms(self, phone: str, text: str) -> SendResult:
        self.sent.append((phone, text))
        if not self.succeed:
            return SendResult(False, "carrier rejected")
        return SendResult(True, sid=f"SM{len(self.sent)}")

    def sent_to(self, phone: str) -> list[str]:
        return [text for to, text in self.sent if to == phone]


class ScriptedResponder:
    """AI responder double with canned replies, errors or delays."""

    def __init__(self, replies=None, error: Exception | None = None, delay: float = 0):
        self.replies = list(replies or [])
        self.error = error
        self.delay = delay
        self.calls: list[dict] = []
        self.suggestions = ["We can do 3pm", "Let me check", "Thanks!"]

    async def generate_reply(
        self, text, phone, platform, behavior_settings=None, history=()
    ) -> str:
        self.calls.append(
            {
                "text": text,
                "phone": phone,
                "platform": platform,
                "behavior_settings": behavior_settings,
                "history": list(history),
            }
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        if self.replies:
            return self.replies.pop(0)
        return f"Happy to help with: {text}"

    async def suggest_replies(self, history, platform) -> list[str]:
        if self.error:
            raise self.error
        return list(self.suggestions)


@dataclass
class Harness:
    """Bundle of a registry wired with test doubles and a monitoring probe."""

    registry: ServiceRegistry
    gateway: RecordingGateway
    responder: ScriptedResponder
    monitor: QueueSubscriber = field(default_factory=QueueSubscriber)
    seen: list = field(default_factory=list)

    @property
    def repository(self):
        return self.registry.memory_repository

    @property
    def hub(self) -> RoomHub:
        return self.registry.hub

    def service(self, **kwargs):
        if kwargs:
            from app.conversations.service import ConversationService

            return ConversationService(
                self.repository,
                self.registry.broadcaster,
                self.registry.responder,
                self.registry.gateway,
                self.registry.alerts,
                **kwargs,
            )
        return self.registry.conversation_service(self.repository)

    def events(self, name: str | None = None) -> list[tuple[str, object]]:
        """Every monitoring event seen so far, optionally filtered by name."""
        self.seen.extend(self.monitor.drain())
        if name is None:
            return list(self.seen)
        return [item for item in self.seen if item[0] == name]


def sms(text: str, phone: str = "+15551234567", name: str | None = None) -> InboundMessage:
    return InboundMessage(text=text, sender_phone=phone, platform="sms", customer_name=name)


def web(text: str, phone: str = "+15557654321") -> InboundMessage:
    return InboundMessage(text=text, sender_phone=phone, platform="web")


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def harness(monkeypatch) -> Harness:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    hub = RoomHub()
    gateway = RecordingGateway()
    responder = ScriptedResponder()
    registry = ServiceRegistry(
        hub=hub,
        broadcaster=ConversationBroadcaster(hub),
        responder=responder,
        gateway=gateway,
        alerts=OwnerAlerts(gateway, OWNER_PHONE),
        responder_timeout=0.5,
    )
    h = Harness(registry=registry, gateway=gateway, responder=responder)
    hub.subscribe(MONITORING_ROOM, h.monitor)
    return h


@pytest.fixture
def api_client(monkeypatch, tmp_path, harness):
    """TestClient for the real app with the harness registry installed."""

    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    from app import main
    from app.core.rate_limit import limiter

    limiter.reset()
    monkeypatch.setattr(main.app.state, "services", harness.registry)
    with TestClient(main.app) as client:
        yield client


@pytest.fixture
def logged_app(monkeypatch, tmp_path):
    """Build a stand-in webhook app with logging initialised under ``tmp_path``."""

    def _create_app(log_request_bodies: bool = False, **env: str) -> FastAPI:
        monkeypatch.setenv("LOG_DIR", str(tmp_path))
        monkeypatch.setenv(
            "LOG_REQUEST_BODIES", "true" if log_request_bodies else "false"
        )
        for key, value in env.items():
            monkeypatch.setenv(key, value)
        app = FastAPI()

        @app.post("/sms")
        async def sms_webhook(request: Request):
            return Response("<Response/>", media_type="text/xml")

        @app.post("/api/chat")
        async def web_chat(request: Request):
            return {"success": True, "requestId": request.state.request_id}

        @app.get("/api/health")
        async def health():
            return {"status": "ok"}

        init_logging(app)
        return app

    for name in ("app", "uvicorn.access"):
        logging.getLogger(name).handlers.clear()
    yield _create_app
    for name in ("app", "uvicorn.access"):
        logger = logging.getLogger(name)
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)
