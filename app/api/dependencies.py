from __future__ import annotations

import logging
from typing import Optional

from core import config
from app.interview.catalog import InterviewCatalog
from app.interview.engine import InterviewOrchestrator
from app.interview.results import InterviewResultStore
from app.services.openai_service import OpenAIAnswerEvaluator, OpenAIChatClient
from app.services.speech_service import AudioStorage, OpenAITranscriber, build_speech_synthesizer
from app.session.registry import SessionRegistry
from app.session.room_event_bus import LocalRoomEventBus, RoomEventBus, build_room_event_bus
from app.session.store import LocalSessionStore, SessionStore, build_session_store

logger = logging.getLogger("app.api.dependencies")


class InterviewContainer:
    """Process-wide wiring of the orchestrator and its collaborators."""

    def __init__(self, orchestrator: InterviewOrchestrator, transcriber):
        self.orchestrator = orchestrator
        self.transcriber = transcriber

    @property
    def registry(self) -> SessionRegistry:
        return self.orchestrator.registry

    @property
    def catalog(self) -> InterviewCatalog:
        return self.orchestrator.catalog

    @property
    def results(self) -> InterviewResultStore:
        return self.orchestrator.results


class InterviewDependencyProvider:
    def create_session_store(self) -> SessionStore:
        try:
            store = build_session_store()
        except Exception as exc:
            logger.warning("Session store fallback to LocalSessionStore due to init error: %s", exc)
            return LocalSessionStore()
        logger.info("Session store initialized: %s", store.__class__.__name__)
        return store

    def create_event_bus(self) -> RoomEventBus:
        try:
            bus = build_room_event_bus(config.INSTANCE_ID)
        except Exception as exc:
            logger.warning("Interview event bus fallback to LocalRoomEventBus due to init error: %s", exc)
            return LocalRoomEventBus()
        logger.info("Interview event bus initialized: %s", bus.__class__.__name__)
        return bus

    def create_catalog(self) -> InterviewCatalog:
        if config.INTERVIEW_CATALOG_PATH:
            return InterviewCatalog.from_file(config.INTERVIEW_CATALOG_PATH)
        return InterviewCatalog()

    def create_results(self) -> InterviewResultStore:
        return InterviewResultStore(config.DATA_DIR / "interview_results.json")

    def create_container(self) -> InterviewContainer:
        registry = SessionRegistry(event_bus=self.create_event_bus(), instance_id=config.INSTANCE_ID)
        chat = OpenAIChatClient()
        orchestrator = InterviewOrchestrator(
            store=self.create_session_store(),
            catalog=self.create_catalog(),
            registry=registry,
            chat=chat,
            evaluator=OpenAIAnswerEvaluator(),
            tts=build_speech_synthesizer(AudioStorage()),
            results=self.create_results(),
            session_ttl_sec=config.SESSION_TTL_SEC,
        )
        return InterviewContainer(orchestrator=orchestrator, transcriber=OpenAITranscriber())


dependency_provider = InterviewDependencyProvider()
_container: Optional[InterviewContainer] = None


def get_container() -> InterviewContainer:
    global _container
    if _container is None:
        _container = dependency_provider.create_container()
    return _container


def set_container(container: Optional[InterviewContainer]) -> None:
    global _container
    _container = container


def get_orchestrator() -> InterviewOrchestrator:
    return get_container().orchestrator
