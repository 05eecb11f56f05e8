"""QA request dispatcher.

``QAService`` wires the Provider Gateway, vector store, retriever, history
and response cache together and runs each request through::

    RECEIVED → CLASSIFYING → RETRIEVING → ROUTING → GENERATING
             → EVALUATING (validated workflows only) → DONE | FALLBACK

Every transition is published on the event bus as ``request.state``.
Identical concurrent requests share one computation; completed answers are
cached for ``cache.ttl_seconds``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from purpleiq.agent.fallbacks import fallback_answer
from purpleiq.agent.intents import WORKFLOW_NAMES, IntentClassifier, IntentType
from purpleiq.agent.workflows import Workflow, WorkflowRequest, WorkflowResult, build_workflows
from purpleiq.cache import ResponseCache, ResponseCoordinator, make_cache_key
from purpleiq.config import PurpleIQConfig
from purpleiq.events import EventBus
from purpleiq.ingest import BoundaryChunker, DocumentIndexer
from purpleiq.providers.credentials import CredentialStore
from purpleiq.providers.embeddings import EmbeddingGenerator
from purpleiq.providers.gateway import ProviderGateway
from purpleiq.providers.health import HealthChecker, HealthReport
from purpleiq.providers.rate_limiter import RateLimitStatus
from purpleiq.rag.assembler import assemble
from purpleiq.rag.history import ConversationHistory, ConversationTurn
from purpleiq.rag.retriever import RetrievalResult, Retriever
from purpleiq.store import (
    InMemoryPersistence,
    JsonFilePersistence,
    SqlitePersistence,
    VectorPersistence,
    VectorStore,
    validate_project_id,
)

logger = logging.getLogger(__name__)


class RequestState(str, Enum):
    RECEIVED = "RECEIVED"
    CLASSIFYING = "CLASSIFYING"
    RETRIEVING = "RETRIEVING"
    ROUTING = "ROUTING"
    GENERATING = "GENERATING"
    EVALUATING = "EVALUATING"
    DONE = "DONE"
    FALLBACK = "FALLBACK"


@dataclass(frozen=True)
class QAResponse:
    """Answer plus the metadata of how it was produced."""

    answer: str
    intent: IntentType
    workflow: str
    state: RequestState
    provider: str
    model: str
    retries: int = 0
    failover_used: bool = False
    fallback_used: bool = False
    validated: bool = False
    quality_score: float | None = None
    issues: tuple[str, ...] = ()
    sources: tuple[dict[str, Any], ...] = ()
    degraded_retrieval: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "answer": self.answer,
            "intent": self.intent.value,
            "workflow": self.workflow,
            "state": self.state.value,
            "provider": self.provider,
            "model": self.model,
            "retries": self.retries,
            "failoverUsed": self.failover_used,
            "fallbackUsed": self.fallback_used,
            "validated": self.validated,
            "qualityScore": self.quality_score,
            "issues": list(self.issues),
            "sources": list(self.sources),
            "degradedRetrieval": self.degraded_retrieval,
            "metadata": self.metadata,
        }


def build_persistence(config: PurpleIQConfig, base_dir: Path | None = None) -> VectorPersistence:
    """Create the vector persistence backend named by ``storage.backend``."""
    backend = config.storage.backend
    data_dir = Path(config.storage.data_dir).expanduser()
    if base_dir is not None and not data_dir.is_absolute():
        data_dir = base_dir / data_dir

    if backend == "memory":
        return InMemoryPersistence()
    if backend == "sqlite":
        return SqlitePersistence(data_dir / "vectors.db")
    return JsonFilePersistence(data_dir / "vectors")


class QAService:
    """Answer QA requests for a project using its indexed documents.

    Args:
        config: Loaded configuration.
        store: Vector store; defaults to one over the configured backend.
        gateway: Provider gateway; defaults to one built from *config*.
        embeddings: Embedding backend shared by ingest and retrieval.
        history: Conversation history.
        events: Event bus for state and gateway notifications.
        credentials: API key lookup shared by gateway and embeddings.
        cache: Response cache; defaults to one with ``cache.ttl_seconds``.
    """

    def __init__(
        self,
        config: PurpleIQConfig | None = None,
        *,
        store: VectorStore | None = None,
        gateway: ProviderGateway | None = None,
        embeddings: EmbeddingGenerator | None = None,
        history: ConversationHistory | None = None,
        events: EventBus | None = None,
        credentials: CredentialStore | None = None,
        cache: ResponseCache[QAResponse] | None = None,
    ) -> None:
        self.config = config or PurpleIQConfig()
        cfg = self.config
        self.events = events or EventBus()
        credentials = credentials or CredentialStore()

        self.store = store or VectorStore(build_persistence(cfg))
        self.gateway = gateway or ProviderGateway(
            cfg,
            credentials=credentials,
            events=self.events,
            fallback_answer=fallback_answer,
        )
        self.embeddings = embeddings or EmbeddingGenerator(
            cfg.embedding, retry=cfg.retry, credentials=credentials
        )
        if history is None:
            history = ConversationHistory(cfg.history.max_turns, cfg.history.max_projects)
        self.history = history

        if cache is None and cfg.cache.enabled:
            cache = ResponseCache(cfg.cache.ttl_seconds)
        self.coordinator: ResponseCoordinator[QAResponse] = ResponseCoordinator(cache)

        self.classifier = IntentClassifier(self.gateway, cfg.providers.classification_timeout)
        self.retriever = Retriever(self.store, self.embeddings, cfg.retrieval)
        self.indexer = DocumentIndexer(
            self.store,
            self.embeddings,
            BoundaryChunker(cfg.chunking.target_size, cfg.chunking.overlap),
        )
        self.workflows: dict[IntentType, Workflow] = build_workflows(self.gateway, cfg.workflows)
        self.health_checker = HealthChecker(
            cfg,
            credentials=credentials,
            embeddings=self.embeddings,
            rate_limiter=self.gateway.rate_limiter,
            complete_fn=self.gateway.complete_fn,
        )
        self._sweeper: asyncio.Task[None] | None = None

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    async def start(self) -> None:
        """Start the periodic cache sweeper (no-op without a cache)."""
        if self._sweeper is not None or self.coordinator.cache is None:
            return
        self._sweeper = asyncio.create_task(self._sweep_loop(), name="purpleiq-cache-sweeper")

    async def shutdown(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None

    async def __aenter__(self) -> QAService:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    async def _sweep_loop(self) -> None:
        cache = self.coordinator.cache
        assert cache is not None
        while True:
            await asyncio.sleep(self.config.cache.sweep_interval)
            removed = cache.sweep()
            if removed:
                logger.debug("cache sweep removed %d expired entries", removed)

    # -----------------------------------------------------------------------
    # Operations
    # -----------------------------------------------------------------------

    def cache_model(self, preferred_provider: str | None = None) -> str:
        """Model label used in cache keys: the first model of the first provider."""
        order = self.config.provider_order(preferred_provider)
        if not order:
            return "none"
        models = self.config.providers.models.get(order[0]) or [""]
        return f"{order[0]}:{models[0]}"

    async def ask(
        self,
        project_id: str,
        message: str,
        preferred_provider: str | None = None,
        credentials: Mapping[str, str] | None = None,
    ) -> QAResponse:
        """Answer *message* for *project_id*.

        Raises:
            InvalidProjectIdError: If *project_id* is malformed.
            ValueError: If *message* is blank.
            AllProvidersFailedError: If generation failed everywhere and no
                fallback answer is configured.
        """
        validate_project_id(project_id)
        if not message.strip():
            raise ValueError("message must not be empty")

        history_context = self.history.build_context(project_id, self.config.history.context_turns)
        key = make_cache_key(
            message,
            await self._document_context(project_id),
            self.cache_model(preferred_provider),
            project_id,
            context_chars=self.config.cache.context_hash_chars,
        )

        async def compute() -> QAResponse:
            response = await self._process(
                project_id, message, history_context, preferred_provider, credentials
            )
            self.history.append(
                project_id,
                ConversationTurn(
                    user_message=message,
                    assistant_response=response.answer,
                    intent=response.intent.value,
                    workflow=response.workflow,
                    documents_used=tuple(dict.fromkeys(s["documentName"] for s in response.sources)),
                ),
            )
            return response

        return await self.coordinator.get_or_compute(key, compute)

    async def _document_context(self, project_id: str) -> str:
        """Cache-key context: the project's indexed document set.

        Conversation history is left out so a repeated question maps to the
        same key; the key changes whenever documents are added or removed.
        """
        documents = await self.store.documents(project_id)
        return "\n".join(f"{name}:{count}" for name, count in sorted(documents.items()))

    def _transition(self, project_id: str, state: RequestState, **data: Any) -> None:
        logger.debug("project %s: %s", project_id, state.value)
        self.events.publish("request.state", project_id=project_id, state=state.value, **data)

    async def _process(
        self,
        project_id: str,
        message: str,
        history_context: str,
        preferred_provider: str | None,
        credentials: Mapping[str, str] | None,
    ) -> QAResponse:
        self._transition(project_id, RequestState.RECEIVED)

        self._transition(project_id, RequestState.CLASSIFYING)
        intent = await self.classifier.classify(message, preferred_provider, credentials)

        self._transition(project_id, RequestState.RETRIEVING, intent=intent.value)
        retrieval = await self.retriever.retrieve(project_id, message, credentials)
        context = assemble(retrieval.chunks, history=history_context)

        workflow = self.workflows[intent]
        self._transition(project_id, RequestState.ROUTING, workflow=WORKFLOW_NAMES[intent])

        self._transition(project_id, RequestState.GENERATING)
        result = await workflow.run(
            WorkflowRequest(
                message=message,
                context=context.text,
                preferred_provider=preferred_provider,
                credentials=credentials,
            )
        )

        if result.fallback_used:
            state = RequestState.FALLBACK
        else:
            if workflow.validates:
                self._transition(
                    project_id,
                    RequestState.EVALUATING,
                    validated=result.validated,
                    quality_score=result.quality_score,
                )
            state = RequestState.DONE
        self._transition(project_id, state, provider=result.call.provider, model=result.call.model)

        return self._response(intent, state, result, context.sources(), retrieval)

    @staticmethod
    def _response(
        intent: IntentType,
        state: RequestState,
        result: WorkflowResult,
        sources: list[dict[str, Any]],
        retrieval: RetrievalResult,
    ) -> QAResponse:
        metadata: dict[str, Any] = dict(result.metadata)
        metadata["attempts"] = result.attempts
        metadata["searchQuality"] = retrieval.search_quality()
        if result.warnings:
            metadata["warnings"] = list(result.warnings)
        if retrieval.error:
            metadata["retrievalError"] = retrieval.error

        return QAResponse(
            answer=result.answer,
            intent=intent,
            workflow=result.workflow,
            state=state,
            provider=result.call.provider,
            model=result.call.model,
            retries=result.retries,
            failover_used=result.failover_used,
            fallback_used=result.fallback_used,
            validated=result.validated,
            quality_score=result.quality_score,
            issues=result.issues,
            sources=tuple(sources),
            degraded_retrieval=retrieval.degraded,
            metadata=metadata,
        )

    async def ingest(
        self,
        project_id: str,
        document_name: str,
        text: str,
        credentials: Mapping[str, str] | None = None,
    ) -> int:
        """Chunk, embed and store *text*; returns the number of chunks added.

        Cached answers for the project are dropped since its context changed.
        """
        result = await self.indexer.index(project_id, document_name, text, credentials)
        if result.chunks and self.coordinator.cache is not None:
            self.coordinator.cache.invalidate_project(project_id)
        return result.chunks

    async def delete_project(self, project_id: str) -> None:
        """Remove the project's vectors, conversation history and cached answers."""
        validate_project_id(project_id)
        await self.store.delete(project_id)
        self.history.clear(project_id)
        if self.coordinator.cache is not None:
            dropped = self.coordinator.cache.invalidate_project(project_id)
            logger.debug("dropped %d cached answers for %s", dropped, project_id)
        logger.info("deleted project %s", project_id)

    def rate_limit_status(self) -> list[RateLimitStatus]:
        """Current call-rate status for every configured provider."""
        limiter = self.gateway.rate_limiter
        return [limiter.status(p) for p in self.config.provider_order()]

    async def health(self, credentials: Mapping[str, str] | None = None) -> HealthReport:
        """Run provider, embedding and vector-search liveness checks."""
        return await self.health_checker.run_all(credentials)
