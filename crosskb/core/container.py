"""
Conteneur d'injection de dépendances.

Instancie les composants centraux (codec, passerelle d'embeddings, stores, registre de liens,
moteur de retrieval, assembleur, pipeline d'ingestion, LLM, service, agents) à partir des
settings. Aucun singleton de module: chaque point d'entrée (app FastAPI, CLI, worker Celery)
construit son conteneur et le transmet.
"""

from __future__ import annotations

from crosskb.core.settings import Settings, get_settings
from crosskb.domain.agents import AgentRegistry, IngestionAgent, KnowledgeBaseAgent
from crosskb.domain.chunker import TextChunker
from crosskb.domain.context_assembler import ContextAssembler, token_counter
from crosskb.domain.ingestion import IngestionPipeline
from crosskb.domain.link_registry import LinkRegistry
from crosskb.domain.retrieval_engine import RetrievalEngine
from crosskb.domain.vector_codec import VectorCodec
from crosskb.infra.embeddings.base import Embeddings
from crosskb.infra.embeddings.gateway import EmbeddingGateway
from crosskb.infra.embeddings.openai_embedder import OpenAIEmbedder
from crosskb.infra.llm.base import LLM
from crosskb.infra.llm.openai_client import OpenAILLM
from crosskb.infra.repo.content_unit_repo import SqlContentStore
from crosskb.infra.repo.db import create_schema, get_engine
from crosskb.infra.repo.link_repo import InMemoryLinkRepository, LinkRepository, SqlLinkRepository
from crosskb.infra.vecstores.base import ContentStore
from crosskb.infra.vecstores.memory_store import MemoryContentStore
from crosskb.services.knowledge_service import KnowledgeService


class Container:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        embeddings: Embeddings | None = None,
        llm: LLM | None = None,
        store: ContentStore | None = None,
        link_repo: LinkRepository | None = None,
    ) -> None:
        self.settings = s = settings or get_settings()
        self.codec = VectorCodec(dim=s.EMBEDDING_DIM)
        self.embeddings = embeddings or self._build_embeddings()
        self.gateway = EmbeddingGateway(
            self.embeddings,
            self.codec,
            batch_size=s.EMBEDDING_BATCH_SIZE,
            max_attempts=s.EMBEDDING_MAX_ATTEMPTS,
            backoff_base_s=s.EMBEDDING_BACKOFF_BASE_S,
            backoff_max_s=s.EMBEDDING_BACKOFF_MAX_S,
        )

        self.db_engine = None
        if store is None or link_repo is None:
            if s.VECSTORE_BACKEND == "sql":
                self.db_engine = get_engine(s.DATABASE_URL)
                create_schema(self.db_engine)
                store = store or SqlContentStore(self.db_engine, self.codec)
                link_repo = link_repo or SqlLinkRepository(self.db_engine)
            elif s.VECSTORE_BACKEND == "memory":
                store = store or MemoryContentStore(self.codec)
                link_repo = link_repo or InMemoryLinkRepository()
            else:
                raise RuntimeError(f"Unknown VECSTORE_BACKEND: {s.VECSTORE_BACKEND}")
        self.store = store
        self.link_repo = link_repo
        self.storage_backend = store.backend_name

        self.registry = LinkRegistry(
            link_repo,
            default_weight=s.LINK_DEFAULT_WEIGHT,
            default_max_results=s.LINK_DEFAULT_MAX_RESULTS,
            default_min_similarity=s.LINK_DEFAULT_MIN_SIMILARITY,
        )
        self.engine = RetrievalEngine(
            self.gateway,
            self.registry,
            store,
            max_results=s.RETRIEVAL_MAX_RESULTS,
            timeout_s=s.RETRIEVAL_QUERY_TIMEOUT_S,
            own_min_similarity=s.RETRIEVAL_OWN_MIN_SIMILARITY,
            allowed_tenants=s.ALLOWED_TENANTS,
        )
        counter = None
        if s.CONTEXT_BUDGET_UNIT == "tokens":
            counter = token_counter(s.TOKEN_COUNT_STRATEGY, s.LLM_MODEL)
        self.assembler = ContextAssembler(
            budget=s.CONTEXT_BUDGET, unit=s.CONTEXT_BUDGET_UNIT, counter=counter
        )
        self.pipeline = IngestionPipeline(
            store,
            self.gateway,
            TextChunker(max_chars=s.CHUNK_MAX_CHARS, tolerance=s.CHUNK_TOLERANCE_CHARS),
        )
        if llm is None and s.OPENAI_API_KEY:
            llm = OpenAILLM(api_key=s.OPENAI_API_KEY, model=s.LLM_MODEL)
        self.llm = llm
        self.service = KnowledgeService(self.engine, self.assembler, self.pipeline, llm)
        self.agents = AgentRegistry(
            [KnowledgeBaseAgent(self.service), IngestionAgent(self.service)]
        )

    def _build_embeddings(self) -> Embeddings:
        s = self.settings
        if s.EMBEDDINGS_PROVIDER == "openai":
            return OpenAIEmbedder(
                api_key=s.OPENAI_API_KEY, model=s.EMBEDDINGS_MODEL, dimensions=s.EMBEDDING_DIM
            )
        raise RuntimeError(f"Unknown EMBEDDINGS_PROVIDER: {s.EMBEDDINGS_PROVIDER}")
