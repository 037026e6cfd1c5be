"""Configuration de test pour pytest avec gestion des chemins.

Ce module configure pytest pour résoudre les imports `crosskb` en ajoutant la racine du projet au
sys.path, et fournit les fixtures partagées (codec, passerelle d'embeddings, stores, conteneur).
"""

import os
import sys

import pytest

# Ensure project root is on sys.path so that
# imports like `from crosskb...` resolve.
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from crosskb.core.container import Container  # noqa: E402
from crosskb.core.settings import Settings  # noqa: E402
from crosskb.domain.link_registry import LinkRegistry  # noqa: E402
from crosskb.domain.vector_codec import VectorCodec  # noqa: E402
from crosskb.infra.embeddings.gateway import EmbeddingGateway  # noqa: E402
from crosskb.infra.repo.link_repo import InMemoryLinkRepository  # noqa: E402
from crosskb.infra.vecstores.memory_store import MemoryContentStore  # noqa: E402
from tests.fakes import FakeEmbeddings, FakeLLM, no_sleep  # noqa: E402

TEST_DIM = 8


@pytest.fixture
def codec() -> VectorCodec:
    return VectorCodec(dim=TEST_DIM)


@pytest.fixture
def embeddings() -> FakeEmbeddings:
    return FakeEmbeddings(dim=TEST_DIM)


@pytest.fixture
def gateway(embeddings, codec) -> EmbeddingGateway:
    return EmbeddingGateway(embeddings, codec, batch_size=4, sleep=no_sleep)


@pytest.fixture
def memory_store(codec) -> MemoryContentStore:
    return MemoryContentStore(codec)


@pytest.fixture
def registry() -> LinkRegistry:
    return LinkRegistry(
        InMemoryLinkRepository(),
        default_weight=1.0,
        default_max_results=5,
        default_min_similarity=0.1,
    )


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        VECSTORE_BACKEND="memory",
        EMBEDDING_DIM=TEST_DIM,
        OPENAI_API_KEY=None,
        CHUNK_MAX_CHARS=200,
        CHUNK_TOLERANCE_CHARS=40,
        CONTEXT_BUDGET=2000,
        CONTEXT_BUDGET_UNIT="chars",
        APP_ENV="test",
        ALLOWED_TENANTS=[],
    )


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def container(test_settings, fake_llm) -> Container:
    """Conteneur mémoire avec embeddings et LLM factices."""
    return Container(test_settings, embeddings=FakeEmbeddings(dim=TEST_DIM), llm=fake_llm)
