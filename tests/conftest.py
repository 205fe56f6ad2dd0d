"""Pytest configuration and shared fixtures."""

from unittest.mock import AsyncMock, Mock

import pytest

from config.settings import ChatConfig, OpenAIConfig, RetrievalConfig, Settings, SupabaseConfig
from nx_docs_ai.context import ContextBuilder
from nx_docs_ai.llm_service import LLMResponse
from nx_docs_ai.vector_store import PageSection


class WordEncoding:
    """Tokenizer stand-in: one token per whitespace-separated word."""

    def encode(self, text):
        return text.split()


@pytest.fixture
def settings():
    """Settings with every credential present."""
    return Settings(
        openai=OpenAIConfig(api_key="sk-test"),
        supabase=SupabaseConfig(url="https://project.supabase.co", service_role_key="service-key"),
        retrieval=RetrievalConfig(),
        chat=ChatConfig(max_history_length=30),
    )


@pytest.fixture
def sections():
    """Two ranked page sections, the second repeated."""
    return [
        PageSection(
            heading="Project Configuration",
            url="/reference/project-configuration",
            content="  Projects are configured in project.json files.  ",
            similarity=0.91,
        ),
        PageSection(
            heading="Nx Cloud",
            url="/ci/intro/why-nx-cloud",
            content="Nx Cloud speeds up CI with remote caching.",
            similarity=0.85,
        ),
        PageSection(
            heading="Nx Cloud",
            url="/ci/intro/why-nx-cloud",
            content="Distributed task execution spreads tasks across agents.",
            similarity=0.80,
        ),
    ]


@pytest.fixture
def context_builder():
    return ContextBuilder(max_tokens=2500, encoding=WordEncoding())


@pytest.fixture
def services(sections):
    """Mocked moderation, embedding, vector store and LLM services."""
    moderation = Mock()
    moderation.check = AsyncMock(return_value=None)

    embedding_service = Mock()
    embedding_service.embed_query = AsyncMock(return_value=[0.1, 0.2, 0.3])
    embedding_service.model_name = "text-embedding-ada-002"
    embedding_service.dimension = 1536
    embedding_service.include_prior_answer = True

    vector_store = Mock()
    vector_store.match_page_sections = AsyncMock(return_value=sections)

    llm_service = Mock()
    llm_service.complete = AsyncMock(
        return_value=LLMResponse(
            content="Use [project.json](/reference/project-configuration) to configure projects.",
            model="gpt-3.5-turbo-16k",
            usage={"prompt_tokens": 100, "completion_tokens": 20, "total_tokens": 120},
            finish_reason="stop",
        )
    )
    llm_service.model_name = "gpt-3.5-turbo-16k"

    return {
        "moderation": moderation,
        "embedding_service": embedding_service,
        "vector_store": vector_store,
        "llm_service": llm_service,
    }
