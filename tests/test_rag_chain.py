"""
Tests for RAG Chain Module

Tests for the configuration gate, the pipeline and AssistantResponse.
"""

import logging
from dataclasses import replace
from unittest.mock import AsyncMock

import pytest

from config.settings import OpenAIConfig, SupabaseConfig
from nx_docs_ai.errors import ApplicationError, ConfigurationError, ErrorKind, UserError
from nx_docs_ai.llm_service import LLMResponse
from nx_docs_ai.memory import ChatItem, ChatSession
from nx_docs_ai.rag_chain import (
    NOTHING_RELEVANT_MESSAGE,
    AssistantResponse,
    RAGChain,
    check_env_variables,
)


def make_chain(services, settings, context_builder):
    return RAGChain(
        context_builder=context_builder,
        settings=settings,
        **services,
    )


def assert_no_network_calls(services):
    services["moderation"].check.assert_not_called()
    services["embedding_service"].embed_query.assert_not_called()
    services["vector_store"].match_page_sections.assert_not_called()
    services["llm_service"].complete.assert_not_called()


class TestCheckEnvVariables:
    """Tests for the configuration gate."""

    def test_all_present(self):
        """Test that complete configuration passes."""
        check_env_variables("sk", "https://x.supabase.co", "key")

    @pytest.mark.parametrize(
        "values, missing",
        [
            ((None, "url", "key"), "NX_OPENAI_KEY"),
            (("sk", "", "key"), "NX_NEXT_PUBLIC_SUPABASE_URL"),
            (("sk", "url", "   "), "NX_SUPABASE_SERVICE_ROLE_KEY"),
        ],
    )
    def test_missing_value(self, values, missing):
        """Test that each missing value is reported by name."""
        with pytest.raises(ConfigurationError) as exc_info:
            check_env_variables(*values)

        assert missing in exc_info.value.message
        assert exc_info.value.kind == ErrorKind.CONFIGURATION


class TestAssistantResponse:
    """Tests for AssistantResponse dataclass."""

    def test_to_dict(self):
        """Test serialization to dictionary."""
        response = AssistantResponse(
            text_response="Answer",
            usage={"total_tokens": 5},
            sources=[{"heading": "H", "url": "https://nx.dev/h"}],
            sources_markdown="- [H](https://nx.dev/h)",
            metadata={"total_time": 1.0},
        )

        d = response.to_dict()

        assert d["text_response"] == "Answer"
        assert d["usage"]["total_tokens"] == 5
        assert d["sources"][0]["url"] == "https://nx.dev/h"
        assert "metadata" not in d


class TestRAGChain:
    """Tests for RAGChain class."""

    def test_initialization(self, services, settings, context_builder):
        """Test chain initialization."""
        chain = make_chain(services, settings, context_builder)

        assert chain.settings is settings
        assert chain.context_builder is context_builder
        assert "Nx" in chain.system_prompt
        assert "  " not in chain.system_prompt

    @pytest.mark.asyncio
    async def test_missing_configuration(self, services, settings, context_builder):
        """Test that missing credentials fail before any network call."""
        settings = replace(settings, openai=OpenAIConfig(api_key=None))
        chain = make_chain(services, settings, context_builder)

        with pytest.raises(ConfigurationError):
            await chain.query("How do I cache tasks?", session=ChatSession())

        assert_no_network_calls(services)

    @pytest.mark.asyncio
    async def test_missing_supabase_key(self, services, settings, context_builder):
        """Test that a missing store key is a configuration error too."""
        settings = replace(
            settings,
            supabase=SupabaseConfig(url="https://project.supabase.co", service_role_key=None),
        )
        chain = make_chain(services, settings, context_builder)

        with pytest.raises(ConfigurationError):
            await chain.query("How do I cache tasks?", session=ChatSession())

        assert_no_network_calls(services)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   ", "\n\t"])
    async def test_empty_query(self, services, settings, context_builder, query):
        """Test that blank queries are user errors."""
        chain = make_chain(services, settings, context_builder)

        with pytest.raises(UserError) as exc_info:
            await chain.query(query, session=ChatSession())

        assert exc_info.value.message == "Missing query in request data"
        assert_no_network_calls(services)

    @pytest.mark.asyncio
    async def test_flagged_query(self, services, settings, context_builder):
        """Test that moderation rejections stop the pipeline."""
        services["moderation"].check.side_effect = UserError(
            "Flagged content",
            {"flagged": True, "categories": {"violence": True}, "flagged_categories": ["violence"]},
        )
        chain = make_chain(services, settings, context_builder)

        with pytest.raises(UserError) as exc_info:
            await chain.query("something nasty", session=ChatSession())

        assert exc_info.value.data["flagged_categories"] == ["violence"]
        services["embedding_service"].embed_query.assert_not_called()
        services["vector_store"].match_page_sections.assert_not_called()
        services["llm_service"].complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_embedding_failure(self, services, settings, context_builder):
        """Test that embedding failures stop the pipeline."""
        error = ApplicationError(
            "Failed to create embedding for question", {"status_code": 500, "body": None}
        )
        services["embedding_service"].embed_query.side_effect = error
        chain = make_chain(services, settings, context_builder)

        with pytest.raises(ApplicationError) as exc_info:
            await chain.query("What is Nx?", session=ChatSession())

        assert exc_info.value is error
        services["vector_store"].match_page_sections.assert_not_called()
        services["llm_service"].complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_matching_sections(self, services, settings, context_builder):
        """Test that an empty match is a user error."""
        services["vector_store"].match_page_sections.return_value = []
        chain = make_chain(services, settings, context_builder)

        with pytest.raises(UserError) as exc_info:
            await chain.query("What is a pineapple?", session=ChatSession())

        assert exc_info.value.message == NOTHING_RELEVANT_MESSAGE
        services["llm_service"].complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_query_passes_retrieval_settings(self, services, settings, context_builder):
        """Test that the matcher gets the configured threshold, count and floor."""
        chain = make_chain(services, settings, context_builder)

        await chain.query("  What is Nx?  ", session=ChatSession(), prior_answer="Earlier answer")

        services["moderation"].check.assert_awaited_once_with("What is Nx?")
        services["embedding_service"].embed_query.assert_awaited_once_with(
            "What is Nx?", "Earlier answer"
        )
        services["vector_store"].match_page_sections.assert_awaited_once_with(
            [0.1, 0.2, 0.3],
            match_threshold=0.78,
            match_count=15,
            min_content_length=50,
        )

    @pytest.mark.asyncio
    async def test_query_success(self, services, settings, context_builder):
        """Test a complete successful turn."""
        chain = make_chain(services, settings, context_builder)
        session = ChatSession()

        response = await chain.query("How do I configure a project?", session=session)

        assert response.text_response == (
            "Use [project.json](https://nx.dev/reference/project-configuration) "
            "to configure projects."
        )
        assert response.usage["total_tokens"] == 120
        assert response.sources == [
            {"heading": "Project Configuration", "url": "https://nx.dev/reference/project-configuration"},
            {"heading": "Nx Cloud", "url": "https://nx.dev/ci/intro/why-nx-cloud"},
        ]
        assert response.sources_markdown == (
            "- [Project Configuration](https://nx.dev/reference/project-configuration)\n"
            "- [Nx Cloud](https://nx.dev/ci/intro/why-nx-cloud)"
        )
        assert response.metadata["sections_found"] == 3

    @pytest.mark.asyncio
    async def test_query_sends_system_context_and_question(self, services, settings, context_builder):
        """Test the message list handed to the completion endpoint."""
        chain = make_chain(services, settings, context_builder)

        await chain.query("How do I configure a project?", session=ChatSession())

        messages = services["llm_service"].complete.call_args.args[0]
        assert messages[0] == {"role": "system", "content": chain.system_prompt}
        assert messages[-1]["role"] == "user"
        assert "Projects are configured in project.json files.\n---\n" in messages[-1]["content"]
        assert "My message: How do I configure a project?" in messages[-1]["content"]

    @pytest.mark.asyncio
    async def test_query_updates_session(self, services, settings, context_builder):
        """Test that a turn records history and token usage."""
        chain = make_chain(services, settings, context_builder)
        session = ChatSession()

        response = await chain.query("How do I configure a project?", session=session)

        history = session.history
        assert [item.role for item in history] == ["user", "assistant"]
        assert history[0].content == "How do I configure a project?"
        assert history[1].content == response.text_response
        assert session.total_tokens == 120

    @pytest.mark.asyncio
    async def test_history_grows_two_per_turn(self, services, settings, context_builder):
        """Test that N turns leave N*2 history entries."""
        chain = make_chain(services, settings, context_builder)
        session = ChatSession(max_history_length=30)

        for i in range(5):
            await chain.query(f"Question {i}", session=session)

        assert len(session.history) == 10
        assert session.total_tokens == 600

    @pytest.mark.asyncio
    async def test_history_cap_enforced(self, services, settings, context_builder):
        """Test that the history never exceeds its cap."""
        chain = make_chain(services, settings, context_builder)
        session = ChatSession(max_history_length=6)

        for i in range(10):
            await chain.query(f"Question {i}", session=session)

        history = session.history
        assert len(history) == 6
        assert history[0].content == "Question 7"
        assert history[0].role == "user"

    @pytest.mark.asyncio
    async def test_missing_usage_counts_zero(self, services, settings, context_builder):
        """Test that a response without usage leaves the counter alone."""
        services["llm_service"].complete.return_value = LLMResponse(content="Answer", model="m")
        chain = make_chain(services, settings, context_builder)
        session = ChatSession()

        response = await chain.query("What is Nx?", session=session)

        assert response.usage is None
        assert session.total_tokens == 0

    @pytest.mark.asyncio
    async def test_completion_failure_leaves_history(self, services, settings, context_builder):
        """Test that a failed completion does not record a half turn."""
        services["llm_service"].complete.side_effect = ApplicationError(
            "Failed to generate completion", {"status_code": 503}
        )
        chain = make_chain(services, settings, context_builder)
        session = ChatSession()
        session.update([ChatItem("user", "Q"), ChatItem("assistant", "A")], None)

        with pytest.raises(ApplicationError):
            await chain.query("What is Nx?", session=session)

        assert len(session.history) == 2

    @pytest.mark.asyncio
    async def test_user_errors_logged_without_data(self, services, settings, context_builder, caplog):
        """Test that user errors are logged by message only."""
        services["vector_store"].match_page_sections.return_value = []
        chain = make_chain(services, settings, context_builder)

        with caplog.at_level(logging.INFO, logger="nx_docs_ai.rag_chain"):
            with pytest.raises(UserError):
                await chain.query("What is a pineapple?", session=ChatSession())

        assert NOTHING_RELEVANT_MESSAGE in caplog.text

    @pytest.mark.asyncio
    async def test_application_errors_logged_with_data(self, services, settings, context_builder, caplog):
        """Test that application errors are logged with their payload."""
        services["vector_store"].match_page_sections.side_effect = ApplicationError(
            "Failed to match page sections", {"code": "42883"}
        )
        chain = make_chain(services, settings, context_builder)

        with caplog.at_level(logging.ERROR, logger="nx_docs_ai.rag_chain"):
            with pytest.raises(ApplicationError):
                await chain.query("What is Nx?", session=ChatSession())

        assert 'Failed to match page sections: {"code": "42883"}' in caplog.text

    @pytest.mark.asyncio
    async def test_unexpected_errors_reraised(self, services, settings, context_builder):
        """Test that untyped errors propagate unchanged."""
        services["embedding_service"].embed_query = AsyncMock(side_effect=RuntimeError("boom"))
        chain = make_chain(services, settings, context_builder)

        with pytest.raises(RuntimeError, match="boom"):
            await chain.query("What is Nx?", session=ChatSession())
