"""
Shared fixtures for LLM gateway tests.
"""
import pytest

from llm_gateway import (
    ChatRequest,
    Credentials,
    IntegrationConfig,
    LLMProvider,
    ProviderConfig,
)


@pytest.fixture
def make_integration():
    """Factory for integration configs with test defaults."""

    def _make(
        provider=LLMProvider.OPENAI,
        integration_id=1,
        name="test-integration",
        api_key="test-key",
        endpoint=None,
        base_url=None,
        settings=None,
        status="ACTIVE",
        is_deleted=False,
        **provider_overrides,
    ) -> IntegrationConfig:
        provider_config = ProviderConfig(
            default_model=provider_overrides.pop("default_model", "gpt-4o-mini"),
            settings=settings or {},
            **provider_overrides,
        )
        return IntegrationConfig(
            integration_id=integration_id,
            provider=provider,
            name=name,
            credentials=Credentials(api_key=api_key, endpoint=endpoint, base_url=base_url),
            provider_config=provider_config,
            status=status,
            is_deleted=is_deleted,
        )

    return _make


@pytest.fixture
def chat_request():
    """A small two-message request."""
    return ChatRequest(
        messages=[
            {"role": "system", "content": "You are helpful."},
            {"role": "user", "content": "Hello!"},
        ],
        user_id="user-1",
        project_id=7,
        feature="test_generation",
    )


@pytest.fixture
def empty_request():
    """A request with no messages."""
    return ChatRequest(messages=[], user_id="user-1", feature="test_generation")
