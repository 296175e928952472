"""
Azure OpenAI adapter.

Specializes the OpenAI adapter: requests go to a deployment on an Azure
resource endpoint and authenticate with an ``api-key`` header.
"""

import logging
from typing import Optional, List, Dict, Any
from urllib.parse import parse_qsl, quote, urlsplit, urlunsplit

from ..core.errors import AdapterError, ErrorCode
from ..core.security import validate_azure_endpoint
from ..models.response import ModelInfo
from .openai_adapter import OpenAIAdapter

logger = logging.getLogger(__name__)


DEFAULT_API_VERSION = "2024-02-01"

AZURE_DEPLOYMENT_CATALOG: Dict[str, Dict[str, Any]] = {
    "gpt-4": {
        "name": "GPT-4 (Azure)",
        "context_window": 8192,
        "max_output_tokens": 4096,
        "input_cost_per_1k": 0.03,
        "output_cost_per_1k": 0.06,
        "capabilities": ["text", "code"],
    },
    "gpt-4-turbo": {
        "name": "GPT-4 Turbo (Azure)",
        "context_window": 128000,
        "max_output_tokens": 4096,
        "input_cost_per_1k": 0.01,
        "output_cost_per_1k": 0.03,
        "capabilities": ["text", "code", "vision"],
    },
    "gpt-4o": {
        "name": "GPT-4o (Azure)",
        "context_window": 128000,
        "max_output_tokens": 4096,
        "input_cost_per_1k": 0.005,
        "output_cost_per_1k": 0.015,
        "capabilities": ["text", "code", "vision"],
    },
    "gpt-35-turbo": {
        "name": "GPT-3.5 Turbo (Azure)",
        "context_window": 4096,
        "max_output_tokens": 4096,
        "input_cost_per_1k": 0.0005,
        "output_cost_per_1k": 0.0015,
        "capabilities": ["text", "code"],
    },
    "gpt-35-turbo-16k": {
        "name": "GPT-3.5 Turbo 16K (Azure)",
        "context_window": 16384,
        "max_output_tokens": 4096,
        "input_cost_per_1k": 0.003,
        "output_cost_per_1k": 0.004,
        "capabilities": ["text", "code"],
    },
}


class AzureOpenAIAdapter(OpenAIAdapter):
    """
    Azure OpenAI adapter.

    Provider settings:
        deployment_name: Azure deployment to call (required)
        api_version: REST API version, defaults to ``2024-02-01``

    The endpoint must be an HTTPS URL on an ``*.openai.azure.com`` host. It is
    checked at construction and again before every outbound call.
    """

    PROVIDER_NAME = "Azure OpenAI"

    def _resolve_base_url(self, base_url: Optional[str]) -> str:
        endpoint = base_url or self.config.credentials.address
        self._deployment_name = (
            self.settings.get("deployment_name") or self.settings.get("deploymentName")
        )
        self._api_version = (
            self.settings.get("api_version")
            or self.settings.get("apiVersion")
            or DEFAULT_API_VERSION
        )

        if not endpoint or not self._deployment_name:
            raise self.create_error(
                "Azure endpoint and deployment name are required",
                ErrorCode.MISSING_ENDPOINT,
                400,
            )

        self._endpoint = endpoint
        return validate_azure_endpoint(endpoint, self.get_provider_name())

    def _split_endpoint(self):
        validated = validate_azure_endpoint(self._endpoint, self.get_provider_name())
        parts = urlsplit(validated)
        return urlunsplit((parts.scheme, parts.netloc, parts.path, "", "")), parts.query

    def _chat_url(self) -> str:
        base, _ = self._split_endpoint()
        deployment = quote(self._deployment_name, safe="")
        return f"{base}/openai/deployments/{deployment}/chat/completions"

    def _chat_params(self) -> Optional[Dict[str, str]]:
        _, query = self._split_endpoint()
        params = dict(parse_qsl(query))
        params["api-version"] = self._api_version
        return params

    def _request_headers(self) -> Dict[str, str]:
        headers = self.get_headers()
        headers["api-key"] = self.api_key
        return headers

    async def get_available_models(self) -> List[ModelInfo]:
        """A deployment serves exactly one model, described from its name."""
        entry = AZURE_DEPLOYMENT_CATALOG.get(self._deployment_name)
        if entry is None:
            return [
                ModelInfo(
                    id=self._deployment_name,
                    name=f"{self._deployment_name} (Azure)",
                    context_window=4096,
                    max_output_tokens=4096,
                    capabilities=["text"],
                )
            ]
        return [ModelInfo(id=self._deployment_name, **entry)]

    async def test_connection(self) -> bool:
        payload = {
            "messages": [{"role": "user", "content": "test"}],
            "max_tokens": 1,
        }
        try:
            url, params = self._chat_url(), self._chat_params()
        except AdapterError as e:
            logger.error(f"Azure OpenAI test connection error: {e.message}")
            return False
        return await self._check_connection(
            "POST", url, payload=payload, headers=self._request_headers(), params=params
        )
