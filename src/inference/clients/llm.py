import logging
import time
from typing import Any, Dict, Optional

import httpx

from src.inference.errors import GenerativeAIError


logger = logging.getLogger(__name__)


class GenerativeAIClient:
    """
    Client for the external "prompt + JSON schema -> JSON object" capability.

    Every failure (transport, HTTP status, undecodable or non-object body)
    is raised as GenerativeAIError; nothing is retried or swallowed here.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: Optional[str],
        api_key: Optional[str] = None,
    ):
        self._client = client
        self.url = url
        self.api_key = api_key

    async def invoke(
        self,
        prompt: str,
        response_json_schema: Optional[Dict[str, Any]] = None,
        add_context_from_internet: bool = False,
    ) -> Dict[str, Any]:
        if not self.url:
            raise GenerativeAIError("Generative AI backend URL is not configured")

        payload = {
            "prompt": prompt,
            "response_json_schema": response_json_schema,
            "add_context_from_internet": add_context_from_internet,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else None

        start_time = time.time()
        try:
            response = await self._client.post(self.url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise GenerativeAIError(f"Generative AI request failed: {exc}") from exc

        if response.is_error:
            raise GenerativeAIError(
                f"Generative AI backend returned {response.status_code}"
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise GenerativeAIError("Generative AI backend returned invalid JSON") from exc

        if not isinstance(body, dict):
            raise GenerativeAIError("Generative AI backend did not return a JSON object")

        logger.info(
            "Generative AI call completed latency=%.4fs",
            time.time() - start_time,
        )
        return body
