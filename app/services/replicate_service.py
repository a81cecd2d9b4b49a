# app/services/replicate_service.py

import logging
from typing import Any, Dict, Optional

import httpx
import replicate
from replicate.exceptions import ModelError, ReplicateError

from app.errors import (
    ProviderError,
    TransientProviderError,
    ProviderAuthError,
    ProviderQuotaError,
    ProviderInputError,
    ProviderTimeoutError,
)

logger = logging.getLogger(__name__)

PROVIDER = "Replicate"


def translate_replicate_error(exc: Exception) -> Exception:
    if isinstance(exc, ProviderError):
        return exc
    if isinstance(exc, httpx.TimeoutException):
        return ProviderTimeoutError(f"Replicate request timeout: {exc}", PROVIDER)
    if isinstance(exc, httpx.TransportError):
        return TransientProviderError(f"Connection error: {exc}", PROVIDER)
    if isinstance(exc, ModelError):
        return ProviderError(f"Video model failed: {exc}", PROVIDER)
    if isinstance(exc, ReplicateError):
        code = getattr(exc, "status", None)
        if code == 401:
            return ProviderAuthError(f"Invalid API token: {exc}", PROVIDER)
        if code in (402, 429):
            return ProviderQuotaError(f"Replicate quota or billing limit reached: {exc}", PROVIDER)
        if code in (400, 422):
            return ProviderInputError(str(exc), PROVIDER)
    return exc


class ReplicateVideoService:
    model = "pixverse/pixverse-v4.5"

    def __init__(self, api_token: str, client: Optional[replicate.Client] = None):
        self.client = client or replicate.Client(api_token=api_token)

    async def generate(self, model_input: Dict[str, Any]) -> str:
        """Run the video model and return the URL of the rendered video."""
        try:
            output = await self.client.async_run(self.model, input=model_input, use_file_output=False)
        except Exception as e:
            raise translate_replicate_error(e) from e

        if isinstance(output, (list, tuple)):
            video = output[0] if output else None
        else:
            video = output
        if not video:
            raise ProviderError("No video received from Replicate", PROVIDER)
        # FileOutput exposes .url; plain outputs are already strings
        return str(getattr(video, "url", video))
