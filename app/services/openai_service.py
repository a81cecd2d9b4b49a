# app/services/openai_service.py

import logging
from typing import Optional, Tuple

import openai
from openai import AsyncOpenAI

from app.errors import (
    ProviderError,
    TransientProviderError,
    ProviderAuthError,
    ProviderQuotaError,
    ProviderInputError,
)

logger = logging.getLogger(__name__)

PROVIDER = "OpenAI"

# (filename, content, content_type) as accepted by the SDK's multipart upload
ImageFile = Tuple[str, bytes, str]


def translate_openai_error(exc: Exception) -> Exception:
    """Tag an OpenAI SDK exception with the matching error kind."""
    if isinstance(exc, ProviderError):
        return exc
    if isinstance(exc, openai.APIConnectionError):
        return TransientProviderError(f"Connection error: {exc}", PROVIDER)
    if isinstance(exc, openai.AuthenticationError):
        return ProviderAuthError(f"Invalid API key: {exc}", PROVIDER)
    if isinstance(exc, openai.RateLimitError):
        return ProviderQuotaError(f"Rate limit or quota exceeded: {exc}", PROVIDER)
    if isinstance(exc, openai.BadRequestError):
        return ProviderInputError(str(exc), PROVIDER)
    return exc


class OpenAIImageService:
    model = "gpt-image-1"

    def __init__(self, api_key: str, client: Optional[AsyncOpenAI] = None):
        # Retries belong to retry_with_backoff, not the SDK
        self.client = client or AsyncOpenAI(api_key=api_key, max_retries=0)

    async def generate(self, prompt: str, size: str, output_format: str, background: str, quality: str) -> str:
        """Generate one image and return its base64 payload."""
        params = dict(
            model=self.model,
            prompt=prompt,
            size=size,
            output_format=output_format,
            background=background,
            n=1,
            quality=quality,
        )
        if output_format in ("jpeg", "webp"):
            params["output_compression"] = 100
        try:
            response = await self.client.images.generate(**params)
        except Exception as e:
            raise translate_openai_error(e) from e
        return self._first_b64(response)

    async def edit(
        self,
        prompt: str,
        image: ImageFile,
        mask: Optional[ImageFile],
        size: str,
        background: str,
    ) -> str:
        """Edit ``image`` (optionally restricted to ``mask``) and return the base64 payload."""
        params = dict(
            model=self.model,
            image=image,
            prompt=prompt,
            size=size,
            background=background,
            n=1,
            quality="high",
        )
        if mask is not None:
            params["mask"] = mask
        try:
            response = await self.client.images.edit(**params)
        except Exception as e:
            raise translate_openai_error(e) from e
        return self._first_b64(response)

    @staticmethod
    def _first_b64(response) -> str:
        # gpt-image-1 always answers with base64 data
        if not response.data or not response.data[0].b64_json:
            raise ProviderError("No image data received from OpenAI", PROVIDER)
        return response.data[0].b64_json
