# app/services/elevenlabs_service.py

import logging
from typing import Optional

import httpx

from app.errors import (
    ProviderError,
    TransientProviderError,
    ProviderAuthError,
    ProviderQuotaError,
    ProviderTimeoutError,
)

logger = logging.getLogger(__name__)

PROVIDER = "ElevenLabs"
API_URL = "https://api.elevenlabs.io/v1/text-to-speech"
DEFAULT_MODEL = "eleven_multilingual_v2"
DEFAULT_VOICE = "Rachel"

VOICE_IDS = {
    "Rachel": "21m00Tcm4TlvDq8ikWAM",
    "Drew": "29vD33N1CtxCmqQRPOHJ",
    "Clyde": "2EiwWnXFnvU5JabPnv8n",
    "Paul": "5Q0t7uMcjvnagumLfvZi",
    "Domi": "AZnzlk1XvdvUeBnXmlld",
    "Dave": "CYw3kZ02Hs0563khs1Fj",
    "Fin": "D38z5RcWu1voky8WS1ja",
    "Sarah": "EXAVITQu4vr4xnSDxMaL",
    "Antoni": "ErXwobaYiN019PkySvjV",
}

VOICE_SETTINGS = {
    "stability": 0.5,
    "similarity_boost": 0.8,
    "style": 0.0,
    "use_speaker_boost": True,
}


def voice_id_for(voice: Optional[str]) -> str:
    return VOICE_IDS.get(voice or DEFAULT_VOICE, VOICE_IDS[DEFAULT_VOICE])


def estimate_duration(text: str) -> int:
    """Rough speech length in seconds, at about 15 characters per second."""
    return -(-len(text) // 15)


class ElevenLabsSpeechService:
    def __init__(self, api_key: str, timeout: float = 60.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    async def synthesize(self, text: str, voice: Optional[str] = None, model: Optional[str] = None) -> bytes:
        """Convert ``text`` to speech and return the MP3 bytes."""
        url = f"{API_URL}/{voice_id_for(voice)}"
        payload = {
            "text": text,
            "model_id": model or DEFAULT_MODEL,
            "voice_settings": VOICE_SETTINGS,
        }
        headers = {
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
            "xi-api-key": self.api_key,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(f"ElevenLabs request timeout: {e}", PROVIDER) from e
        except httpx.TransportError as e:
            raise TransientProviderError(f"Connection error: {e}", PROVIDER) from e

        if response.status_code == 401:
            logger.error(f"ElevenLabs API error: {response.text}")
            raise ProviderAuthError("Invalid ElevenLabs API key", PROVIDER)
        if response.status_code == 429:
            logger.error(f"ElevenLabs API error: {response.text}")
            raise ProviderQuotaError("ElevenLabs API quota exceeded", PROVIDER)
        if response.is_error:
            logger.error(f"ElevenLabs API error: {response.text}")
            raise ProviderError(f"ElevenLabs API error: {response.status_code}", PROVIDER)
        return response.content
