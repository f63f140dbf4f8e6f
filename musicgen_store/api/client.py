"""
Async client for the remote music generation service.

The service is treated as opaque: it takes a prompt and returns an audio payload.
Failures are reported once; there is no retry or backoff at this layer.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp

from musicgen_store.exceptions import GenerationError
from musicgen_store.models.track import DEFAULT_MIME_TYPE, AdvancedSettings, AudioBlob

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeneratedAudio:
    """Audio returned by the generation service."""

    data: bytes
    mime_type: str = DEFAULT_MIME_TYPE

    def to_blob(self) -> AudioBlob:
        return AudioBlob(data=self.data, mime_type=self.mime_type)


class GenerationClient:
    """Thin async wrapper around the `/generate` and `/postprocess` endpoints."""

    GENERATE_PATH = "/generate"
    POST_PROCESS_PATH = "/postprocess"

    def __init__(self, base_url: str, timeout_s: float = 300):
        """
        Initializes the client.

        Args:
            base_url: Root URL of the generation service, without a trailing slash.
            timeout_s: Total time allowed for one generation request.
        """
        if not base_url:
            raise GenerationError("No generation service URL is configured.")
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._session: Optional[aiohttp.ClientSession] = None

    async def _initialize_session(self) -> None:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"Content-Type": "application/json"},
                timeout=aiohttp.ClientTimeout(total=self.timeout_s, connect=15),
            )

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        await self._initialize_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _post_for_audio(self, path: str, body: dict[str, Any]) -> GeneratedAudio:
        await self._initialize_session()
        url = f"{self.base_url}{path}"
        log.debug(f"POST {url}")
        try:
            async with self._session.post(url, json=body) as response:
                if response.status >= 400:
                    raise GenerationError(
                        f"Generation service returned status {response.status} "
                        f"for {path}."
                    )
                data = await response.read()
                mime_type = response.content_type or DEFAULT_MIME_TYPE
        except aiohttp.ClientError as e:
            raise GenerationError(f"Generation request to {path} failed: {e}") from e

        if not data:
            raise GenerationError(f"Generation service returned no audio for {path}.")
        if mime_type == "application/octet-stream":
            mime_type = DEFAULT_MIME_TYPE
        return GeneratedAudio(data=data, mime_type=mime_type)

    async def generate(self, prompt: str, duration: int) -> GeneratedAudio:
        """Generates a new track for a prompt."""
        return await self._post_for_audio(
            self.GENERATE_PATH, {"prompt": prompt, "duration": duration}
        )

    async def refine(
        self, prompt: str, duration: int, settings: AdvancedSettings
    ) -> GeneratedAudio:
        """Regenerates a track with the given sampling parameters."""
        return await self._post_for_audio(
            self.POST_PROCESS_PATH,
            {
                "prompt": prompt,
                "duration": duration,
                "advanced_params": settings.to_api_params(),
            },
        )
