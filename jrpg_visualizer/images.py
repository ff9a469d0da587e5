"""Image generator — turns a battle description into a pixel-art PNG.

The orchestrator injects an ImageGenerator matching the protocol:

    async def __call__(self, description: str, anchor_path: str | None,
                       previous_path: str | None) -> str | None: ...

The return value is the path of the saved image, or None when the model
answered without an image. Transport and protocol failures raise
ImageGenerationError.

Up to two reference images keep a session visually consistent: the session
anchor (its first image) and the most recent image, if that differs from
the anchor. References missing on disk are skipped.
"""

from __future__ import annotations

import base64
import logging
import time
from pathlib import Path
from typing import Protocol

import httpx

from jrpg_visualizer.prompts import build_image_prompt

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_MODEL = "gemini-3-pro-image-preview"
GEMINI_URL = "https://generativelanguage.googleapis.com"


class ImageGenerator(Protocol):
    async def __call__(
        self, description: str, anchor_path: str | None, previous_path: str | None
    ) -> str | None: ...


class ImageGenerationError(RuntimeError):
    """Raised when the image backend cannot be reached or returns an error."""


class GeminiImageGenerator:
    """Gemini ``generateContent`` client that saves the returned image.

    Args:
        api_key:    Gemini API key, sent as the ``key`` query parameter.
        output_dir: Directory images are written to. Created if missing.
        model:      Image-capable Gemini model.
        base_url:   API root, overridable for tests and proxies.
        timeout:    HTTP timeout in seconds.
    """

    def __init__(
        self,
        api_key: str,
        output_dir: Path | str,
        model: str = DEFAULT_IMAGE_MODEL,
        base_url: str = GEMINI_URL,
        timeout: float = 120.0,
    ) -> None:
        self._api_key = api_key
        self._output_dir = Path(output_dir)
        self._output_dir.mkdir(parents=True, exist_ok=True)
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    @property
    def url(self) -> str:
        return f"{self._base_url}/v1beta/models/{self._model}:generateContent"

    def _reference_parts(self, anchor_path: str | None, previous_path: str | None) -> list[dict]:
        parts = []
        candidates = [anchor_path]
        if previous_path != anchor_path:
            candidates.append(previous_path)
        for path in candidates:
            if not path or not Path(path).is_file():
                continue
            try:
                data = base64.b64encode(Path(path).read_bytes()).decode("ascii")
            except OSError as e:
                logger.warning("Failed to load reference image %s: %s", path, e)
                continue
            parts.append({"inlineData": {"mimeType": "image/png", "data": data}})
        return parts

    def _save_image(self, data: str, mime_type: str) -> str:
        extension = mime_type.split("/")[1] if "/" in mime_type else "png"
        path = self._output_dir / f"battle_{int(time.time() * 1000)}.{extension or 'png'}"
        path.write_bytes(base64.b64decode(data, validate=True))
        return str(path)

    async def __call__(
        self, description: str, anchor_path: str | None, previous_path: str | None
    ) -> str | None:
        references = self._reference_parts(anchor_path, previous_path)
        prompt = build_image_prompt(description, has_references=bool(anchor_path or previous_path))
        body = {
            "contents": [{"parts": [{"text": prompt}, *references]}],
            "generationConfig": {"responseModalities": ["image", "text"]},
        }
        logger.debug("image call model=%s references=%d", self._model, len(references))

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self.url, json=body, params={"key": self._api_key})
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ImageGenerationError(
                f"Image backend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise ImageGenerationError(f"Image backend timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise ImageGenerationError(f"Cannot reach image backend: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise ImageGenerationError("Image backend returned invalid JSON") from e

        try:
            return self._extract_image(data)
        except (ValueError, OSError, AttributeError, TypeError) as e:
            raise ImageGenerationError(f"Failed to process image response: {e}") from e

    def _extract_image(self, data: dict) -> str | None:
        """Save the first ``image/*`` part of a generateContent response."""
        error = data.get("error")
        if error:
            message = error.get("message", "") if isinstance(error, dict) else error
            raise ImageGenerationError(f"Image backend error: {message}")

        for candidate in data.get("candidates") or []:
            for part in (candidate.get("content") or {}).get("parts") or []:
                inline = part.get("inlineData") or {}
                if str(inline.get("mimeType", "")).startswith("image/") and inline.get("data"):
                    return self._save_image(inline["data"], inline["mimeType"])

        logger.warning("No image in Gemini response")
        return None
