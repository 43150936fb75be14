from __future__ import annotations
import httpx
from typing import Any, Dict, List, Optional, Tuple
from loguru import logger
from .settings import settings


class GenerationError(RuntimeError):
	pass


def _endpoint(provider: str, model: str) -> Tuple[str, bool]:
	"""generateContent URL for the provider and whether the key goes in the query string."""
	if provider == "vertex":
		region = settings.vertex_region
		project = settings.vertex_project or "placeholder-project"
		return (
			f"https://{region}-aiplatform.googleapis.com/v1/projects/{project}/locations/{region}"
			f"/publishers/google/models/{model}:generateContent",
			False,
		)
	return f"https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent", True


class GeminiClient:
	"""Async client for Gemini generateContent.

	When OPENROUTER_API_KEY is set, a failed Gemini call is retried once as
	an OpenRouter chat completion with the same prompt.
	"""

	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		model: Optional[str] = None,
		timeout: Optional[float] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise GenerationError("GEMINI_API_KEY is not configured")
		self.model = model or settings.gemini_model
		default_url, self._auth_in_query = _endpoint(settings.gemini_provider, self.model)
		self.base_url = base_url or default_url
		timeout = timeout if timeout is not None else settings.engine_timeout_seconds
		self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

		self._openrouter_key = settings.openrouter_api_key
		self._fallback_client: Optional[httpx.AsyncClient] = None
		if self._openrouter_key:
			self._fallback_client = httpx.AsyncClient(timeout=timeout, transport=transport)

	def _auth(self) -> Tuple[Dict[str, str], Dict[str, str]]:
		if self._auth_in_query:
			return {"key": self.api_key}, {}
		return {}, {"x-goog-api-key": self.api_key}

	async def generate(
		self,
		prompt: str,
		*,
		system_instruction: Optional[str] = None,
		temperature: Optional[float] = None,
		max_output_tokens: Optional[int] = None,
		json_output: bool = False,
	) -> str:
		payload: Dict[str, Any] = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
		if system_instruction:
			payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}
		config: Dict[str, Any] = {}
		if temperature is not None:
			config["temperature"] = temperature
		if max_output_tokens is not None:
			config["maxOutputTokens"] = max_output_tokens
		if json_output:
			config["responseMimeType"] = "application/json"
		if config:
			payload["generationConfig"] = config

		try:
			return await self._call_gemini(payload)
		except (httpx.HTTPError, GenerationError) as primary:
			logger.warning("Gemini call to {} failed: {}", self.model, primary)
			if self._fallback_client is None:
				raise GenerationError("Gemini call failed and no fallback configured") from primary
			return await self._call_openrouter(prompt, system_instruction, primary)

	async def _call_gemini(self, payload: Dict[str, Any]) -> str:
		params, headers = self._auth()
		r = await self._client.post(self.base_url, params=params, headers=headers, json=payload)
		r.raise_for_status()
		try:
			return r.json()["candidates"][0]["content"]["parts"][0]["text"]
		except (ValueError, KeyError, IndexError, TypeError):
			raise GenerationError(f"Unexpected Gemini response: {r.text[:500]}")

	async def _call_openrouter(
		self,
		prompt: str,
		system_instruction: Optional[str],
		primary: Exception,
	) -> str:
		headers = {
			"Authorization": f"Bearer {self._openrouter_key}",
			"Content-Type": "application/json",
			"HTTP-Referer": settings.openrouter_referer,
			"X-Title": settings.openrouter_title,
		}
		messages: List[Dict[str, str]] = []
		if system_instruction:
			messages.append({"role": "system", "content": system_instruction})
		messages.append({"role": "user", "content": prompt})
		try:
			r = await self._fallback_client.post(
				settings.openrouter_base_url,
				headers={k: v for k, v in headers.items() if v},
				json={"model": settings.openrouter_model, "messages": messages},
			)
			r.raise_for_status()
			return r.json()["choices"][0]["message"]["content"]
		except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as fallback_err:
			raise GenerationError(
				f"Gemini primary call failed ({primary}); fallback via OpenRouter also failed"
			) from fallback_err

	async def aclose(self) -> None:
		await self._client.aclose()
		if self._fallback_client is not None:
			await self._fallback_client.aclose()
