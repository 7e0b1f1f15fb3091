from __future__ import annotations
import asyncio
import json
import logging
import re
import time
import httpx
from typing import Any, Awaitable, Callable, Dict, List, Optional
from .ai_monitor import AICallMonitor
from .settings import settings

logger = logging.getLogger(__name__)

# Client errors that will not improve on retry; move on to the next model
_NON_RETRYABLE = {400, 401, 403, 404}


class GeminiError(RuntimeError):
	pass


class GeminiNotConfigured(GeminiError):
	pass


class GeminiResponseError(GeminiError, ValueError):
	pass


def extract_json_block(text: str) -> Dict[str, Any]:
	try:
		data = json.loads(text)
		if isinstance(data, dict):
			return data
	except Exception:
		pass
	candidates: List[str] = []
	fenced = re.search(r"```json\s*([\s\S]*?)\s*```", text)
	if fenced:
		candidates.append(fenced.group(1))
	# Fall back to the widest {...} span in the text
	match = re.search(r"\{[\s\S]*\}", text)
	if match:
		candidates.append(match.group(0))
	for candidate in candidates:
		try:
			data = json.loads(candidate)
		except Exception:
			continue
		if isinstance(data, dict):
			return data
	raise GeminiResponseError("Failed to parse JSON from Gemini output")


class GeminiClient:
	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		models: Optional[List[str]] = None,
		base_url: Optional[str] = None,
		max_retries: Optional[int] = None,
		retry_delay: Optional[float] = None,
		backoff_multiplier: Optional[float] = None,
		monitor: Optional[AICallMonitor] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
		sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
	) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise GeminiNotConfigured("GEMINI_API_KEY is not configured")
		self.models = list(models or settings.gemini_models)
		self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
		self.max_retries = settings.gemini_max_retries if max_retries is None else max(0, max_retries)
		self.retry_delay = settings.gemini_retry_delay_seconds if retry_delay is None else retry_delay
		self.backoff_multiplier = settings.gemini_backoff_multiplier if backoff_multiplier is None else backoff_multiplier
		self.monitor = monitor
		self._sleep = sleep
		self._client = httpx.AsyncClient(timeout=settings.gemini_timeout_seconds, transport=transport)

	def url_for(self, model: str) -> str:
		return f"{self.base_url}/{model}:generateContent"

	async def generate(
		self,
		prompt: str,
		*,
		temperature: Optional[float] = None,
		max_output_tokens: Optional[int] = None,
		endpoint: str = "generate",
	) -> str:
		payload: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
		generation_config: Dict[str, Any] = {}
		if temperature is not None:
			generation_config["temperature"] = temperature
		if max_output_tokens is not None:
			generation_config["maxOutputTokens"] = max_output_tokens
		if generation_config:
			payload["generationConfig"] = generation_config

		last_error: Optional[Exception] = None
		for model in self.models:
			for attempt in range(self.max_retries + 1):
				started = time.perf_counter()
				try:
					text = await self._post_payload(model, payload)
				except httpx.HTTPStatusError as http_err:
					last_error = http_err
					self._record(endpoint, model, started, http_err)
					if http_err.response.status_code in _NON_RETRYABLE:
						break
				except (httpx.RequestError, GeminiResponseError) as err:
					last_error = err
					self._record(endpoint, model, started, err)
				else:
					self._record(endpoint, model, started, None)
					return text
				if attempt < self.max_retries:
					delay = self.retry_delay * (self.backoff_multiplier ** attempt)
					logger.warning("Gemini %s attempt %d/%d failed; retrying in %.1fs", model, attempt + 1, self.max_retries + 1, delay)
					await self._sleep(delay)
			logger.warning("Gemini model %s gave up: %s", model, last_error)
		raise GeminiError(f"Gemini call failed for all models ({', '.join(self.models)}): {last_error}") from last_error

	async def generate_json(self, prompt: str, **kwargs: Any) -> Dict[str, Any]:
		raw = await self.generate(prompt, **kwargs)
		return extract_json_block(raw)

	async def _post_payload(self, model: str, payload: Dict[str, Any]) -> str:
		r = await self._client.post(self.url_for(model), params={"key": self.api_key}, json=payload)
		r.raise_for_status()
		try:
			data = r.json()
			return data["candidates"][0]["content"]["parts"][0]["text"]
		except Exception:
			raise GeminiResponseError(f"Unexpected Gemini response: {r.text[:200]}")

	def _record(self, endpoint: str, model: str, started: float, error: Optional[Exception]) -> None:
		if self.monitor is None:
			return
		self.monitor.record(
			endpoint,
			model=model,
			duration_ms=(time.perf_counter() - started) * 1000,
			success=error is None,
			error=str(error) if error is not None else None,
		)

	async def aclose(self) -> None:
		await self._client.aclose()
