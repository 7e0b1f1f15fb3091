from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)


class AICallMonitor:
	"""Bounded log of generative-AI calls made by this process.

	One instance lives on ``app.state.ai_monitor`` and is handed to each
	``GeminiClient``; nothing here is global.
	"""

	def __init__(self, max_calls: int = 100) -> None:
		self.max_calls = max(1, int(max_calls))
		self._calls: Deque[Dict[str, Any]] = deque(maxlen=self.max_calls)

	def record(self, endpoint: str, *, model: str, duration_ms: float, success: bool, error: Optional[str] = None) -> None:
		call = {
			"endpoint": endpoint,
			"model": model,
			"duration_ms": round(duration_ms, 1),
			"success": success,
			"error": error,
			"timestamp": datetime.now(timezone.utc).isoformat(),
		}
		self._calls.append(call)
		if success:
			logger.info("AI call %s model=%s %.0fms ok", endpoint, model, duration_ms)
		else:
			logger.warning("AI call %s model=%s %.0fms failed: %s", endpoint, model, duration_ms, error)

	def calls(self) -> List[Dict[str, Any]]:
		return list(self._calls)

	def summary(self) -> Dict[str, Any]:
		calls = self.calls()
		succeeded = sum(1 for c in calls if c["success"])
		avg = sum(c["duration_ms"] for c in calls) / len(calls) if calls else 0.0
		return {
			"total": len(calls),
			"succeeded": succeeded,
			"failed": len(calls) - succeeded,
			"average_duration_ms": round(avg, 1),
		}

	def clear(self) -> None:
		self._calls.clear()
