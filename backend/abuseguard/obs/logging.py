"""JSON logging for the abuse service.

Every record carries the request context (request id and route template).
Evidence text and credentials never reach the log stream: fields whose names
look like either are replaced with a marker before serialisation.
"""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping

from abuseguard.settings import settings

_CONTEXT: ContextVar[Mapping[str, str]] = ContextVar("abuseguard_log_context", default={})

CONTEXT_FIELDS = ("request_id", "route")

# evidence carries raw user content; the rest are credentials
_REDACTED_FIELDS = (
	"excerpt",
	"evidence",
	"pattern",
	"token",
	"secret",
	"authorization",
	"password",
	"email",
)
_REDACTED = "[redacted]"

_MAX_STRING_LENGTH = 256
_MAX_ITEMS = 10

_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

# only the per-request access log is sampled; suspension audit lines are always kept
_SAMPLED_LOGGERS = ("abuseguard.http",)


def bind_context(**fields: str | None) -> Token:
	"""Merge ``fields`` into the log context; pass the token to :func:`reset_context`."""
	unknown = set(fields) - set(CONTEXT_FIELDS)
	if unknown:
		raise ValueError(f"unknown log context fields: {sorted(unknown)}")
	merged = dict(_CONTEXT.get())
	merged.update({key: value for key, value in fields.items() if value})
	return _CONTEXT.set(merged)


def reset_context(token: Token) -> None:
	_CONTEXT.reset(token)


def current_context() -> Mapping[str, str]:
	return _CONTEXT.get()


def _clip(value: Any) -> Any:
	if isinstance(value, Enum):
		return value.value
	if isinstance(value, datetime):
		return value.isoformat()
	if isinstance(value, str):
		return value if len(value) <= _MAX_STRING_LENGTH else value[:_MAX_STRING_LENGTH] + "..."
	if isinstance(value, Mapping):
		clipped = {str(key): _field_value(str(key), item) for key, item in list(value.items())[:_MAX_ITEMS]}
		if len(value) > _MAX_ITEMS:
			clipped["_truncated"] = len(value) - _MAX_ITEMS
		return clipped
	if isinstance(value, (list, tuple, set, frozenset)):
		items = [_clip(item) for item in list(value)[:_MAX_ITEMS]]
		if len(value) > _MAX_ITEMS:
			items.append(f"+{len(value) - _MAX_ITEMS} more")
		return items
	if value is None or isinstance(value, (bool, int, float)):
		return value
	return str(value)


def _field_value(key: str, value: Any) -> Any:
	lowered = key.lower()
	if any(marker in lowered for marker in _REDACTED_FIELDS):
		return _REDACTED
	return _clip(value)


class JSONLogFormatter(logging.Formatter):
	"""One JSON object per record: service identity, request context, then extras."""

	def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (match logging api)
		payload: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"logger": record.name,
			"msg": record.getMessage(),
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		payload.update(current_context())
		for key, value in vars(record).items():
			if key in _RECORD_ATTRS or key in payload:
				continue
			payload[key] = _field_value(key, value)
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		return json.dumps(payload, separators=(",", ":"))


class AccessLogSamplingFilter(logging.Filter):
	"""Sample info-level access logs at ``LOG_SAMPLING_RATE_INFO``."""

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO or not record.name.startswith(_SAMPLED_LOGGERS):
			return True
		rate = max(0.0, min(1.0, settings.obs_log_sampling_rate_info))
		return rate >= 1.0 or random.random() < rate


def configure_logging() -> None:
	root = logging.getLogger()
	root.handlers.clear()
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(AccessLogSamplingFilter())
	root.addHandler(handler)
	root.setLevel(settings.obs_log_level)
