"""JSON logging with per-request context for the spam service.

Each record carries the bound request id, route, form id and a hashed
submitter prefix. Submitted field values never reach the log: extra
fields whose name hints at submission content or credentials are
replaced with ``[redacted]`` before serialization.
"""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from formguard.settings import settings

_CONTEXT_FIELDS = ("request_id", "route", "form_id", "submitter")
_CONTEXT: Dict[str, ContextVar[Optional[str]]] = {
	name: ContextVar(f"formguard_{name}", default=None) for name in _CONTEXT_FIELDS
}

_REDACT_HINTS = (
	"token",
	"secret",
	"authorization",
	"password",
	"api_key",
	"submitter_key",
	"email",
	"message",
	"content",
	"values",
	"fields",
	"body",
)

_STRING_LIMIT = 256
_ITEM_LIMIT = 10

# attributes every LogRecord has; anything else was passed through ``extra``
_RECORD_ATTRS = frozenset(logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__) | {"message", "taskName"}


def bind_context(**values: Optional[str]) -> Dict[str, Token]:
	"""Bind request-scoped fields; pass the returned tokens to :func:`reset_context`."""
	tokens: Dict[str, Token] = {}
	for name, value in values.items():
		if value is None:
			continue
		var = _CONTEXT.get(name)
		if var is None:
			raise KeyError(f"unknown log context field: {name}")
		tokens[name] = var.set(value)
	return tokens


def reset_context(tokens: Mapping[str, Token]) -> None:
	for name, token in tokens.items():
		_CONTEXT[name].reset(token)


def clear_context() -> None:
	for var in _CONTEXT.values():
		var.set(None)


def current_context() -> Dict[str, str]:
	values = {name: var.get() for name, var in _CONTEXT.items()}
	return {name: value for name, value in values.items() if value}


def _clean(value: Any) -> Any:
	if value is None or isinstance(value, (bool, int, float)):
		return value
	if isinstance(value, str):
		return value if len(value) <= _STRING_LIMIT else value[:_STRING_LIMIT] + "..."
	if isinstance(value, Mapping):
		cleaned = {str(key): _clean_field(str(key), item) for key, item in list(value.items())[:_ITEM_LIMIT]}
		if len(value) > _ITEM_LIMIT:
			cleaned["_truncated"] = len(value) - _ITEM_LIMIT
		return cleaned
	if isinstance(value, (list, tuple, set, frozenset)):
		items = [_clean(item) for item in list(value)[:_ITEM_LIMIT]]
		if len(value) > _ITEM_LIMIT:
			items.append(f"+{len(value) - _ITEM_LIMIT} more")
		return items
	return str(value)


def _clean_field(name: str, value: Any) -> Any:
	lowered = name.lower()
	if any(hint in lowered for hint in _REDACT_HINTS):
		return "[redacted]"
	return _clean(value)


class JSONLogFormatter(logging.Formatter):
	"""One JSON object per line."""

	def format(self, record: logging.LogRecord) -> str:  # noqa: A003
		payload: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"msg": record.getMessage(),
			"logger": record.name,
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		payload.update(current_context())
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		for name, value in record.__dict__.items():
			if name in _RECORD_ATTRS or name in payload:
				continue
			payload[name] = _clean_field(name, value)
		return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Keep a sampled share of INFO records; other levels always pass."""

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO:
			return True
		rate = settings.obs_log_sampling_rate_info
		return rate >= 1.0 or random.random() < max(0.0, rate)


def configure_logging() -> logging.Logger:
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root = logging.getLogger()
	root.handlers = [handler]
	root.setLevel(settings.obs_log_level)
	return logging.getLogger("formguard")
