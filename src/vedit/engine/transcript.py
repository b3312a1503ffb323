"""Structured JSON transcripts of finished edit operations."""

from __future__ import annotations

import hashlib
import json
import logging
import re
import uuid
from dataclasses import asdict, dataclass, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from ..conversation import Conversation, OperationOutcome
from ..edits import EditRequest
from ..models.chat import ChatModel
from ..status import Status

__all__ = ["TranscriptEntry", "TranscriptStore", "load_transcript"]

LOGGER = logging.getLogger(__name__)


class TranscriptStore:
    """Write one JSON document per finished persistence run.

    Writing is best-effort: filesystem errors are logged and never reach the
    caller.
    """

    def __init__(self, logs_root: Path | str) -> None:
        self._root = Path(logs_root) / "operations"

    @property
    def root(self) -> Path:
        return self._root

    def record(
        self,
        request: EditRequest,
        model: ChatModel,
        conversation: Conversation | None,
        *,
        outcome: OperationOutcome | None = None,
        status: Status | None = None,
        error: BaseException | None = None,
    ) -> Path | None:
        """Persist the operation and return the written path, or None on failure."""
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.debug("Unable to create transcript directory %s: %s", self._root, exc)
            return None

        kind = request.kind.value
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "kind": kind,
            "request": _json_safe(request),
            "model": _json_safe(model),
            "messages": conversation.to_payload() if conversation is not None else [],
        }
        if outcome is not None:
            entry["outcome"] = _json_safe(outcome)
        if status is not None:
            entry["status"] = {"kind": status.kind.value, "message": status.message}
        if error is not None:
            entry["error"] = str(error)

        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        parts = ["operation", _slug(kind, fallback="edit"), timestamp, uuid.uuid4().hex[:8]]
        log_path = self._root / ("__".join(parts) + ".json")
        try:
            with log_path.open("w", encoding="utf-8") as handle:
                json.dump(entry, handle, indent=2, sort_keys=True, ensure_ascii=False)
        except OSError as exc:
            LOGGER.debug("Unable to write transcript %s: %s", log_path, exc)
            return None
        return log_path


@dataclass(slots=True)
class TranscriptEntry:
    """In-memory view of a stored operation transcript."""

    path: Path
    kind: str
    payload: Mapping[str, Any]

    @property
    def request(self) -> Mapping[str, Any]:
        value = self.payload.get("request")
        if isinstance(value, Mapping):
            return value
        return {}

    @property
    def outcome(self) -> Mapping[str, Any]:
        value = self.payload.get("outcome")
        if isinstance(value, Mapping):
            return value
        return {}

    @property
    def messages(self) -> list[Mapping[str, Any]]:
        value = self.payload.get("messages")
        if isinstance(value, list):
            return [item for item in value if isinstance(item, Mapping)]
        return []

    @property
    def model_id(self) -> str | None:
        model = self.payload.get("model")
        if isinstance(model, Mapping):
            candidate = model.get("id")
            if isinstance(candidate, str) and candidate.strip():
                return candidate.strip()
        return None

    @property
    def status(self) -> str | None:
        status = self.payload.get("status")
        if isinstance(status, Mapping):
            kind = status.get("kind")
            message = status.get("message")
            if isinstance(kind, str):
                return f"{kind}: {message}" if message else kind
        return None

    @property
    def files_modified(self) -> list[str]:
        files = self.outcome.get("files_modified")
        if isinstance(files, list):
            return sorted(str(item) for item in files)
        return []

    @property
    def tool_calls(self) -> list[str]:
        """Return ``name(arguments)`` strings for every tool call in order."""
        calls: list[str] = []
        for message in self.messages:
            for call in message.get("tool_calls") or []:
                if not isinstance(call, Mapping):
                    continue
                function = call.get("function")
                if isinstance(function, Mapping):
                    calls.append(f"{function.get('name')}({function.get('arguments') or ''})")
        return calls


def load_transcript(path: Path | str) -> TranscriptEntry:
    """Load a stored operation transcript from disk."""
    log_path = Path(path).resolve()
    with log_path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    kind = str(payload.get("kind") or "").strip()
    return TranscriptEntry(path=log_path, kind=kind, payload=payload)


def _json_safe(value: Any) -> Any:
    """Coerce complex objects into JSON-serialisable representations."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value.value if isinstance(value, Enum) else value
    if isinstance(value, Enum):
        return _json_safe(value.value)
    if isinstance(value, Path):
        return value.as_posix()
    if is_dataclass(value) and not isinstance(value, type):
        return _json_safe(asdict(value))
    if isinstance(value, dict):
        return {str(key): _json_safe(val) for key, val in value.items()}
    if isinstance(value, (set, frozenset)):
        return sorted(_json_safe(item) for item in value)
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    return str(value)


def _slug(value: str, *, fallback: str = "item", max_length: int = 80) -> str:
    """Normalise identifiers for use in log filenames."""
    cleaned = re.sub(r"[^A-Za-z0-9]+", "-", value).strip("-")
    slug = cleaned or fallback
    if len(slug) <= max_length:
        return slug
    digest = hashlib.sha256(slug.encode("utf-8")).hexdigest()[:8]
    prefix_length = max(max_length - len(digest) - 1, 1)
    prefix = slug[:prefix_length].rstrip("-") or slug[:prefix_length]
    return f"{prefix}-{digest}"
