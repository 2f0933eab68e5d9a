import json
import os
import re
import threading
import uuid
from typing import Any, Dict, List, Optional, Union

import openai

from .errors import LLMServiceError
from .logging import PipelineObserver


class LLMService:
    """Chat-completions client for the gates and the extractor.

    Works against OpenAI or any compatible endpoint (``base_url``). Every
    call is reported to the observer as an "LLM Prompt" artifact followed by
    an "LLM Usage Stats" artifact sharing the same ``call_id``; totals are
    accumulated in ``token_usage`` so steps can report their own share.
    """

    def __init__(self, config: Dict[str, Any], observer: Optional[PipelineObserver] = None):
        self.base_url = config.get("base_url") or os.environ.get("LLM_BASE_URL") or None
        self.api_key = (
            config.get("api_key")
            or os.environ.get("LLM_API_KEY")
            or os.environ.get("OPENAI_API_KEY")
        )
        self.timeout = float(config.get("timeout", 60.0))
        self.observer = observer
        self._client = None

        self.token_usage = {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}
        self._usage_lock = threading.Lock()
        self._local = threading.local()

    @property
    def client(self) -> openai.OpenAI:
        if self._client is None:
            if not self.api_key:
                raise LLMServiceError("Missing API key (set OPENAI_API_KEY or LLM_API_KEY)")
            self._client = openai.OpenAI(base_url=self.base_url, api_key=self.api_key, timeout=self.timeout)
        return self._client

    def thread_tokens(self) -> int:
        """Total tokens used by calls made from the current thread."""
        return getattr(self._local, "total_tokens", 0)

    def _emit(self, label: str, data: Dict[str, Any]):
        if self.observer:
            self.observer.on_artifact(label, data, depth=0)

    def _track_usage(self, call_id: str, model: str, usage) -> None:
        stats = {"call_id": call_id, "model": model, "prompt": None, "completion": None, "total": None}
        if usage:
            with self._usage_lock:
                self.token_usage["prompt_tokens"] += usage.prompt_tokens
                self.token_usage["completion_tokens"] += usage.completion_tokens
                self.token_usage["total_tokens"] += usage.total_tokens
            self._local.total_tokens = self.thread_tokens() + usage.total_tokens
            stats.update(prompt=usage.prompt_tokens, completion=usage.completion_tokens, total=usage.total_tokens)
        self._emit("LLM Usage Stats", stats)

    def call(self,
             prompt: str,
             model: str,
             temperature: float,
             max_tokens: Optional[int] = None,
             stop: Optional[Union[str, List[str]]] = None,
             system: Optional[str] = None,
             json_mode: bool = False,
             ) -> str:
        """Sends one system + user exchange and returns the stripped reply text.

        Raises ValueError for bad arguments and LLMServiceError for anything
        that goes wrong on the wire (missing key, timeout, HTTP error).
        """
        if max_tokens is not None and max_tokens <= 0:
            raise ValueError("max_tokens must be a positive integer")
        if temperature is None or temperature < 0:
            raise ValueError("temperature must be a non-negative float")

        messages = [{"role": "system", "content": system}] if system else []
        messages.append({"role": "user", "content": prompt})

        kwargs: Dict[str, Any] = {"model": model, "messages": messages, "temperature": temperature}
        if stop is not None:
            kwargs["stop"] = stop
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        call_id = uuid.uuid4().hex
        self._emit("LLM Prompt", {
            "call_id": call_id,
            "model": model,
            "temperature": temperature,
            "json_mode": json_mode,
            "system": system,
            "prompt": prompt,
        })

        try:
            response = self.client.chat.completions.create(**kwargs)
        except Exception as e:
            self._emit("LLM Usage Stats", {"call_id": call_id, "model": model, "error": str(e)})
            if isinstance(e, LLMServiceError):
                raise
            raise LLMServiceError(f"LLM Service Error [Model: {model}]: {e}", model=model) from e

        self._track_usage(call_id, model, response.usage)

        content = response.choices[0].message.content if response.choices else None
        return content.strip() if content else ""


def clean_json(content: str) -> str:
    """Strips Markdown code fences and trailing commas from model output."""
    content = re.sub(r"^```(?:json)?\s*|\s*```$", "", (content or "").strip(), flags=re.IGNORECASE)
    content = re.sub(r",\s*(?=[\]}])", "", content)
    return content


def parse_json_object(content: str) -> Dict[str, Any]:
    """Parses model output into a dict. Raises ValueError on anything else."""
    data = json.loads(clean_json(content))
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data
