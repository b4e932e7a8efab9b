"""
OpenRouter chat-completions caller for build-step extraction.

The extraction prompt always wants a single JSON object back.  Whether the
request may say so through ``response_format`` depends on the model behind
the OpenRouter slug, so every call is shaped by a :class:`ModelTraits`
lookup:

- ``json_mode``       send ``{"type": "json_object"}``
- ``route_strict``    ask OpenRouter for a backend that honours it
- ``reasoning``       drop ``<think>`` blocks from the answer

Models without JSON mode rely on the prompt alone; the response parser
copes with prose around the object.

Usage::

    import httpx
    from workers.llm.model_router import chat_json

    with httpx.Client() as client:
        result = chat_json(client, api_key, "google/gemini-2.0-flash-001", prompt)
    result.text, result.total_tokens
"""
from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx

log = logging.getLogger(__name__)

OPENROUTER_BASE = "https://openrouter.ai/api/v1"


@dataclass(frozen=True)
class ModelTraits:
    json_mode: bool = True
    route_strict: bool = False
    reasoning: bool = False
    headers: Dict[str, str] = field(default_factory=dict)
    label: str = ""


# First matching pattern wins.
_TRAITS: List[Tuple[str, ModelTraits]] = [
    (r"^openai/o\d", ModelTraits(reasoning=True, label="openai reasoning")),
    (r"^openai/", ModelTraits(label="openai")),
    (r"^google/gemini", ModelTraits(label="gemini")),
    (r"^anthropic/", ModelTraits(label="anthropic")),
    (r"^deepseek/deepseek-r1", ModelTraits(json_mode=False, reasoning=True, label="deepseek r1")),
    (r"^(deepseek|meta-llama|qwen|mistralai)/", ModelTraits(route_strict=True, label="open weights")),
]

_UNKNOWN = ModelTraits(json_mode=False, label="unknown, prompt-only JSON")

_THINK = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)


def provider_of(model: str) -> str:
    """``"google/gemini-2.0-flash-001"`` → ``"google"``; bare names → ``""``."""
    return model.split("/", 1)[0].lower() if "/" in model else ""


def traits_for(model: str) -> ModelTraits:
    for pattern, traits in _TRAITS:
        if re.search(pattern, model, re.IGNORECASE):
            return traits
    return _UNKNOWN


def strip_reasoning(text: str) -> str:
    return _THINK.sub("", text).strip()


@dataclass
class ChatResult:
    text: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    latency_ms: int = 0
    finish_reason: Optional[str] = None

    @property
    def truncated(self) -> bool:
        return self.finish_reason == "length"


def request_body(
    model: str,
    prompt: str,
    traits: ModelTraits,
    *,
    temperature: float = 0.0,
    max_tokens: Optional[int] = None,
) -> Dict[str, Any]:
    """Chat-completions payload for one user message asking for JSON."""
    body: Dict[str, Any] = {
        "model": model,
        "messages": [{"role": "user", "content": prompt}],
        "temperature": temperature,
    }
    if max_tokens is not None:
        body["max_tokens"] = max_tokens
    if traits.json_mode:
        body["response_format"] = {"type": "json_object"}
        if traits.route_strict:
            body["provider"] = {"require_parameters": True}
    return body


def chat_json(
    client: httpx.Client,
    api_key: str,
    model: str,
    prompt: str,
    *,
    temperature: float = 0.0,
    max_tokens: Optional[int] = None,
    timeout: float = 120.0,
    base_url: str = OPENROUTER_BASE,
) -> ChatResult:
    """Send *prompt* and return the assistant's answer.

    Raises
    ------
    httpx.HTTPStatusError
        On a non-2xx response.
    httpx.HTTPError
        On transport failures.
    """
    traits = traits_for(model)
    log.debug("Model %s: %s", model, traits.label)

    headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
    headers.update(traits.headers)

    t0 = time.perf_counter()
    resp = client.post(
        f"{base_url}/chat/completions",
        headers=headers,
        json=request_body(model, prompt, traits, temperature=temperature, max_tokens=max_tokens),
        timeout=timeout,
    )
    latency_ms = int((time.perf_counter() - t0) * 1000)

    if resp.is_error:
        log.error("OpenRouter returned %d for %s: %s", resp.status_code, model, resp.text[:500])
    resp.raise_for_status()

    data = resp.json()
    choices = data.get("choices") or []
    if not choices:
        log.warning("OpenRouter response for %s carried no choices", model)
    choice = choices[0] if choices else {}
    text = (choice.get("message", {}).get("content") or "").strip()
    if traits.reasoning:
        text = strip_reasoning(text)

    usage = data.get("usage") or {}
    result = ChatResult(
        text=text,
        model=data.get("model", model),
        prompt_tokens=usage.get("prompt_tokens", 0),
        completion_tokens=usage.get("completion_tokens", 0),
        total_tokens=usage.get("total_tokens", 0),
        latency_ms=latency_ms,
        finish_reason=choice.get("finish_reason"),
    )
    if result.truncated:
        log.warning("Completion from %s hit max_tokens; the JSON may be cut short", model)
    return result
