from __future__ import annotations

import dataclasses
import http.client
import json
import logging
import re
import socket
import time
import typing as t
import urllib.error
import urllib.parse
import urllib.request

from reansql.config import Settings
from reansql.errors import GenerationExhausted, MalformedResponseError, NoCredentialsError

logger = logging.getLogger(__name__)

JsonDict = dict[str, t.Any]

Outcome = t.Literal["ok", "rate_limited", "transport_error", "malformed_response"]

RATE_LIMIT_STATUSES = (429, 403)


@dataclasses.dataclass(frozen=True)
class GenerationAttempt:
    credential: str
    outcome: Outcome
    text: str | None = None
    detail: str | None = None
    retry_after_s: float | None = None

    @property
    def ok(self) -> bool:
        return self.outcome == "ok"


def mask_key(key: str) -> str:
    return key[:8] + "..." if len(key) > 8 else "***"


def parse_retry_hint(body_text: str | None) -> float | None:
    """Pull the server-suggested retry delay (seconds) out of an error body."""
    if not body_text:
        return None
    try:
        parsed = json.loads(body_text)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        err = parsed.get("error")
        if isinstance(err, dict):
            details = err.get("details")
            if isinstance(details, list):
                for d in details:
                    if not isinstance(d, dict):
                        continue
                    if str(d.get("@type") or "").endswith("RetryInfo") and isinstance(d.get("retryDelay"), str):
                        m = re.search(r"(\d+(?:\.\d+)?)\s*s", d["retryDelay"])
                        if m:
                            return float(m.group(1))
    m2 = re.search(r"retry in ([0-9]+(?:\.[0-9]+)?)s", body_text, flags=re.IGNORECASE)
    if m2:
        return float(m2.group(1))
    return None


def parse_generated_text(data: t.Any) -> str:
    if not isinstance(data, dict):
        raise MalformedResponseError("Gemini response is not a JSON object.")
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        raise MalformedResponseError("Gemini returned no candidates.")
    first = candidates[0] if isinstance(candidates[0], dict) else {}
    content = first.get("content") or {}
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        raise MalformedResponseError(f"Gemini candidate has no parts. Finish reason: {first.get('finishReason')}")
    text_parts = [p.get("text") for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str) and p.get("text")]
    if not text_parts:
        raise MalformedResponseError(f"Gemini returned no text parts. Finish reason: {first.get('finishReason')}")
    return "\n".join(text_parts).strip()


class GeminiClient:
    def __init__(
        self,
        api_keys: t.Sequence[str],
        *,
        model: str = "gemini-2.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout_s: float = 60.0,
        max_retries: int = 3,
        temperature: float = 0.7,
        top_k: int = 40,
        top_p: float = 0.95,
        max_output_tokens: int = 2048,
        retry_hint_parser: t.Callable[[str | None], float | None] = parse_retry_hint,
    ) -> None:
        keys = [k for k in (api_keys or []) if k]
        if not keys:
            raise NoCredentialsError("No AI API keys found. Set GEMINI_API_KEYS (comma separated).")
        self.api_keys: tuple[str, ...] = tuple(keys)
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.temperature = temperature
        self.top_k = top_k
        self.top_p = top_p
        self.max_output_tokens = max_output_tokens
        self.retry_hint_parser = retry_hint_parser

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiClient":
        return cls(
            settings.gemini_api_keys,
            model=settings.gemini_model,
            timeout_s=settings.gemini_timeout_s,
            max_retries=settings.gemini_max_retries,
        )

    def _payload(self, prompt: str) -> JsonDict:
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "topK": self.top_k,
                "topP": self.top_p,
                "maxOutputTokens": self.max_output_tokens,
            },
        }

    def _request(self, key: str, prompt: str) -> urllib.request.Request:
        url = f"{self.base_url}/models/{urllib.parse.quote(self.model)}:generateContent?key={urllib.parse.quote(key)}"
        return urllib.request.Request(
            url,
            data=json.dumps(self._payload(prompt), ensure_ascii=False).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )

    def _attempt(self, key: str, prompt: str) -> GenerationAttempt:
        credential = mask_key(key)
        try:
            with urllib.request.urlopen(self._request(key, prompt), timeout=self.timeout_s) as resp:
                raw_bytes = resp.read()
        except urllib.error.HTTPError as e:
            try:
                body = e.read().decode("utf-8")
            except (OSError, UnicodeDecodeError):
                body = None
            if e.code in RATE_LIMIT_STATUSES:
                return GenerationAttempt(
                    credential=credential,
                    outcome="rate_limited",
                    detail=f"HTTP {e.code}: {(body or '')[:500]}",
                    retry_after_s=self.retry_hint_parser(body),
                )
            return GenerationAttempt(credential=credential, outcome="transport_error", detail=f"HTTP {e.code}: {(body or '')[:500]}")
        except (urllib.error.URLError, http.client.HTTPException, socket.timeout, OSError) as e:
            return GenerationAttempt(credential=credential, outcome="transport_error", detail=str(e))

        try:
            raw = raw_bytes.decode("utf-8")
            text = parse_generated_text(json.loads(raw))
        except UnicodeDecodeError as e:
            return GenerationAttempt(credential=credential, outcome="malformed_response", detail=f"Response is not UTF-8: {e}")
        except json.JSONDecodeError:
            return GenerationAttempt(credential=credential, outcome="malformed_response", detail=f"Invalid JSON: {raw[:500]}")
        except MalformedResponseError as e:
            return GenerationAttempt(credential=credential, outcome="malformed_response", detail=str(e))
        return GenerationAttempt(credential=credential, outcome="ok", text=text)

    def generate(self, prompt: str) -> str:
        """Return generated text, trying each key in order.

        Rate-limited keys are retried up to `max_retries` times, sleeping for
        the server hint when there is one and 1s, 2s, 4s... otherwise. Raises
        GenerationExhausted once every key has failed.
        """
        attempts: list[GenerationAttempt] = []
        for key in self.api_keys:
            retries = 0
            while True:
                attempt = self._attempt(key, prompt)
                attempts.append(attempt)
                if attempt.ok:
                    logger.info("Gemini call succeeded with key %s", attempt.credential)
                    return t.cast(str, attempt.text)

                logger.warning("Gemini call failed with key %s (%s): %s", attempt.credential, attempt.outcome, attempt.detail)
                if attempt.outcome != "rate_limited" or retries >= self.max_retries:
                    break
                delay = attempt.retry_after_s if attempt.retry_after_s is not None else float(2 ** retries)
                logger.info("Rate limited. Waiting %.1f seconds before retrying key %s", delay, attempt.credential)
                time.sleep(delay)
                retries += 1

        last = attempts[-1]
        raise GenerationExhausted(
            f"All Gemini API keys failed. Last error ({last.outcome}): {last.detail}",
            attempts=attempts,
        )
