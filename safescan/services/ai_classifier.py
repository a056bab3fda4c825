"""AI tier: delegate ingredient classification to an external model.

Two call shapes are supported:

* ``classify_text`` posts raw label text to a prediction service
  (``{ai_service_url}/predict``) and normalizes whichever of the known
  response formats comes back into LOW/MEDIUM/HIGH.
* ``explain_ingredients`` sends an explicit ingredient list to an
  OpenAI-compatible chat completions endpoint and returns one
  Safe/Risky/Restricted explanation per ingredient.

Both retry exactly once, and only when the first response cannot be parsed
as JSON. Network errors and timeouts are never retried.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI

from safescan.config import Settings
from safescan.prompts import load_prompt
from safescan.services.errors import (
    AIConfigError,
    AIResponseError,
    AITimeoutError,
    AIUnavailableError,
)
from safescan.services.risk_vocabulary import (
    RiskLevel,
    RiskStatus,
    coerce_risk_level,
    coerce_risk_status,
    highest_level,
)

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 2

_PHONE_RE = re.compile(r"\b\d{10,}\b")
_EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
_SSN_RE = re.compile(r"\b\d{3}-\d{2}-\d{4}\b")
_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)```$", re.DOTALL | re.IGNORECASE)


class _ParseFailure(ValueError):
    pass


def sanitize_for_ai(text: str) -> str:
    """Redact phone numbers, e-mail addresses and SSN-like patterns."""
    sanitized = _PHONE_RE.sub("[PHONE REDACTED]", text or "")
    sanitized = _EMAIL_RE.sub("[EMAIL REDACTED]", sanitized)
    return _SSN_RE.sub("[SSN REDACTED]", sanitized)


def _strip_code_fence(text: str) -> str:
    stripped = (text or "").strip()
    match = _CODE_FENCE_RE.match(stripped)
    return match.group(1).strip() if match else stripped


def extract_json_array(text: str) -> List[Any]:
    """Return the first well-formed top-level JSON array found in ``text``.

    Tolerates code fences and prose before or after the array.
    """
    body = _strip_code_fence(text)
    decoder = json.JSONDecoder()
    start = body.find("[")
    while start != -1:
        try:
            value, _ = decoder.raw_decode(body, start)
        except json.JSONDecodeError:
            start = body.find("[", start + 1)
            continue
        except RecursionError as e:
            raise _ParseFailure("JSON array nested too deeply") from e
        if isinstance(value, list):
            return value
        start = body.find("[", start + 1)
    raise _ParseFailure("no JSON array in response")


def extract_json_payload(text: str) -> Any:
    """Parse a JSON object or array out of a possibly decorated response body."""
    body = _strip_code_fence(text)
    try:
        return json.loads(body)
    except json.JSONDecodeError:
        pass
    except RecursionError as e:
        raise _ParseFailure("response body nested too deeply") from e

    decoder = json.JSONDecoder()
    for index, char in enumerate(body):
        if char not in "[{":
            continue
        try:
            value, _ = decoder.raw_decode(body, index)
            return value
        except json.JSONDecodeError:
            continue
        except RecursionError as e:
            raise _ParseFailure("response body nested too deeply") from e
    raise _ParseFailure("response body is not JSON")


@dataclass(frozen=True)
class AIExplanation:
    name: str
    status: RiskStatus
    explanation: str

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "status": self.status.value, "explanation": self.explanation}


@dataclass(frozen=True)
class AIIngredient:
    name: str
    risk: RiskLevel
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"name": self.name, "risk": self.risk.value, "reason": self.reason}


@dataclass(frozen=True)
class AIClassification:
    matched_ingredients: List[AIIngredient] = field(default_factory=list)
    explanations: List[str] = field(default_factory=list)
    risk_level: RiskLevel = RiskLevel.LOW
    recommendations: Optional[Any] = None
    model_version: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matched_ingredients": [i.to_dict() for i in self.matched_ingredients],
            "explanations": list(self.explanations),
            "risk_level": self.risk_level.value,
            "recommendations": self.recommendations,
            "model_version": self.model_version,
        }


def parse_explanations(response_text: str) -> List[AIExplanation]:
    items = extract_json_array(response_text)
    results = []
    for item in items:
        if not isinstance(item, dict):
            continue
        name = str(item.get("name") or item.get("ingredient") or "").strip()
        if not name:
            continue
        results.append(
            AIExplanation(
                name=name,
                status=coerce_risk_status(item.get("status") or item.get("risk_level")),
                explanation=str(item.get("explanation") or item.get("reason") or "").strip(),
            )
        )
    return results


def _first(item: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = item.get(key)
        if value:
            return value
    return None


def _map_ingredients(items: Any, name_keys: Sequence[str], risk_keys: Sequence[str]) -> List[AIIngredient]:
    if not isinstance(items, list):
        return []
    ingredients = []
    for item in items:
        if not isinstance(item, dict):
            continue
        reason = _first(item, "reason", "explanation")
        ingredients.append(
            AIIngredient(
                name=str(_first(item, *name_keys) or "Unknown"),
                risk=coerce_risk_level(_first(item, *risk_keys)),
                reason=str(reason) if reason is not None else None,
            )
        )
    return ingredients


def _explanation_list(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(v) for v in value if v]
    if value:
        return [str(value)]
    return []


def normalize_ai_response(payload: Any) -> AIClassification:
    """Map any of the prediction service's response formats onto one shape.

    Recognized, in order: an object with a top-level ``risk_level``; an object
    with a ``results`` array; an object with a ``predictions`` array; a bare
    array of ingredient objects. Anything else yields no matches at LOW.
    """
    if isinstance(payload, list):
        payload = {"results": payload}
    if not isinstance(payload, dict):
        raise _ParseFailure(f"unexpected response type {type(payload).__name__}")

    explanations = _explanation_list(payload.get("explanations"))
    recommendations = payload.get("recommendations")
    model_version = payload.get("model_version") or payload.get("version")

    if payload.get("risk_level"):
        raw_items = payload.get("matched_ingredients") or payload.get("ingredients") or []
        return AIClassification(
            matched_ingredients=_map_ingredients(
                raw_items,
                ("name", "ingredient", "ingredient_name", "label"),
                ("risk", "risk_level", "status"),
            ),
            explanations=explanations,
            risk_level=coerce_risk_level(payload["risk_level"]),
            recommendations=recommendations,
            model_version=model_version,
        )

    if isinstance(payload.get("results"), list):
        ingredients = _map_ingredients(
            payload["results"],
            ("ingredient", "name", "ingredient_name"),
            ("risk", "risk_level", "status"),
        )
        return AIClassification(
            matched_ingredients=ingredients,
            explanations=explanations,
            risk_level=highest_level(i.risk for i in ingredients),
            recommendations=recommendations,
            model_version=model_version,
        )

    if isinstance(payload.get("predictions"), list):
        ingredients = _map_ingredients(
            payload["predictions"],
            ("ingredient", "name", "label"),
            ("risk", "confidence"),
        )
        return AIClassification(
            matched_ingredients=ingredients,
            explanations=explanations,
            risk_level=highest_level(i.risk for i in ingredients),
            recommendations=recommendations,
            model_version=payload.get("model_version"),
        )

    if not explanations and payload.get("message"):
        explanations = [str(payload["message"])]
    return AIClassification(
        explanations=explanations,
        recommendations=recommendations,
        model_version=payload.get("model_version"),
    )


class AIClassifierService:
    """Adapter over the two AI back-ends.

    ``http_client`` and ``openai_client`` may be injected; otherwise a client
    is created per call and closed afterwards.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
        openai_client: Optional[AsyncOpenAI] = None,
    ):
        self.settings = settings
        self._http_client = http_client
        self._openai_client = openai_client

    @property
    def text_service_configured(self) -> bool:
        return bool(self.settings.ai_service_url)

    @property
    def explain_configured(self) -> bool:
        return bool(self.settings.ai_api_key) or self._openai_client is not None

    def health(self) -> Dict[str, Any]:
        return {
            "provider": self.settings.ai_provider,
            "model": self.settings.ai_model,
            "configured": self.explain_configured,
            "text_service_configured": self.text_service_configured,
            "status": "ready" if self.explain_configured else "not_configured",
        }

    async def classify_text(self, text: str) -> AIClassification:
        if not self.settings.ai_service_url:
            raise AIConfigError("ai_service_url")

        url = f"{self.settings.ai_service_url.rstrip('/')}/predict"
        headers = {"Content-Type": "application/json"}
        if self.settings.ai_service_api_key:
            headers["Authorization"] = f"Bearer {self.settings.ai_service_api_key}"
        payload: Dict[str, Any] = {"text": sanitize_for_ai(text)}

        for attempt in range(1, MAX_ATTEMPTS + 1):
            body = await self._post_predict(url, payload, headers)
            try:
                result = normalize_ai_response(extract_json_payload(body))
            except _ParseFailure as e:
                logger.warning(f"AI prediction parse failure on attempt {attempt}: {e}")
                if attempt == MAX_ATTEMPTS:
                    raise AIResponseError(str(e), attempts=attempt) from e
                payload = {**payload, "instruction": load_prompt("json_only_reminder")}
                continue

            logger.info(
                f"AI classified text: {len(result.matched_ingredients)} ingredients, "
                f"risk {result.risk_level.value}"
            )
            return result

        raise AIResponseError("no attempts made", attempts=0)

    async def _post_predict(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> str:
        timeout = self.settings.ai_timeout_seconds
        client = self._http_client or httpx.AsyncClient(timeout=timeout)
        try:
            response = await client.post(url, json=payload, headers=headers, timeout=timeout)
            response.raise_for_status()
            return response.text
        except httpx.TimeoutException as e:
            logger.error(f"AI service timed out after {timeout}s")
            raise AITimeoutError(timeout) from e
        except httpx.HTTPStatusError as e:
            logger.error(f"AI service error: HTTP {e.response.status_code}")
            raise AIUnavailableError(
                f"HTTP {e.response.status_code}", status_code=e.response.status_code
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"AI service error: {e}")
            raise AIUnavailableError(str(e)) from e
        finally:
            if self._http_client is None:
                await client.aclose()

    async def explain_ingredients(self, ingredients: Sequence[str]) -> List[AIExplanation]:
        if self._openai_client is None and not self.settings.ai_api_key:
            raise AIConfigError("ai_api_key")

        prompt = load_prompt("classify_ingredients", ingredients=list(ingredients))
        client = self._openai_client or AsyncOpenAI(
            api_key=self.settings.ai_api_key,
            base_url=self.settings.ai_api_base,
            timeout=self.settings.ai_explain_timeout_seconds,
            max_retries=0,
        )

        try:
            for attempt in range(1, MAX_ATTEMPTS + 1):
                content = await self._complete(client, prompt)
                try:
                    results = parse_explanations(content)
                except _ParseFailure as e:
                    logger.warning(f"AI explain parse failure on attempt {attempt}: {e}")
                    if attempt == MAX_ATTEMPTS:
                        raise AIResponseError(str(e), attempts=attempt) from e
                    prompt = f"{prompt}\n\n{load_prompt('json_only_reminder')}"
                    continue

                logger.info(f"AI explained {len(results)} of {len(ingredients)} ingredients")
                return results
        finally:
            if self._openai_client is None:
                await client.close()

        raise AIResponseError("no attempts made", attempts=0)

    async def _complete(self, client: AsyncOpenAI, prompt: str) -> str:
        try:
            response = await client.chat.completions.create(
                model=self.settings.ai_model,
                messages=[{"role": "user", "content": prompt}],
                temperature=0.3,
                max_tokens=2000,
            )
        except APITimeoutError as e:
            logger.error(f"{self.settings.ai_provider} request timed out")
            raise AITimeoutError(self.settings.ai_explain_timeout_seconds) from e
        except APIStatusError as e:
            logger.error(f"{self.settings.ai_provider} API error: HTTP {e.status_code}")
            raise AIUnavailableError(f"HTTP {e.status_code}", status_code=e.status_code) from e
        except APIConnectionError as e:
            logger.error(f"{self.settings.ai_provider} connection error: {e}")
            raise AIUnavailableError(str(e)) from e

        if not response.choices or not response.choices[0].message.content:
            raise AIUnavailableError("empty completion")
        return response.choices[0].message.content
