"""AI insight requests: snapshot projections, prompts, schemas and the HTTP client.

Insights are advisory. Nothing in this module mutates the inventory store: the
request builder reads an :class:`~icarstok.reports.InventorySnapshot`, the
generator talks to a Gemini-style ``generateContent`` endpoint, and the parser
turns the structured answer into typed records for display.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

import httpx

from . import data_manager, log
from .constants import InsightKind
from .exceptions import AIResponseError, ConfigError
from .reports import InventorySnapshot, product_sales_summary

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
DEFAULT_BACKOFF_SECONDS = 1.0


def _array_schema(properties: Mapping[str, str]) -> Dict[str, Any]:
    return {
        "type": "ARRAY",
        "items": {
            "type": "OBJECT",
            "properties": {name: {"type": kind} for name, kind in properties.items()},
            "propertyOrdering": list(properties),
        },
    }


INSIGHT_SCHEMAS: Dict[InsightKind, Dict[str, Any]] = {
    InsightKind.DEMAND_FORECAST: _array_schema(
        {"productId": "STRING", "month": "STRING", "predictedQuantity": "NUMBER"}
    ),
    InsightKind.REPLENISHMENT: _array_schema(
        {"productId": "STRING", "quantityToOrder": "NUMBER", "supplierId": "STRING"}
    ),
    InsightKind.ANOMALIES: _array_schema(
        {"type": "STRING", "description": "STRING", "productId": "STRING", "date": "STRING"}
    ),
    InsightKind.PERFORMANCE: _array_schema(
        {"productId": "STRING", "performance": "STRING", "recommendation": "STRING"}
    ),
}


@dataclass(frozen=True)
class DemandForecast:
    product_id: str
    month: str
    predicted_quantity: Union[int, float]


@dataclass(frozen=True)
class ReplenishmentSuggestion:
    product_id: str
    quantity_to_order: Union[int, float]
    supplier_id: Optional[str]


@dataclass(frozen=True)
class Anomaly:
    type: str
    description: str
    product_id: Optional[str]
    date: Optional[str]


@dataclass(frozen=True)
class PerformanceNote:
    product_id: str
    performance: str
    recommendation: str


InsightRecord = Union[DemandForecast, ReplenishmentSuggestion, Anomaly, PerformanceNote]


@dataclass(frozen=True)
class InsightRequest:
    """Prompt and response schema ready to send to the generator."""

    kind: InsightKind
    prompt: str
    response_schema: Dict[str, Any]


# ---------------------------------------------------------------------------
# Snapshot projections
# ---------------------------------------------------------------------------


def sales_history(snapshot: InventorySnapshot) -> List[Dict[str, Any]]:
    """Project each sale to ``{productId, quantity, date}``."""
    return [
        {"productId": sale.product_id, "quantity": sale.quantity, "date": sale.sale_date}
        for sale in snapshot.sales
    ]


def stock_positions(snapshot: InventorySnapshot) -> List[Dict[str, Any]]:
    """Project each product to ``{productId, currentStock, minStock, supplierId}``."""
    return [
        {
            "productId": product.product_id,
            "currentStock": product.current_stock,
            "minStock": product.min_stock,
            "supplierId": product.supplier_id,
        }
        for product in snapshot.products
    ]


def stock_movements(snapshot: InventorySnapshot) -> List[Dict[str, Any]]:
    """Project sales then purchases to ``{type, productId, quantity, date}``."""
    movements = [
        {"type": "sale", "productId": sale.product_id, "quantity": sale.quantity, "date": sale.sale_date}
        for sale in snapshot.sales
    ]
    movements.extend(
        {
            "type": "purchase",
            "productId": purchase.product_id,
            "quantity": purchase.quantity,
            "date": purchase.purchase_date,
        }
        for purchase in snapshot.purchases
    )
    return movements


def product_sales(snapshot: InventorySnapshot) -> List[Dict[str, Any]]:
    """Project each product to ``{productId, name, totalSold, currentStock}``."""
    return [
        {
            "productId": product.product_id,
            "name": product.name,
            "totalSold": product_sales_summary(snapshot, product.product_id),
            "currentStock": product.current_stock,
        }
        for product in snapshot.products
    ]


def _dump(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, separators=(",", ":"))


def build_insight_request(
    kind: InsightKind,
    snapshot: InventorySnapshot,
    *,
    demand_forecast: Optional[Sequence[DemandForecast]] = None,
) -> InsightRequest:
    """Build the prompt and schema for ``kind`` from ``snapshot``.

    The result depends only on its inputs. ``demand_forecast`` is used by the
    replenishment prompt when a previous forecast is available; otherwise the
    generator is told to assume average demand.
    """
    kind = InsightKind(kind)

    if kind is InsightKind.DEMAND_FORECAST:
        prompt = (
            f"Based on the following historical sales data: {_dump(sales_history(snapshot))}, "
            "forecast the demand for each product over the next 3 months. "
            'Answer in JSON like: [{"productId": "product_id", "month": "YYYY-MM", "predictedQuantity": 123}].'
        )
    elif kind is InsightKind.REPLENISHMENT:
        if demand_forecast:
            forecast_text = "the following demand forecast: " + _dump(
                [
                    {
                        "productId": item.product_id,
                        "month": item.month,
                        "predictedQuantity": item.predicted_quantity,
                    }
                    for item in demand_forecast
                ]
            )
        else:
            forecast_text = "an average demand, since no forecast is available"
        prompt = (
            f"Based on the current stock: {_dump(stock_positions(snapshot))} and {forecast_text}, "
            "suggest replenishment orders for each product, including the quantity and the supplier. "
            'Answer in JSON like: [{"productId": "product_id", "quantityToOrder": 50, "supplierId": "supplier_id"}].'
        )
    elif kind is InsightKind.ANOMALIES:
        prompt = (
            f"Analyze the following stock movements: {_dump(stock_movements(snapshot))}. "
            "Identify any anomalies (unusual spikes, unexpected drops, etc.) and explain what they may indicate. "
            'Answer in JSON like: [{"type": "anomaly", "description": "what happened", '
            '"productId": "affected_product_id", "date": "YYYY-MM-DD"}].'
        )
    else:
        prompt = (
            f"Analyze the performance of the following products based on their sales: {_dump(product_sales(snapshot))}. "
            "Identify the best and worst sellers and suggest actions to improve performance. "
            'Answer in JSON like: [{"productId": "product_id", "performance": "good/average/poor", '
            '"recommendation": "suggested action"}].'
        )

    return InsightRequest(kind=kind, prompt=prompt, response_schema=INSIGHT_SCHEMAS[kind])


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def _required_text(item: Mapping[str, Any], key: str) -> str:
    value = item.get(key)
    if not isinstance(value, str) or not value.strip():
        raise AIResponseError(f"Insight item is missing text field '{key}': {item!r}")
    return value


def _optional_text(item: Mapping[str, Any], key: str) -> Optional[str]:
    value = item.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise AIResponseError(f"Insight field '{key}' must be text: {item!r}")
    return value


def _number(item: Mapping[str, Any], key: str) -> Union[int, float]:
    value = item.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise AIResponseError(f"Insight item is missing numeric field '{key}': {item!r}")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _parse_item(kind: InsightKind, item: Mapping[str, Any]) -> InsightRecord:
    if kind is InsightKind.DEMAND_FORECAST:
        return DemandForecast(
            product_id=_required_text(item, "productId"),
            month=_required_text(item, "month"),
            predicted_quantity=_number(item, "predictedQuantity"),
        )
    if kind is InsightKind.REPLENISHMENT:
        return ReplenishmentSuggestion(
            product_id=_required_text(item, "productId"),
            quantity_to_order=_number(item, "quantityToOrder"),
            supplier_id=_optional_text(item, "supplierId"),
        )
    if kind is InsightKind.ANOMALIES:
        return Anomaly(
            type=_required_text(item, "type"),
            description=_required_text(item, "description"),
            product_id=_optional_text(item, "productId"),
            date=_optional_text(item, "date"),
        )
    return PerformanceNote(
        product_id=_required_text(item, "productId"),
        performance=_required_text(item, "performance"),
        recommendation=_required_text(item, "recommendation"),
    )


def parse_insight_response(kind: InsightKind, payload: Any) -> List[InsightRecord]:
    """Convert the generator's structured answer into typed records.

    Raises:
        AIResponseError: If ``payload`` is not a non-empty list of objects with
            the fields required for ``kind``.
    """
    kind = InsightKind(kind)
    if isinstance(payload, str):
        payload = _decode_json(payload)
    if not isinstance(payload, list):
        log.error("Insight response for '%s' is not a list: %r", kind.value, payload)
        raise AIResponseError(f"Expected a list of {kind.value} insights")
    if not payload:
        log.error("Insight response for '%s' is empty", kind.value)
        raise AIResponseError(f"The generator returned no {kind.value} insights")

    records = []
    for item in payload:
        if not isinstance(item, dict):
            log.error("Insight item for '%s' is not an object: %r", kind.value, item)
            raise AIResponseError(f"Insight item is not an object: {item!r}")
        try:
            records.append(_parse_item(kind, item))
        except AIResponseError as exc:
            log.error("Malformed '%s' insight: %s", kind.value, exc)
            raise
    return records


def _decode_json(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        log.error("Generator returned invalid JSON: %s", exc)
        raise AIResponseError(f"Generator returned invalid JSON: {exc}") from exc


# ---------------------------------------------------------------------------
# HTTP generator client
# ---------------------------------------------------------------------------


class InsightGenerator:
    """Client for a ``generateContent`` text-generation endpoint.

    Each call is bounded by ``timeout`` seconds and retried up to
    ``max_retries`` times, with linear backoff, on transport errors, HTTP 429
    and 5xx responses. Other HTTP errors fail immediately.

    Args:
        api_key (str): Credential sent as the ``key`` query parameter.
        endpoint (str): Base URL holding the model resources.
        model (str): Model name appended to ``endpoint``.
        timeout (float): Per-request timeout in seconds.
        max_retries (int): Extra attempts after the first failure.
        backoff_seconds (float): Base delay multiplied by the attempt number.
        client (httpx.Client | None): Preconfigured client, mainly for tests.
        sleep (Callable[[float], None]): Delay function used between attempts.

    Raises:
        ConfigError: If ``api_key`` is empty.
    """

    def __init__(
        self,
        api_key: str,
        *,
        endpoint: str = data_manager.DEFAULT_AI_ENDPOINT,
        model: str = data_manager.DEFAULT_AI_MODEL,
        timeout: float = data_manager.DEFAULT_AI_TIMEOUT_SECONDS,
        max_retries: int = data_manager.DEFAULT_AI_MAX_RETRIES,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not api_key:
            log.error("AI generator requested without an API key")
            raise ConfigError("Missing AI ApiKey in configuration")
        self.api_key = api_key
        self.url = f"{endpoint.rstrip('/')}/{model}:generateContent"
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._client = client or httpx.Client(timeout=timeout)
        self._owns_client = client is None
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: data_manager.ConfigSettings, **kwargs: Any) -> "InsightGenerator":
        return cls(
            settings.ai_api_key,
            endpoint=settings.ai_endpoint,
            model=settings.ai_model,
            timeout=settings.ai_timeout_seconds,
            max_retries=settings.ai_max_retries,
            **kwargs,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "InsightGenerator":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def generate(self, prompt: str, response_schema: Optional[Dict[str, Any]] = None) -> Any:
        """Send ``prompt`` and return the answer.

        Returns:
            Any: The decoded JSON value when ``response_schema`` is given,
                otherwise the raw answer text.

        Raises:
            AIResponseError: On exhausted retries, non-retryable HTTP errors,
                or an answer without candidate text.
        """
        payload: Dict[str, Any] = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        if response_schema is not None:
            payload["generationConfig"] = {
                "responseMimeType": "application/json",
                "responseSchema": response_schema,
            }

        body = self._post(payload)
        text = _candidate_text(body)
        if response_schema is None:
            return text
        return _decode_json(text)

    def _post(self, payload: Dict[str, Any]) -> Any:
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                response = self._client.post(
                    self.url,
                    params={"key": self.api_key},
                    json=payload,
                    timeout=self.timeout,
                )
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if status not in RETRYABLE_STATUS_CODES or attempt == attempts:
                    log.error("AI request failed with HTTP %s: %s", status, exc.response.text)
                    raise AIResponseError(f"AI request failed with HTTP {status}") from exc
                log.warning("AI request returned HTTP %s (attempt %d/%d)", status, attempt, attempts)
            except httpx.RequestError as exc:
                if attempt == attempts:
                    log.error("AI request failed: %s", exc)
                    raise AIResponseError(f"AI request failed: {exc}") from exc
                log.warning("AI request error %s (attempt %d/%d)", exc, attempt, attempts)
            except ValueError as exc:
                log.error("AI response body is not JSON: %s", exc)
                raise AIResponseError("AI response body is not JSON") from exc
            self._sleep(self.backoff_seconds * attempt)

        raise AIResponseError("AI request failed")


def _candidate_text(body: Any) -> str:
    try:
        text = body["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
        log.error("Unexpected AI response: %r", body)
        raise AIResponseError("Unexpected AI response shape") from exc
    if not isinstance(text, str):
        raise AIResponseError("AI response text is not a string")
    return text


def request_insight(
    generator: InsightGenerator,
    kind: InsightKind,
    snapshot: InventorySnapshot,
    *,
    demand_forecast: Optional[Sequence[DemandForecast]] = None,
) -> List[InsightRecord]:
    """Build, send, and parse one insight request."""
    request = build_insight_request(kind, snapshot, demand_forecast=demand_forecast)
    log.info("Requesting '%s' insight (%d characters)", request.kind.value, len(request.prompt))
    records = parse_insight_response(request.kind, generator.generate(request.prompt, request.response_schema))
    log.info("Received %d '%s' insight(s)", len(records), request.kind.value)
    return records


__all__ = [
    "INSIGHT_SCHEMAS",
    "DemandForecast",
    "ReplenishmentSuggestion",
    "Anomaly",
    "PerformanceNote",
    "InsightRequest",
    "InsightGenerator",
    "sales_history",
    "stock_positions",
    "stock_movements",
    "product_sales",
    "build_insight_request",
    "parse_insight_response",
    "request_insight",
]
