"""Tests for insight projections, prompts, response parsing and the HTTP client."""

from __future__ import annotations

import json
from decimal import Decimal

import httpx
import pytest

from icarstok import insights, reports
from icarstok.constants import InsightKind
from icarstok.data_manager import ProductRow, PurchaseRow, SaleRow
from icarstok.exceptions import AIResponseError, ConfigError


SNAPSHOT = reports.InventorySnapshot(
    products=(
        ProductRow(
            product_id="p1",
            name="Shampoo",
            description="",
            sku="",
            category="",
            cost_price=Decimal("5"),
            sale_price=Decimal("9"),
            current_stock=6,
            min_stock=2,
            supplier_id="s1",
        ),
        ProductRow(
            product_id="p2",
            name="Soap",
            description="",
            sku="",
            category="",
            cost_price=Decimal("1"),
            sale_price=Decimal("2"),
            current_stock=0,
            min_stock=5,
            supplier_id=None,
        ),
    ),
    sales=(
        SaleRow(sale_id="a", product_id="p1", quantity=4, sale_price=Decimal("9"), sale_date="2025-01-10"),
        SaleRow(sale_id="b", product_id="p1", quantity=1, sale_price=Decimal("9"), sale_date="2025-01-12"),
    ),
    purchases=(
        PurchaseRow(
            purchase_id="c",
            product_id="p2",
            supplier_id="s1",
            quantity=10,
            cost_price=Decimal("1"),
            purchase_date="2025-01-11",
        ),
    ),
)


def _gemini_body(payload) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": json.dumps(payload)}]}}]}


def _generator(handler, **kwargs) -> insights.InsightGenerator:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    delays = kwargs.pop("delays", [])
    return insights.InsightGenerator(
        "test-key",
        endpoint="https://ai.test/v1beta/models",
        model="gemini-test",
        client=client,
        sleep=delays.append,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Projections and prompts
# ---------------------------------------------------------------------------


def test_sales_history_projection():
    assert insights.sales_history(SNAPSHOT) == [
        {"productId": "p1", "quantity": 4, "date": "2025-01-10"},
        {"productId": "p1", "quantity": 1, "date": "2025-01-12"},
    ]


def test_stock_positions_projection():
    assert insights.stock_positions(SNAPSHOT) == [
        {"productId": "p1", "currentStock": 6, "minStock": 2, "supplierId": "s1"},
        {"productId": "p2", "currentStock": 0, "minStock": 5, "supplierId": None},
    ]


def test_stock_movements_lists_sales_then_purchases():
    movements = insights.stock_movements(SNAPSHOT)

    assert [movement["type"] for movement in movements] == ["sale", "sale", "purchase"]
    assert movements[-1] == {"type": "purchase", "productId": "p2", "quantity": 10, "date": "2025-01-11"}


def test_product_sales_projection_includes_unsold_products():
    assert insights.product_sales(SNAPSHOT) == [
        {"productId": "p1", "name": "Shampoo", "totalSold": 5, "currentStock": 6},
        {"productId": "p2", "name": "Soap", "totalSold": 0, "currentStock": 0},
    ]


@pytest.mark.parametrize("kind", list(InsightKind))
def test_build_insight_request_is_deterministic(kind):
    first = insights.build_insight_request(kind, SNAPSHOT)
    second = insights.build_insight_request(kind, SNAPSHOT)

    assert first == second
    assert first.response_schema is insights.INSIGHT_SCHEMAS[kind]
    assert first.response_schema["type"] == "ARRAY"


def test_demand_prompt_embeds_sales_history():
    request = insights.build_insight_request(InsightKind.DEMAND_FORECAST, SNAPSHOT)

    assert json.dumps(insights.sales_history(SNAPSHOT), separators=(",", ":")) in request.prompt
    assert "3 months" in request.prompt


def test_replenishment_prompt_uses_previous_forecast_when_given():
    forecast = [insights.DemandForecast(product_id="p1", month="2025-02", predicted_quantity=7)]

    with_forecast = insights.build_insight_request(InsightKind.REPLENISHMENT, SNAPSHOT, demand_forecast=forecast)
    without = insights.build_insight_request(InsightKind.REPLENISHMENT, SNAPSHOT)

    assert '"predictedQuantity":7' in with_forecast.prompt
    assert "average demand" in without.prompt


def test_schemas_list_fields_in_order():
    items = insights.INSIGHT_SCHEMAS[InsightKind.ANOMALIES]["items"]

    assert items["propertyOrdering"] == ["type", "description", "productId", "date"]
    assert items["properties"]["date"] == {"type": "STRING"}
    demand = insights.INSIGHT_SCHEMAS[InsightKind.DEMAND_FORECAST]["items"]
    assert demand["properties"]["predictedQuantity"] == {"type": "NUMBER"}


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def test_parse_demand_forecast():
    records = insights.parse_insight_response(
        InsightKind.DEMAND_FORECAST,
        [{"productId": "p1", "month": "2025-02", "predictedQuantity": 12.0}],
    )

    assert records == [insights.DemandForecast(product_id="p1", month="2025-02", predicted_quantity=12)]


def test_parse_replenishment_allows_missing_supplier():
    records = insights.parse_insight_response(
        InsightKind.REPLENISHMENT,
        [{"productId": "p2", "quantityToOrder": 15, "supplierId": None}],
    )

    assert records[0].supplier_id is None
    assert records[0].quantity_to_order == 15


def test_parse_accepts_json_text():
    text = json.dumps([{"productId": "p1", "performance": "good", "recommendation": "keep stock"}])

    records = insights.parse_insight_response(InsightKind.PERFORMANCE, text)

    assert records == [insights.PerformanceNote(product_id="p1", performance="good", recommendation="keep stock")]


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"productId": "p1"},
        ["text"],
        [{"productId": "p1", "month": "2025-02"}],
        [{"productId": "p1", "month": "2025-02", "predictedQuantity": "many"}],
        [{"productId": "p1", "month": "2025-02", "predictedQuantity": True}],
        "not json",
    ],
)
def test_parse_rejects_malformed_payloads(payload):
    with pytest.raises(AIResponseError):
        insights.parse_insight_response(InsightKind.DEMAND_FORECAST, payload)


# ---------------------------------------------------------------------------
# HTTP generator
# ---------------------------------------------------------------------------


def test_generator_requires_api_key():
    with pytest.raises(ConfigError):
        insights.InsightGenerator("")


def test_generate_sends_gemini_payload_and_decodes_json():
    captured = {}
    answer = [{"productId": "p1", "month": "2025-02", "predictedQuantity": 3}]

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = request.url
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json=_gemini_body(answer))

    schema = insights.INSIGHT_SCHEMAS[InsightKind.DEMAND_FORECAST]
    result = _generator(handler).generate("forecast please", schema)

    assert result == answer
    assert captured["url"].path == "/v1beta/models/gemini-test:generateContent"
    assert captured["url"].params["key"] == "test-key"
    assert captured["body"]["contents"] == [{"role": "user", "parts": [{"text": "forecast please"}]}]
    assert captured["body"]["generationConfig"] == {
        "responseMimeType": "application/json",
        "responseSchema": schema,
    }


def test_generate_without_schema_returns_text():
    def handler(request: httpx.Request) -> httpx.Response:
        assert "generationConfig" not in json.loads(request.content)
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "hello"}]}}]})

    assert _generator(handler).generate("hi") == "hello"


def test_generate_retries_transient_failures_with_backoff():
    responses = [httpx.Response(503), httpx.Response(429), httpx.Response(200, json=_gemini_body([]))]
    delays = []

    def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    result = _generator(handler, max_retries=2, backoff_seconds=0.5, delays=delays).generate("x", {"type": "ARRAY"})

    assert result == []
    assert delays == [0.5, 1.0]


def test_generate_gives_up_after_max_retries():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("unreachable", request=request)

    with pytest.raises(AIResponseError):
        _generator(handler, max_retries=1).generate("x")

    assert len(calls) == 2


def test_generate_does_not_retry_client_errors():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(400, json={"error": {"message": "bad key"}})

    with pytest.raises(AIResponseError):
        _generator(handler, max_retries=3).generate("x")

    assert len(calls) == 1


@pytest.mark.parametrize(
    "body",
    [
        {"candidates": []},
        {"candidates": [{"content": {"parts": []}}]},
        {"promptFeedback": {"blockReason": "SAFETY"}},
    ],
)
def test_generate_rejects_unexpected_shapes(body):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=body)

    with pytest.raises(AIResponseError):
        _generator(handler).generate("x")


def test_request_insight_end_to_end():
    answer = [{"productId": "p2", "quantityToOrder": 20, "supplierId": "s1"}]

    def handler(request: httpx.Request) -> httpx.Response:
        prompt = json.loads(request.content)["contents"][0]["parts"][0]["text"]
        assert '"productId":"p2"' in prompt
        return httpx.Response(200, json=_gemini_body(answer))

    records = insights.request_insight(_generator(handler), InsightKind.REPLENISHMENT, SNAPSHOT)

    assert records == [insights.ReplenishmentSuggestion(product_id="p2", quantity_to_order=20, supplier_id="s1")]


def test_request_insight_empty_answer_is_an_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_gemini_body([]))

    with pytest.raises(AIResponseError):
        insights.request_insight(_generator(handler), InsightKind.ANOMALIES, SNAPSHOT)
