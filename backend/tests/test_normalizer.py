"""Tests for upstream response normalization and sale identifiers."""

import re

import pytest

from possync.services.pos.normalizer import (
    BranchListShape,
    ReportTransactionsShape,
    SingleBranchShape,
    UnrecognizedShape,
    classify_response,
    format_amount,
    normalize_response,
    resolve_sale_id,
    synthesize_sale_id,
)


class TestClassifyResponse:

    def test_branch_list(self):
        shape = classify_response({"data": [{"merchant": "A", "sales": []}, "junk"]})
        assert isinstance(shape, BranchListShape)
        assert len(shape.branches) == 1

    def test_capitalized_data_key(self):
        assert isinstance(classify_response({"Data": []}), BranchListShape)

    def test_single_branch(self):
        shape = classify_response({"data": {"merchant": "A", "sales": [{}]}})
        assert isinstance(shape, SingleBranchShape)

    def test_report_transactions(self):
        shape = classify_response({"data": {"commerce": {"name": "Shop"}, "transactions": []}})
        assert isinstance(shape, ReportTransactionsShape)
        assert shape.commerce == {"name": "Shop"}

    @pytest.mark.parametrize(
        "raw",
        [None, [], "text", {}, {"data": None}, {"data": "x"}, {"data": {"foo": 1}}],
    )
    def test_unrecognized(self, raw):
        shape = classify_response(raw)
        assert isinstance(shape, UnrecognizedShape)
        assert shape.reason


class TestNormalizeResponse:

    def test_branch_list_maps_location_and_sales(self):
        raw = {
            "data": [
                {
                    "merchant": "Cafe",
                    "location": {"id": 17, "address": "Main St"},
                    "sales": [{"id": "s1"}, {"id": "s2"}, "not-a-sale"],
                }
            ]
        }
        batches = normalize_response(raw)
        assert len(batches) == 1
        assert batches[0].merchant == "Cafe"
        assert batches[0].location.id == "17"
        assert batches[0].location.address == "Main St"
        assert [s["id"] for s in batches[0].sales] == ["s1", "s2"]

    def test_branch_without_location(self):
        batches = normalize_response({"data": {"sales": [{"id": "s1"}]}})
        assert batches[0].location.id is None
        assert batches[0].merchant is None

    def test_unrecognized_is_empty(self):
        assert normalize_response({"message": "ok"}) == []

    def test_report_transactions_are_remapped(self):
        raw = {
            "data": {
                "commerce": {"name": "Tienda"},
                "transactions": [
                    {
                        "serialNumber": "SN1",
                        "dateTime": "2025-01-15T10:30:00Z",
                        "amount": 5000,
                        "type": "CREDIT",
                        "status": "SUCCESSFUL",
                    },
                    {"transactionId": "T-9", "dateTime": "2025-01-16T08:00:00Z", "amount": 0},
                ],
            }
        }
        batches = normalize_response(raw)
        assert len(batches) == 1
        batch = batches[0]
        assert batch.merchant == "Tienda"
        assert batch.location.id == "unknown"
        assert batch.location.address == ""

        first, second = batch.sales
        assert first["id"] == "SN1-2025-01-15T10:30:00Z-5000"
        assert first["transactionDateTime"] == "2025-01-15T10:30:00Z"
        assert first["transactionType"] == "CREDIT"
        assert first["saleAmount"] == 5000
        assert first["totalAmount"] == 5000
        assert second["id"] == "T-9"
        assert second["saleAmount"] == 0

    def test_report_without_commerce_name(self):
        batches = normalize_response({"data": {"transactions": []}})
        assert batches[0].merchant == "unknown"
        assert batches[0].sales == []


class TestSaleIdentifiers:

    def test_native_id_preferred(self):
        assert resolve_sale_id({"id": "abc", "transactionId": "def"}) == "abc"

    @pytest.mark.parametrize("key", ["transactionId", "saleId", "tuuSaleId"])
    def test_alternate_id_keys(self, key):
        assert resolve_sale_id({"id": "", key: "alt-1"}) == "alt-1"

    def test_synthesized_id_is_deterministic_with_sequence(self):
        sale = {
            "serialNumber": "SN-100",
            "transactionDateTime": "2025-01-15T10:30:45.123Z",
            "totalAmount": 1190.0,
            "sequenceNumber": "42",
        }
        first = synthesize_sale_id(sale)
        assert first == synthesize_sale_id(dict(sale))
        assert first == "SN-100-20250115103045-1190-42"

    def test_synthesized_id_falls_back_to_sale_amount_and_unknown_serial(self):
        sale = {"transactionDateTime": "2025-01-15 10:30:45", "saleAmount": 500, "sequenceNumber": 7}
        assert synthesize_sale_id(sale) == "unknown-20250115103045-500-7"

    def test_synthesized_id_without_sequence_has_random_suffix(self):
        sale = {"serialNumber": "SN", "transactionDateTime": "2025-01-15T10:30:45Z", "totalAmount": 10}
        value = synthesize_sale_id(sale)
        assert re.fullmatch(r"SN-20250115103045-10-\d{1,4}", value)

    def test_resolve_synthesizes_when_no_id(self):
        sale = {"serialNumber": "SN", "transactionDateTime": "2025-01-15T10:30:45Z", "sequenceNumber": "3"}
        assert resolve_sale_id(sale) == "SN-20250115103045-0-3"

    @pytest.mark.parametrize("value,expected", [(10.0, "10"), (10.5, "10.5"), (7, "7"), ("12", "12")])
    def test_format_amount(self, value, expected):
        assert format_amount(value) == expected
