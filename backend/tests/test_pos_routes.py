"""Tests for the POS HTTP endpoints."""

from decimal import Decimal

import pytest

from possync.models.pos import PosConfiguration, PosSyncRun, PosTransaction, SyncRunStatus
from pos_payloads import branch_page, make_sale

API = "/api/v1/pos"


@pytest.fixture
def synced(client, pos_config, fake_api):
    """Ledger holding three transactions from one manual sync."""
    fake_api.pages[1] = branch_page(
        make_sale("sale-1"),
        make_sale("sale-2", serialNumber="SN-200", totalAmount=500),
        make_sale("sale-3", status="REJECTED"),
    )
    response = client.post(f"{API}/sync", json={"fromDate": "2025-01-10", "toDate": "2025-01-20"})
    assert response.status_code == 200
    return response.json()


class TestSyncEndpoints:

    def test_sync_with_camel_case_body(self, client, pos_config, fake_api, db_session):
        fake_api.pages[1] = branch_page(make_sale("sale-1"), make_sale("sale-2"))

        response = client.post(f"{API}/sync", json={"fromDate": "2025-01-01", "toDate": "2025-01-20"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Sync completed successfully. Processed: 2, Created: 2"
        assert body["data"]["processedTransactions"] == 2
        assert body["data"]["createdTransactions"] == 2
        assert body["data"]["errors"] == []
        assert body["data"]["pagination"] is None
        assert fake_api.payloads[0]["from"] == "2025-01-01"
        assert fake_api.payloads[0]["to"] == "2025-01-20"
        assert db_session.query(PosTransaction).count() == 2

    def test_sync_without_body_uses_default_window(self, client, pos_config, fake_api):
        response = client.post(f"{API}/sync")
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert len(fake_api.payloads) == 1

    def test_sync_when_not_configured(self, client, fake_api, db_session):
        response = client.post(f"{API}/sync", json={})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "POS sync is disabled or not configured properly"
        assert body["data"]["processedTransactions"] == 0
        assert body["data"]["errors"] == [body["message"]]
        assert fake_api.payloads == []
        assert db_session.query(PosSyncRun).count() == 0

    def test_sync_upstream_auth_failure(self, client, pos_config, fake_api):
        fake_api.status = 401
        response = client.post(f"{API}/sync", json={"fromDate": "2025-01-01", "toDate": "2025-01-05"})
        body = response.json()
        assert body["success"] is False
        assert "invalid API key" in body["message"]

    def test_sync_advanced_reports_pagination(self, client, pos_config, fake_api):
        fake_api.pages[1] = branch_page(make_sale("p1"), total_pages=2)
        fake_api.pages[2] = branch_page(make_sale("p2"), total_pages=2)

        response = client.post(
            f"{API}/sync-advanced",
            json={
                "fromDate": "2025-01-01",
                "toDate": "2025-01-10",
                "locationId": "LOC-1",
                "typeTransaction": "DEBIT",
                "maxPages": 5,
                "pageSize": 50,
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["processedTransactions"] == 2
        assert body["data"]["pagination"] == {"totalPages": 2, "pagesProcessed": 2}
        assert [p["page"] for p in fake_api.payloads] == [1, 2]
        assert fake_api.payloads[0]["pageSize"] == 20
        assert fake_api.payloads[0]["locationId"] == "LOC-1"
        assert fake_api.payloads[0]["typeTransaction"] == "DEBIT"

    def test_sync_advanced_rejects_zero_page_size(self, client, pos_config):
        response = client.post(f"{API}/sync-advanced", json={"pageSize": 0})
        assert response.status_code == 422


class TestConfigurationEndpoints:

    def test_get_without_row(self, client):
        response = client.get(f"{API}/configuration")
        assert response.status_code == 200
        body = response.json()
        assert body["id"] == "default"
        assert body["autoSyncEnabled"] is False
        assert body["hasApiKey"] is False

    def test_update_never_echoes_key(self, client, db_session):
        response = client.post(
            f"{API}/configuration",
            json={"apiKey": "super-secret", "maxDaysToSync": 15, "autoSyncEnabled": True},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["hasApiKey"] is True
        assert body["maxDaysToSync"] == 15
        assert "apiKey" not in body
        assert "super-secret" not in response.text

        config = db_session.query(PosConfiguration).one()
        assert config.api_key == "super-secret"

        again = client.get(f"{API}/configuration").json()
        assert again["id"] == str(config.id)
        assert "super-secret" not in str(again)

    def test_update_validates_ranges(self, client):
        response = client.post(f"{API}/configuration", json={"retentionDays": 0})
        assert response.status_code == 422


class TestSyncHistoryEndpoints:

    def test_history_lists_runs(self, client, synced):
        response = client.get(f"{API}/sync-history")
        assert response.status_code == 200
        runs = response.json()
        assert len(runs) == 1
        assert runs[0]["id"] == synced["data"]["syncRunId"]
        assert runs[0]["status"] == "COMPLETED"
        assert runs[0]["kind"] == "MANUAL"
        assert runs[0]["totalProcessed"] == 3
        assert runs[0]["startDate"] == "2025-01-10"

    def test_run_detail(self, client, synced):
        run_id = synced["data"]["syncRunId"]
        response = client.get(f"{API}/sync-history/{run_id}")
        assert response.status_code == 200
        body = response.json()
        assert body["errorDetails"] == []
        assert body["rawResponseSample"]["data"][0]["merchant"] == "Cafe Muralla"

    def test_unknown_run_is_404(self, client):
        response = client.get(f"{API}/sync-history/9999")
        assert response.status_code == 404


class TestLedgerEndpoints:

    def test_list_transactions(self, client, synced):
        response = client.get(f"{API}/transactions", params={"limit": 2})
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 3
        assert body["limit"] == 2
        assert body["hasMore"] is True
        assert len(body["transactions"]) == 2
        txn = body["transactions"][0]
        assert txn["merchant"] == "Cafe Muralla"
        assert txn["items"][0]["name"] == "Coffee"

    def test_filter_by_status_and_dates(self, client, synced):
        response = client.get(
            f"{API}/transactions",
            params={"status": "FAILED", "startDate": "2025-01-15", "endDate": "2025-01-15"},
        )
        body = response.json()
        assert body["total"] == 1
        assert body["transactions"][0]["externalId"] == "sale-3"

        response = client.get(f"{API}/transactions", params={"startDate": "2025-01-16"})
        assert response.json()["total"] == 0

    def test_invalid_status_is_422(self, client):
        response = client.get(f"{API}/transactions", params={"status": "BOGUS"})
        assert response.status_code == 422

    def test_advanced_listing_has_breakdowns(self, client, synced):
        response = client.get(f"{API}/transactions/advanced")
        assert response.status_code == 200
        analytics = response.json()["analytics"]

        assert len(analytics["locationBreakdown"]) == 1
        location = analytics["locationBreakdown"][0]
        assert location["locationId"] == "LOC-1"
        assert location["transactionCount"] == 3
        assert Decimal(location["totalAmount"]) == Decimal("2880")

        devices = {d["serialNumber"]: d for d in analytics["deviceBreakdown"]}
        assert devices["SN-100"]["transactionCount"] == 2
        assert devices["SN-200"]["transactionCount"] == 1
        assert analytics["deviceBreakdown"][0]["serialNumber"] == "SN-100"

    def test_by_device(self, client, synced):
        body = client.get(f"{API}/transactions/device/SN-200").json()
        assert body["total"] == 1
        assert body["transactions"][0]["externalId"] == "sale-2"

    def test_by_location(self, client, synced):
        assert client.get(f"{API}/transactions/location/LOC-1").json()["total"] == 3
        assert client.get(f"{API}/transactions/location/LOC-9").json()["total"] == 0

    def test_summary(self, client, synced):
        response = client.get(f"{API}/summary")
        assert response.status_code == 200
        body = response.json()
        assert body["totalTransactions"] == 3
        assert body["successfulTransactions"] == 2
        assert body["failedTransactions"] == 1
        assert body["pendingTransactions"] == 0
        assert Decimal(body["successfulAmount"]) == Decimal("1690")
        assert body["successRate"] == 67
        assert body["dailyBreakdown"] == []

    def test_summary_of_empty_ledger(self, client):
        body = client.get(f"{API}/summary").json()
        assert body["totalTransactions"] == 0
        assert body["successRate"] == 0


class TestDiagnosticsEndpoints:

    def test_health_before_any_sync(self, client):
        body = client.get(f"{API}/health").json()
        assert body["configured"] is False
        assert body["enabled"] is False
        assert body["totalSyncs"] == 0
        assert body["recentSyncs"] == []

    def test_health_after_sync(self, client, synced):
        body = client.get(f"{API}/health").json()
        assert body["configured"] is True
        assert body["enabled"] is True
        assert body["lastSyncStatus"] == SyncRunStatus.COMPLETED.value
        assert body["lastSuccessfulSyncAt"] is not None
        assert body["recentSyncs"][0]["processedTransactions"] == 3
        assert body["recentSyncs"][0]["hasErrors"] is False

    def test_db_write_check_leaves_no_rows(self, client, db_session):
        response = client.post(f"{API}/test-db")
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Database insertion test passed"}
        assert db_session.query(PosTransaction).count() == 0
