"""
Tests for the POST /v1/telemetry endpoint.

Covers accepted readings, duplicates, 422 rejections with their machine
readable reason, and 503 when the telemetry store is down.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from fastapi.testclient import TestClient

from conftest import BASE_TS

INGEST_URL = "/v1/telemetry"


class TestIngestAccepted:
    def test_accepted(self, client: TestClient, pipeline, make_payload) -> None:
        response = client.post(INGEST_URL, json=make_payload())

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "accepted"
        assert body["device_id"] == "dev-1"
        assert body["ts"] == BASE_TS.isoformat()
        assert body["state"] == "fanned_out"
        assert body["duplicate"] is False
        assert body["billing_applied"] is True
        assert body["alerts_scheduled"] is True
        assert ("dev-1", BASE_TS) in pipeline.store.rows

    def test_duplicate_flagged(self, client: TestClient, pipeline, make_payload) -> None:
        client.post(INGEST_URL, json=make_payload())
        response = client.post(INGEST_URL, json=make_payload())

        assert response.status_code == 200
        assert response.json()["duplicate"] is True
        assert response.json()["billing_applied"] is False
        assert len(pipeline.store.rows) == 1

    def test_unknown_device_still_stored(
        self, client: TestClient, pipeline, make_payload
    ) -> None:
        response = client.post(INGEST_URL, json=make_payload("dev-unregistered"))

        assert response.status_code == 200
        assert response.json()["billing_applied"] is False
        assert ("dev-unregistered", BASE_TS) in pipeline.store.rows


class TestIngestRejected:
    def test_invalid_json(self, client: TestClient, pipeline) -> None:
        response = client.post(
            INGEST_URL,
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 422
        assert response.json()["reason"] == "invalid_json"

    def test_not_an_object(self, client: TestClient, pipeline) -> None:
        response = client.post(INGEST_URL, json=[1, 2, 3])

        assert response.status_code == 422
        assert response.json()["reason"] == "invalid_payload"

    def test_missing_device_id(self, client: TestClient, pipeline, make_payload) -> None:
        payload = make_payload()
        del payload["device_id"]

        response = client.post(INGEST_URL, json=payload)

        assert response.status_code == 422
        assert response.json()["reason"] == "missing_device_id"

    def test_power_factor_out_of_range(
        self, client: TestClient, pipeline, make_payload
    ) -> None:
        response = client.post(INGEST_URL, json=make_payload(power_factor=1.5))

        assert response.status_code == 422
        body = response.json()
        assert body["reason"] == "power_factor_out_of_range"
        assert "Power factor" in body["detail"]
        assert pipeline.store.rows == {}


class TestIngestStoreDown:
    def test_returns_503(self, client: TestClient, pipeline, make_payload) -> None:
        pipeline.store.fail = True

        response = client.post(INGEST_URL, json=make_payload())

        assert response.status_code == 503
        assert pipeline.hub.subscriber_count == 0

    def test_unexpected_store_error_returns_503(
        self, client: TestClient, pipeline, make_payload
    ) -> None:
        pipeline.store.crash = True

        response = client.post(INGEST_URL, json=make_payload())

        assert response.status_code == 503
