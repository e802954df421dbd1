"""API endpoint tests."""

from castsales.models import CastDailyStats, EventPromotion, PromotionThreshold, SalesSettings


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_scheduler_status(self, client):
        response = client.get("/api/v1/scheduler/status")
        assert response.status_code == 200
        assert "tasks" in response.json()


class TestRecalculateEndpoint:

    def test_single_day(self, client, test_store, test_casts, make_order):
        make_order("Aoi", [("Champagne", 11000, ["Aoi", "Hana"])])
        response = client.post(
            "/api/v1/cast-stats/recalculate",
            json={"store_id": test_store.id, "date": "2026-10-01"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["castsProcessed"] == 2
        assert data["itemsProcessed"] == 2
        assert data["date"] == "2026-10-01"

    def test_range(self, client, test_store, test_casts):
        response = client.post(
            "/api/v1/cast-stats/recalculate",
            json={"store_id": test_store.id, "date_from": "2026-10-01", "date_to": "2026-10-03"},
        )
        assert response.status_code == 200
        results = response.json()["results"]
        assert [r["date"] for r in results] == ["2026-10-01", "2026-10-02", "2026-10-03"]
        assert all(r["success"] for r in results)

    def test_engine_failure_is_a_result_not_an_error(self, client, db_session, test_store, test_casts, make_order):
        db_session.add(SalesSettings(
            store_id=test_store.id,
            receipt_exclude_consumption_tax=True,
            receipt_exclude_service_charge=False,
        ))
        db_session.commit()
        make_order("Aoi", [("Wine", 1100, ["Aoi"])])

        response = client.post(
            "/api/v1/cast-stats/recalculate",
            json={"store_id": test_store.id, "date": "2026-10-01"},
        )
        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["error"]

    def test_missing_dates(self, client, test_store):
        response = client.post("/api/v1/cast-stats/recalculate", json={"store_id": test_store.id})
        assert response.status_code == 422

    def test_reversed_range(self, client, test_store):
        response = client.post(
            "/api/v1/cast-stats/recalculate",
            json={"store_id": test_store.id, "date_from": "2026-10-03", "date_to": "2026-10-01"},
        )
        assert response.status_code == 422

    def test_invalid_store(self, client):
        response = client.post("/api/v1/cast-stats/recalculate", json={"store_id": 0, "date": "2026-10-01"})
        assert response.status_code == 422


class TestFinalizeEndpoint:

    def test_finalize_and_unfinalize(self, client, db_session, test_store, test_casts, make_order):
        make_order("Aoi", [("Wine", 1100, ["Aoi"])])
        client.post("/api/v1/cast-stats/recalculate", json={"store_id": test_store.id, "date": "2026-10-01"})

        response = client.post(
            "/api/v1/cast-stats/finalize",
            json={"store_id": test_store.id, "date_from": "2026-10-01", "date_to": "2026-10-01"},
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "action": "finalize", "recordsUpdated": 1}
        assert db_session.query(CastDailyStats).filter(CastDailyStats.is_finalized == True).count() == 1

        response = client.post(
            "/api/v1/cast-stats/finalize",
            json={"store_id": test_store.id, "date_from": "2026-10-01", "date_to": "2026-10-01", "unfinalize": True},
        )
        assert response.json() == {"success": True, "action": "unfinalize", "recordsUpdated": 1}

    def test_reversed_range(self, client, test_store):
        response = client.post(
            "/api/v1/cast-stats/finalize",
            json={"store_id": test_store.id, "date_from": "2026-10-02", "date_to": "2026-10-01"},
        )
        assert response.status_code == 422


class TestPromotionEndpoint:

    def _promotion(self, db_session, store_id):
        promotion = EventPromotion(store_id=store_id, name="Autumn Fair")
        promotion.thresholds = [
            PromotionThreshold(min_amount=5000, max_amount=10000, reward_name="Bronze"),
            PromotionThreshold(min_amount=10000, max_amount=None, reward_name="Silver"),
        ]
        db_session.add(promotion)
        db_session.commit()
        db_session.refresh(promotion)
        return promotion

    def test_evaluate_json(self, client, db_session, test_store):
        promotion = self._promotion(db_session, test_store.id)
        response = client.post(
            f"/api/v1/promotions/{promotion.id}/evaluate",
            json={"receipts": [
                {"id": "r1", "table_number": "T1", "staff_name": "Aoi", "total_incl_tax": 12000},
                {"id": "r2", "table_number": "T2", "staff_name": ["Aoi", "Hana"], "total_incl_tax": 7000},
            ]},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["promotion_name"] == "Autumn Fair"

        first, second = data["achievements"]
        assert first["achieved_threshold"]["reward_name"] == "Silver"
        assert first["next_threshold"] is None
        assert second["achieved_threshold"]["reward_name"] == "Bronze"
        assert second["next_threshold"]["reward_name"] == "Silver"
        assert second["remaining_amount"] == 3000
        assert second["staff_name"] == "Aoi, Hana"

        assert data["stats"]["achieved_orders"] == 2
        assert data["stats"]["achievement_rate"] == 100

    def test_evaluate_csv(self, client, db_session, test_store):
        promotion = self._promotion(db_session, test_store.id)
        response = client.post(
            f"/api/v1/promotions/{promotion.id}/evaluate?format=csv",
            json={"receipts": [{"id": "r1", "items": [{"product_name": "Wine", "subtotal": 4000}]}]},
        )
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        assert response.content.startswith(b"\xef\xbb\xbf")
        assert "(not achieved)" in response.text

    def test_unknown_promotion(self, client):
        response = client.post("/api/v1/promotions/999/evaluate", json={"receipts": []})
        assert response.status_code == 404

    def test_invalid_format(self, client, db_session, test_store):
        promotion = self._promotion(db_session, test_store.id)
        response = client.post(f"/api/v1/promotions/{promotion.id}/evaluate?format=xml", json={"receipts": []})
        assert response.status_code == 422
