from backend.app.api.routes import recommendations


class TestRecommendationsEndpoint:
    def test_recommendations_payload(self, client):
        res = client.post(
            "/v1/recommendations", json={"query": "Romantic dinner near Seven Mile Beach"}
        )
        assert res.status_code == 200
        body = res.json()

        assert body["markers"]
        marker = body["markers"][0]
        assert marker["id"] == f"marker-{marker['poi_id']}"
        assert set(body["highlighted_ids"]) <= {m["poi_id"] for m in body["markers"]}
        assert body["viewport"]["zoom"] == 14
        assert body["intent"]["location"]["name"] == "Seven Mile Beach"
        assert body["top_recommendations"][0]["rank"] == 1
        assert body["stats"]["total_candidates"] >= len(body["markers"])

        context = body["context"]
        assert context["message_count"] == 1
        assert context["interest_scores"]["restaurant"] > 0
        assert context["geographic_focus"]["name"] == "Seven Mile Beach"
        assert context["last_query"] == "Romantic dinner near Seven Mile Beach"

    def test_context_round_trip(self, client):
        first = client.post("/v1/recommendations", json={"query": "hotels in west bay"}).json()
        second = client.post(
            "/v1/recommendations",
            json={
                "query": "anything with a pool?",
                "history": [{"role": "user", "content": "hotels in west bay"}],
                "context": first["context"],
            },
        )
        assert second.status_code == 200
        body = second.json()
        assert body["intent"]["categories"] == ["hotel"]
        assert body["context"]["message_count"] == 2

    def test_mentions_are_reported(self, client):
        res = client.post(
            "/v1/recommendations", json={"query": "is Blue by Eric Ripert good for a date?"}
        )
        body = res.json()
        assert body["mentioned_place_ids"] == ["rest-blue-by-eric-ripert"]
        assert body["context"]["recent_place_ids"][0] == "rest-blue-by-eric-ripert"

    def test_limit_trims_markers(self, client):
        res = client.post("/v1/recommendations", json={"query": "beaches", "limit": 2})
        body = res.json()
        ids = [m["poi_id"] for m in body["markers"]]

        assert len(ids) <= 2
        assert set(body["highlighted_ids"]) | set(body["clustered_ids"]) <= set(ids)

    def test_reasoning_can_be_skipped(self, client):
        res = client.post(
            "/v1/recommendations", json={"query": "spa", "include_reasoning": False}
        )
        body = res.json()
        assert body["top_recommendations"] is None
        assert body["discover_also"] is None

    def test_request_validation(self, client):
        assert client.post("/v1/recommendations", json={"query": "x", "limit": 0}).status_code == 422
        assert client.post("/v1/recommendations", json={}).status_code == 422
        bad_context = {"query": "x", "context": {"message_count": -1}}
        assert client.post("/v1/recommendations", json=bad_context).status_code == 422

    def test_engine_unavailable(self, client, monkeypatch):
        monkeypatch.setattr(recommendations, "ENGINE", None)
        monkeypatch.setattr(recommendations, "init_error", RuntimeError("corpus missing"))

        res = client.post("/v1/recommendations", json={"query": "beach"})
        assert res.status_code == 503
        assert "corpus missing" in res.json()["detail"]


def test_place_mentions(client):
    res = client.post(
        "/v1/places/mentions", json={"text": "Drinks at Rackam's after Blue by Eric Ripert"}
    )
    assert res.status_code == 200
    matches = res.json()["matches"]

    assert [m["poi_id"] for m in matches] == ["bar-rackams", "rest-blue-by-eric-ripert"]
    assert matches[0]["match_type"] == "alias"
    assert matches[1]["match_type"] == "exact"
    assert matches[1]["confidence"] == 1.0


def test_request_id_header(client):
    res = client.post(
        "/v1/places/mentions", json={"text": "hi"}, headers={"X-Request-ID": "req-123"}
    )
    assert res.headers["X-Request-ID"] == "req-123"


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "healthy"
    assert body["checks"]["engine"]["status"] == "ok"
    assert body["checks"]["engine"]["corpus_size"] == 29
    assert body["checks"]["sentry"]["status"] == "disabled"


def test_health_reports_missing_engine(client, monkeypatch):
    monkeypatch.setattr(recommendations, "ENGINE", None)
    monkeypatch.setattr(recommendations, "init_error", RuntimeError("boom"))

    res = client.get("/health")
    assert res.status_code == 503
    assert "error" not in res.json()["checks"]["engine"]


def test_metrics(client):
    client.post("/v1/recommendations", json={"query": "beach"})
    res = client.get("/metrics")
    assert res.status_code == 200
    assert "recommendations_total" in res.text
    assert "http_requests_total" in res.text
