"""End-to-end tests for the widget session API."""

FINGERPRINT = {
    "hostname": "shop.example.com",
    "userAgent": "Mozilla/5.0 (Macintosh) Version/17.0 Safari/605.1.15",
    "language": "en-GB",
    "screenWidth": 1440,
    "screenHeight": 900,
    "timezone": "Europe/London",
    "pathname": "/",
    "viewportWidth": 1440,
}


class TestHealthAndRoot:
    def test_health(self, test_client):
        response = test_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_root(self, test_client):
        data = test_client.get("/").json()

        assert data["message"] == "Chat Widget Session API"
        assert data["storage_backend"] == "memory"
        assert data["version"] == "0.1.0"


class TestVisitEndpoint:
    """Test POST /widget/{agent_id}/visit."""

    def test_first_visit(self, test_client):
        response = test_client.post(
            "/widget/agent-1/visit",
            json={
                "fingerprint": FINGERPRINT,
                "popups": [
                    {"id": "welcome", "trigger": "first_visit"},
                    {"id": "back", "trigger": "return_visit"},
                    {"id": "deep", "trigger": "scroll_depth", "triggerValue": 60},
                ],
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["anonymous_id"].startswith("anon_")
        assert data["session_id"] == data["anonymous_id"]
        assert data["is_return_user"] is False
        assert data["profile"]["browser"] == "Safari"
        assert data["profile"]["total_visits"] == 1

        decisions = {d["popup_id"]: d for d in data["decisions"]}
        assert decisions["welcome"]["action"] == "arm"
        assert decisions["welcome"]["delay_seconds"] == 1.5
        assert decisions["back"]["action"] == "skip"
        assert decisions["deep"]["action"] == "arm"
        assert decisions["deep"]["delay_seconds"] is None

    def test_repeat_visit_keeps_identity(self, test_client):
        first = test_client.post(
            "/widget/agent-1/visit", json={"fingerprint": FINGERPRINT}
        ).json()
        second = test_client.post(
            "/widget/agent-1/visit", json={"fingerprint": FINGERPRINT}
        ).json()

        assert first["anonymous_id"] == second["anonymous_id"]
        assert second["is_return_user"] is False
        assert second["profile"]["total_visits"] == 2

    def test_unknown_trigger_is_left_out(self, test_client):
        data = test_client.post(
            "/widget/agent-1/visit",
            json={
                "fingerprint": FINGERPRINT,
                "popups": [{"id": "odd", "trigger": "hover"}, {"id": "ok", "trigger": "exit_intent"}],
            },
        ).json()

        assert [d["popup_id"] for d in data["decisions"]] == ["ok"]

    def test_non_object_popup_entries_are_left_out(self, test_client):
        response = test_client.post(
            "/widget/agent-1/visit",
            json={
                "fingerprint": FINGERPRINT,
                "popups": ["broken", None, 7, {"id": "ok", "trigger": "exit_intent"}],
            },
        )

        assert response.status_code == 200
        assert [d["popup_id"] for d in response.json()["decisions"]] == ["ok"]

    def test_invalid_fingerprint_rejected(self, test_client):
        response = test_client.post(
            "/widget/agent-1/visit", json={"fingerprint": {"hostname": "x"}}
        )

        assert response.status_code == 422


class TestCloseEndpoint:
    """Test POST /widget/{agent_id}/popups/{popup_id}/close."""

    def _visit(self, test_client, popups):
        return test_client.post(
            "/widget/agent-1/visit", json={"fingerprint": FINGERPRINT, "popups": popups}
        ).json()

    def test_manual_close_suppresses_next_visit(self, test_client, widget_storage):
        anonymous_id = self._visit(test_client, [])["anonymous_id"]
        widget_storage.mark_popup_shown("promo", anonymous_id, expiry_ms=2**62)

        response = test_client.post(
            "/widget/agent-1/popups/promo/close", json={"anonymous_id": anonymous_id}
        )

        assert response.json() == {"status": "dismissed"}
        data = self._visit(test_client, [{"id": "promo", "trigger": "exit_intent"}])
        assert data["decisions"][0]["phase"] == "suppressed"

    def test_expired_close_rearms_next_visit(self, test_client, widget_storage):
        anonymous_id = self._visit(test_client, [])["anonymous_id"]
        widget_storage.mark_popup_shown("promo", anonymous_id, expiry_ms=2**62)

        active = self._visit(test_client, [{"id": "promo", "trigger": "exit_intent"}])
        assert active["decisions"][0]["action"] == "redisplay"

        response = test_client.post(
            "/widget/agent-1/popups/promo/close",
            json={"anonymous_id": anonymous_id, "manual": False},
        )

        assert response.json() == {"status": "expired"}
        data = self._visit(test_client, [{"id": "promo", "trigger": "exit_intent"}])
        assert data["decisions"][0]["action"] == "arm"

    def test_close_requires_anonymous_id(self, test_client):
        response = test_client.post("/widget/agent-1/popups/promo/close", json={})

        assert response.status_code == 422
