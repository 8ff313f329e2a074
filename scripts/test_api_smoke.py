from fastapi.testclient import TestClient

from alerting.main import app
from alerting.models import AlertChannel, AlertTemplate
from alerting.service import AlertingService

from conftest import RecordingNotifier


def _client(monkeypatch, api_key=None):
    if api_key:
        monkeypatch.setenv("API_KEY", api_key)
    else:
        monkeypatch.delenv("API_KEY", raising=False)
    monkeypatch.delenv("RATE_LIMIT_ENABLE", raising=False)
    rec = RecordingNotifier()
    svc = AlertingService(notifiers={"webhook": rec, "slack": rec})
    svc.add_channel(AlertChannel(id="ops", type="webhook", config={"url": "console"}))
    svc.add_template(AlertTemplate(id="wh", type="webhook", template="{{title}}"))
    app.state.service = svc
    return TestClient(app), rec


def test_alert_lifecycle_over_http(monkeypatch):
    client, rec = _client(monkeypatch)
    with client:
        assert client.get("/health").json() == {"status": "ok"}

        r = client.post("/rules", json={
            "id": "err", "name": "High Error Rate", "source": "application", "metric": "error.rate",
            "condition": "gt", "threshold": 10, "severity": "high", "channels": ["ops"], "cooldown": 15,
            "escalation_policy": {"id": "p", "levels": [{"level": 1, "delay": 5, "channels": ["ops"]}], "max_level": 1, "enabled": True},
        })
        assert r.status_code == 201, r.text
        assert client.post("/rules", json=r.json()).status_code == 409

        r = client.post("/samples", json={"name": "error.rate", "value": 15})
        assert r.status_code == 200
        created = r.json()
        assert len(created) == 1 and created[0]["current_value"] == 15
        alert_id = created[0]["id"]
        assert created[0]["next_escalation_at"] is not None
        assert client.post("/samples", json={"name": "error.rate", "value": 20}).json() == []

        r = client.post(f"/alerts/{alert_id}/suppress", json={"reason": "deploy", "actor": "bob", "duration_minutes": 30})
        assert r.status_code == 200 and r.json()["status"] == "suppressed"
        r = client.post(f"/alerts/{alert_id}/unsuppress")
        assert r.status_code == 200 and r.json()["status"] == "active"
        r = client.post(f"/alerts/{alert_id}/acknowledge", json={"actor": "alice"})
        assert r.status_code == 200 and r.json()["acknowledged_by"] == "alice"
        assert client.post(f"/alerts/{alert_id}/acknowledge", json={"actor": "alice"}).status_code == 409
        assert client.post("/alerts/missing/resolve", json={"actor": "x"}).status_code == 404

        r = client.post("/alerts", json={"title": "Manual", "severity": "critical", "channels": ["ops"]})
        assert r.status_code == 201
        r = client.get("/alerts", params={"severity": "critical"})
        assert [a["title"] for a in r.json()] == ["Manual"]

        stats = client.get("/stats").json()
        assert stats["total"] == 2 and stats["acknowledged"] == 1

        assert client.post("/channels/ops/test").json() == {"ok": True}
        assert client.post("/channels/nope/test").status_code == 404
        assert "alerting_notifications_total" in client.get("/metrics").text
    assert [cid for cid, _, _ in rec.sent].count("ops") >= 3


def test_direct_alert_links_to_rule_over_http(monkeypatch):
    client, rec = _client(monkeypatch)
    with client:
        r = client.post("/rules", json={
            "id": "r", "name": "R", "source": "s", "condition": "gt", "threshold": 1, "severity": "low",
            "suppression_rules": [{"id": "t", "condition": "test", "duration": 10, "reason": "test traffic"}],
        })
        assert r.status_code == 201, r.text
        r = client.post("/alerts", json={"title": "x", "channels": ["ops"], "rule_id": "r", "tags": {"test": "true"}})
        assert r.status_code == 201
        body = r.json()
        assert body["rule_id"] == "r"
        assert body["status"] == "suppressed"
        assert rec.sent == []


def test_crud_and_errors(monkeypatch):
    client, _ = _client(monkeypatch)
    with client:
        r = client.post("/channels", json={"id": "s", "type": "slack", "config": {"webhook_url": "https://x"}})
        assert r.status_code == 201
        r = client.put("/channels/s", json={"enabled": False})
        assert r.status_code == 200 and r.json()["enabled"] is False
        assert client.delete("/channels/s").status_code == 204
        assert client.delete("/channels/s").status_code == 404

        r = client.post("/templates", json={"id": "sl", "type": "slack", "template": "{{title}}"})
        assert r.status_code == 201
        assert client.put("/templates/sl", json={"template": "!{{title}}"}).json()["template"] == "!{{title}}"
        assert client.delete("/templates/sl").status_code == 204

        r = client.post("/rules", json={"id": "r", "name": "R", "source": "s", "condition": "lt", "threshold": 1, "severity": "low"})
        assert r.status_code == 201
        r = client.put("/rules/r", json={"threshold": 2, "enabled": False})
        assert r.json()["threshold"] == 2 and r.json()["enabled"] is False
        assert client.put("/rules/none", json={"threshold": 2}).status_code == 404
        assert client.delete("/rules/r").status_code == 204

        r = client.post("/rules", json={"id": "bad", "name": "B", "source": "s", "condition": "between", "threshold": 1, "severity": "low"})
        assert r.status_code == 400
        assert r.json() == {"code": "400", "message": "validation error"}


def test_api_key_required_for_mutations(monkeypatch):
    client, _ = _client(monkeypatch, api_key="secret")
    with client:
        assert client.post("/alerts", json={"title": "x"}).status_code == 401
        assert client.post("/alerts", json={"title": "x"}, headers={"X-API-KEY": "secret"}).status_code == 201
        assert client.get("/alerts").status_code == 200
