"""Incident response API flow tests."""

import json
import time
from pathlib import Path
from typing import Any

from fastapi.testclient import TestClient

from services.api_gateway.app import app
from services.api_gateway.dependencies import reset_state

client = TestClient(app)


def setup_function() -> None:
    reset_state()


def _create_incident(
    incident_id: str = "INC-001",
    category: str = "SOS",
    priority: str = "CRITICAL",
    severity: int = 4,
) -> dict[str, Any]:
    response = client.post(
        "/v1/incidents",
        json={
            "incident_id": incident_id,
            "category": category,
            "severity": severity,
            "priority": priority,
            "description": "Passenger reported feeling unsafe during trip.",
            "passenger": {"party_id": "P-1", "name": "Maria Santos", "rating": 4.8},
            "driver": {"party_id": "D-1", "name": "Juan Dela Cruz", "trip_count": 1200},
            "vehicle": {"plate_number": "ABC 1234", "model": "Toyota Vios"},
            "current_location": {
                "lat": 14.5547,
                "lng": 121.0244,
                "address": "Makati Avenue",
            },
        },
    )
    assert response.status_code == 200
    return response.json()


def _add_staff(
    staff_id: str,
    skills: list[str],
    status: str = "AVAILABLE",
) -> None:
    response = client.post(
        "/v1/ert",
        json={
            "staff_id": staff_id,
            "name": f"Responder {staff_id}",
            "role": "Field Responder",
            "status": status,
            "eta_minutes": 8,
            "skills": skills,
        },
    )
    assert response.status_code == 200


def _post_event(**payload: Any) -> dict[str, Any]:
    response = client.post("/v1/live/events", json=payload)
    assert response.status_code == 200
    return response.json()


def test_create_incident_derives_response_deadline() -> None:
    incident = _create_incident()

    assert incident["status"] == "ACTIVE"
    assert incident["version"] == 1
    assert incident["risk"] is None

    details = client.get("/v1/incidents/INC-001")
    assert details.status_code == 200
    assert details.json()["response_deadline"] > details.json()["created_at"]


def test_duplicate_incident_returns_409() -> None:
    _create_incident()

    response = client.post(
        "/v1/incidents",
        json={
            "incident_id": "INC-001",
            "category": "SOS",
            "severity": 3,
            "priority": "HIGH",
            "description": "duplicate",
            "passenger": {"party_id": "P-1", "name": "A"},
            "driver": {"party_id": "D-1", "name": "B"},
            "vehicle": {"plate_number": "X"},
            "current_location": {"lat": 0, "lng": 0},
        },
    )

    assert response.status_code == 409


def test_list_incidents_with_filters() -> None:
    _create_incident("INC-001", "SOS", "CRITICAL")
    _create_incident("INC-002", "FRAUD", "LOW")

    everything = client.get("/v1/incidents?status=ALL&category=ALL")
    fraud = client.get("/v1/incidents?category=FRAUD")
    search = client.get("/v1/incidents?search=inc-001")

    assert [item["incident_id"] for item in everything.json()] == ["INC-001", "INC-002"]
    assert [item["incident_id"] for item in fraud.json()] == ["INC-002"]
    assert [item["incident_id"] for item in search.json()] == ["INC-001"]


def test_status_flow_and_invalid_transition() -> None:
    _create_incident()

    investigating = client.post(
        "/v1/incidents/INC-001/status",
        json={"status": "INVESTIGATING", "expected_version": 1},
    )
    back_to_active = client.post(
        "/v1/incidents/INC-001/status",
        json={"status": "ACTIVE"},
    )

    assert investigating.status_code == 200
    assert investigating.json()["version"] == 2
    assert back_to_active.status_code == 409
    assert back_to_active.json()["detail"]["current_status"] == "INVESTIGATING"


def test_stale_version_returns_409() -> None:
    _create_incident()
    client.post("/v1/incidents/INC-001/status", json={"status": "INVESTIGATING"})

    response = client.post(
        "/v1/incidents/INC-001/status",
        json={"status": "RESOLVED", "expected_version": 1},
    )

    assert response.status_code == 409
    assert response.json()["detail"]["current_version"] == 2


def test_status_change_for_missing_incident_returns_404() -> None:
    response = client.post("/v1/incidents/missing/status", json={"status": "RESOLVED"})

    assert response.status_code == 404
    assert response.json()["detail"] == "Incident not found"


def test_attach_risk_assessment() -> None:
    _create_incident()

    response = client.put(
        "/v1/incidents/INC-001/risk",
        json={
            "risk_score": 82,
            "predicted_outcome": "Escalation likely",
            "pattern_flags": ["night_trip", "repeat_driver_report"],
            "is_recurring": True,
        },
    )

    assert response.status_code == 200
    assert response.json()["risk"]["risk_score"] == 82
    assert response.json()["risk"]["pattern_flags"] == [
        "night_trip",
        "repeat_driver_report",
    ]


def test_workflow_toggle_enforces_prerequisites() -> None:
    _create_incident()
    started = client.post("/v1/incidents/INC-001/workflow", json={})
    assert started.status_code == 200
    assert started.json()["total"] == 4

    blocked = client.post("/v1/incidents/INC-001/workflow/steps/1/toggle")
    first = client.post("/v1/incidents/INC-001/workflow/steps/0/toggle")
    second = client.post("/v1/incidents/INC-001/workflow/steps/1/toggle")

    assert blocked.status_code == 409
    assert blocked.json()["detail"]["missing"] == ["sos-contact"]
    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["completed"] == 2
    assert second.json()["progress"] == 0.5


def test_workflow_with_explicit_category_and_missing_step() -> None:
    _create_incident()

    started = client.post(
        "/v1/incidents/INC-001/workflow",
        json={"category": "MEDICAL"},
    )
    missing_step = client.post("/v1/incidents/INC-001/workflow/steps/9/toggle")

    assert started.json()["category"] == "MEDICAL"
    assert started.json()["total"] == 3
    assert missing_step.status_code == 404


def test_toggle_without_workflow_returns_404() -> None:
    _create_incident()

    response = client.post("/v1/incidents/INC-001/workflow/steps/0/toggle")

    assert response.status_code == 404
    assert response.json()["detail"] == "Workflow not started"


def test_recommendations_rank_available_relevant_staff_first() -> None:
    _create_incident()
    _add_staff("A", ["Crisis Management"])
    _add_staff("B", ["Crisis Management", "Tactical Response"])
    _add_staff("C", ["Crisis Management", "Tactical Response", "De-escalation"], "BUSY")

    response = client.get("/v1/incidents/INC-001/recommendations")

    assert response.status_code == 200
    ranked = response.json()
    assert [item["staff"]["staff_id"] for item in ranked] == ["B", "A", "C"]
    assert ranked[0]["relevance_score"] == 0.5
    assert ranked[2]["is_selectable"] is False


def test_dispatch_marks_staff_dispatched() -> None:
    _create_incident()
    _add_staff("A", ["Crisis Management"])

    dispatch = client.post("/v1/incidents/INC-001/dispatch", json={"staff_ids": ["A"]})
    again = client.post("/v1/incidents/INC-001/dispatch", json={"staff_ids": ["A"]})
    roster = client.get("/v1/ert")

    assert dispatch.status_code == 200
    assert dispatch.json()["staff_ids"] == ["A"]
    assert again.status_code == 409
    assert roster.json()[0]["status"] == "DISPATCHED"


def test_dispatch_to_closed_incident_returns_409() -> None:
    _create_incident()
    _add_staff("A", ["Crisis Management"])
    client.post("/v1/incidents/INC-001/status", json={"status": "RESOLVED"})

    response = client.post("/v1/incidents/INC-001/dispatch", json={"staff_ids": ["A"]})

    assert response.status_code == 409


def test_staff_status_callback_updates_roster() -> None:
    _add_staff("A", ["First Aid"], "DISPATCHED")

    response = client.put("/v1/ert/A/status", json={"status": "AVAILABLE"})
    missing = client.put("/v1/ert/Z/status", json={"status": "BUSY"})

    assert response.json()["status"] == "AVAILABLE"
    assert missing.status_code == 404


def test_escalation_endpoint_reports_reasons() -> None:
    _create_incident(severity=5)

    response = client.get("/v1/incidents/INC-001/escalation")

    assert response.status_code == 200
    assert response.json()["should_escalate"] is True
    assert "critical_severity" in response.json()["reasons"]


def test_live_events_are_bounded_and_counted() -> None:
    for index in range(3):
        _post_event(
            event_type="NEW_INCIDENT",
            message=f"SOS {index}",
            severity="CRITICAL",
        )
    for index in range(12):
        snapshot = _post_event(event_type="LOCATION_UPDATE", message=f"ping {index}")

    assert len(snapshot["events"]) == 10
    assert snapshot["events"][0]["message"] == "ping 11"
    assert snapshot["stats"]["critical_alerts"] == 3
    assert snapshot["stats"]["active_incidents"] == 3

    cleared = client.delete("/v1/live/events").json()
    assert cleared["events"] == []
    assert cleared["stats"]["critical_alerts"] == 3


def test_message_event_is_attached_to_incident() -> None:
    _create_incident()

    _post_event(
        event_type="MESSAGE_RECEIVED",
        message="I am safe now",
        incident_id="INC-001",
    )

    messages = client.get("/v1/incidents/INC-001").json()["messages"]
    assert [item["content"] for item in messages] == ["I am safe now"]


def test_recalculate_live_stats_from_catalog() -> None:
    _create_incident("INC-001", priority="CRITICAL")
    _create_incident("INC-002", priority="LOW")
    client.post("/v1/incidents/INC-002/status", json={"status": "RESOLVED"})

    stats = client.post("/v1/live/stats/recalculate").json()["stats"]

    assert stats["active_incidents"] == 1
    assert stats["critical_alerts"] == 1
    assert stats["resolved_today"] == 1


def test_metrics_report() -> None:
    _create_incident("INC-001")
    _create_incident("INC-002")
    _create_incident("INC-003")
    client.post("/v1/incidents/INC-001/status", json={"status": "RESOLVED"})
    client.post("/v1/incidents/INC-002/status", json={"status": "ESCALATED"})

    metrics = client.get("/v1/metrics").json()

    assert metrics["total_incidents"] == 3
    assert metrics["by_status"]["ACTIVE"] == 1
    assert metrics["resolution_rate"] == round(1 / 3, 4)
    assert metrics["escalation_rate"] == round(1 / 3, 4)
    assert metrics["avg_response_time_sec"] is not None
    assert metrics["sla_breaches"] == 0


def test_live_feed_replays_recorded_events(tmp_path: Path) -> None:
    path = tmp_path / "events.jsonl"
    path.write_text(
        "\n".join(
            json.dumps(
                {
                    "event_id": f"E{index}",
                    "event_type": "NEW_INCIDENT",
                    "message": f"feed {index}",
                    "severity": "CRITICAL",
                }
            )
            for index in range(3)
        ),
        encoding="utf-8",
    )

    started = client.post(
        "/v1/live/feeds",
        json={"events_path": str(path), "rate": 100.0},
    )
    assert started.status_code == 200
    feed_id = started.json()["feed_id"]

    state: dict[str, Any] = {}
    for _ in range(100):
        state = client.get(f"/v1/live/feeds/{feed_id}").json()
        if not state["running"]:
            break
        time.sleep(0.02)

    assert state["processed_events"] == 3
    assert state["error"] is None
    assert client.get("/v1/live/snapshot").json()["stats"]["critical_alerts"] == 3


def test_live_feed_with_missing_file_returns_400() -> None:
    response = client.post("/v1/live/feeds", json={"events_path": "/no/such.jsonl"})

    assert response.status_code == 400


def test_unknown_feed_returns_404() -> None:
    assert client.get("/v1/live/feeds/unknown").status_code == 404
