import pytest
from fastapi.testclient import TestClient

from furtherance.config import AppSettings, TimerSettings
from furtherance.webapp import create_app


@pytest.fixture
def app(tmp_path, clock):
    application = create_app(
        db_path=tmp_path / "furtherance.sqlite3",
        autosave_path=tmp_path / "autosave.txt",
        settings=AppSettings(timer=TimerSettings.from_minutes(pomodoro=True)),
        run_ticker=False,
    )
    application.state.engine.clock = clock
    yield application
    application.state.store.close()


@pytest.fixture
def client(app):
    return TestClient(app)


def add_task(client, name="Write", **overrides):
    payload = {
        "name": name,
        "project": "Client",
        "tags": "#Docs #docs",
        "rate": "30",
        "start_time": "2024-03-14T09:00:00",
        "stop_time": "2024-03-14T10:00:00",
    }
    payload.update(overrides)
    return client.post("/api/tasks", json=payload)


def test_timer_start_and_stop(client, clock):
    response = client.post("/api/timer/start", json={"text": "Write #docs @Client $60"})
    assert response.status_code == 200
    assert response.json()["state"] == "running"
    assert response.json()["session"]["name"] == "Write"

    assert client.post("/api/timer/start", json={"text": "Other"}).status_code == 409

    clock.advance(90)
    status = client.get("/api/status").json()
    assert status["elapsed_seconds"] == 90
    assert status["display_seconds"] == 25 * 60 - 90

    task = client.post("/api/timer/stop").json()["task"]
    assert task["duration_seconds"] == 90
    assert task["earnings"] == pytest.approx(1.5)
    assert client.get("/api/status").json()["state"] == "idle"


def test_timer_start_rejects_bad_input(client):
    response = client.post("/api/timer/start", json={"text": "#tag first"})
    assert response.status_code == 400
    assert "first character cannot be a '#'" in response.json()["detail"]


def test_break_cycle_and_notifications(client, app, clock):
    client.post("/api/timer/start", json={"text": "Focus"})
    assert client.post("/api/timer/more-time").status_code == 409

    clock.advance(25 * 60)
    app.state.engine.tick()
    notes = client.get("/api/notifications").json()["notifications"]
    assert [note["kind"] for note in notes] == ["pomodoro_time_up"]
    assert client.get("/api/notifications").json()["notifications"] == []

    response = client.post("/api/timer/break")
    assert response.status_code == 200
    assert response.json()["status"]["state"] == "on_break"
    assert client.post("/api/timer/continue").json()["state"] == "running"


def test_manual_task_crud(client):
    response = add_task(client)
    assert response.status_code == 200
    task = response.json()
    assert task["tags"] == "#docs"
    assert task["duration_seconds"] == 3600

    response = client.patch(f"/api/tasks/{task['id']}", json={"name": "Rewrite", "rate": "10"})
    assert response.status_code == 200
    assert response.json()["name"] == "Rewrite"
    assert response.json()["rate"] == 10.0

    bad = client.patch(f"/api/tasks/{task['id']}", json={"stop_time": "2024-03-14T08:00:00"})
    assert bad.status_code == 400

    assert client.delete(f"/api/tasks/{task['id']}").status_code == 200
    assert client.delete(f"/api/tasks/{task['id']}").status_code == 404
    assert client.patch("/api/tasks/missing", json={"name": "x"}).status_code == 404


def test_manual_task_validation(client):
    response = add_task(client, name="", tags="nohash", rate="$5")
    assert response.status_code == 400
    detail = response.json()["detail"]
    assert "Task name cannot be empty." in detail
    assert "Tags must start with a '#'." in detail


def test_group_edit_and_delete(client):
    ids = [add_task(client).json()["id"] for _ in range(3)]
    response = client.patch("/api/groups", json={"task_ids": ids[:2], "tags": "#new"})
    assert response.json() == {"updated": 2}
    response = client.post("/api/groups/delete", json={"task_ids": ids[:2]})
    assert response.json() == {"deleted": 2}
    assert client.delete("/api/tasks").json() == {"deleted": 1}


def test_list_history_and_report(client):
    add_task(client, name="Write")
    add_task(
        client,
        name="Read",
        tags="",
        rate="",
        start_time="2024-03-15T09:00:00",
        stop_time="2024-03-15T09:30:00",
    )
    listing = client.get("/api/tasks", params={"start": "2024-03-14", "end": "2024-03-15"}).json()
    assert [task["name"] for task in listing["tasks"]] == ["Read", "Write"]
    assert listing["total_seconds"] == 5400

    history = client.get("/api/history").json()["sections"]
    assert [section["total_seconds"] for section in history] == [1800, 3600]

    report = client.get(
        "/api/report",
        params={"start": "2024-03-14", "end": "2024-03-15", "attribute": "project"},
    ).json()
    assert report["granularity"] == "day"
    assert [bucket["label"] for bucket in report["buckets"]] == ["03/14", "03/15"]
    assert report["total_earnings"] == pytest.approx(30.0)
    assert report["attribute_values"] == ["client"]
    assert {entry["heading"] for entry in report["by_tag"]} == {"#docs", "No tags"}

    filtered = client.get(
        "/api/report",
        params={"start": "2024-03-14", "end": "2024-03-15", "filter_by": "task", "filter_text": "read"},
    ).json()
    assert filtered["total_seconds"] == 1800

    assert client.get("/api/tasks", params={"start": "14/03/2024"}).status_code == 400


def test_export_and_import(client):
    add_task(client)
    exported = client.get("/api/export.csv")
    assert exported.status_code == 200
    assert exported.headers["content-type"].startswith("text/csv")
    assert exported.text.startswith("Name,Project,Tags,Rate")

    response = client.post("/api/import", json={"content": exported.text})
    assert response.json() == {"imported": 1}
    assert len(client.get("/api/tasks", params={"timeframe": "all_time"}).json()["tasks"]) == 2

    assert client.post("/api/import", json={"content": "nope"}).status_code == 400


def test_repeat_tasks(client):
    task = add_task(client).json()
    response = client.post(f"/api/tasks/{task['id']}/repeat")
    assert response.status_code == 200
    assert response.json()["session"]["name_and_tags"] == "Write @Client #docs $30.00"
    client.post("/api/timer/discard")

    assert client.post("/api/repeat-last").json()["session"]["name"] == "Write"
    assert client.post("/api/tasks/missing/repeat").status_code == 404


def test_shortcuts(client):
    created = client.post(
        "/api/shortcuts", json={"name": "Standup", "tags": "#team", "color_hex": "#00ff00"}
    ).json()
    assert created["input_text"] == "Standup #team"

    updated = client.patch(
        f"/api/shortcuts/{created['id']}", json={"name": "Standup", "project": "Work"}
    ).json()
    assert updated["project"] == "Work"
    assert len(client.get("/api/shortcuts").json()["shortcuts"]) == 1

    started = client.post("/api/timer/start", json={"shortcut_id": created["id"]}).json()
    assert started["session"]["project"] == "Work"

    assert client.delete(f"/api/shortcuts/{created['id']}").status_code == 200
    assert client.delete(f"/api/shortcuts/{created['id']}").status_code == 404
    assert client.post("/api/shortcuts", json={"name": "#bad"}).status_code == 400


def test_autosave_endpoints(client, app, clock):
    assert client.get("/api/autosave").json() == {"exists": False, "task": None}
    assert client.post("/api/autosave/restore").status_code == 409

    client.post("/api/timer/start", json={"text": "Write"})
    clock.advance(120)
    app.state.engine.tick()
    app.state.engine.session = None

    preview = client.get("/api/autosave").json()
    assert preview["exists"] is True
    assert preview["task"]["duration_seconds"] == 120

    restored = client.post("/api/autosave/restore").json()
    assert restored["name"] == "Write"
    assert client.get("/api/autosave").json()["exists"] is False


def test_autosave_endpoints_hold_the_lock(client, app, monkeypatch):
    autosave = app.state.autosave
    seen = []

    def exists():
        seen.append(app.state.lock._is_owned())
        return True

    def read():
        seen.append(app.state.lock._is_owned())
        raise OSError("unreadable")

    def delete():
        seen.append(app.state.lock._is_owned())

    monkeypatch.setattr(autosave, "exists", exists)
    monkeypatch.setattr(autosave, "read", read)
    monkeypatch.setattr(autosave, "delete", delete)

    assert client.get("/api/autosave").status_code == 500
    assert client.delete("/api/autosave").json() == {"deleted": True}
    assert client.get("/api/status").json()["autosave_exists"] is True
    assert seen == [True, True, True, True]


def test_dashboard_serves_api_only(client):
    assert client.get("/").status_code == 404
