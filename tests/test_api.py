from __future__ import annotations


def select_corners(client, csrf_token: str, player: str = "Steve", world2: str = "alpha") -> None:
    headers = {"X-CSRF-Token": csrf_token}
    first = client.post(f"/api/selections/{player}/pos1", headers=headers, json={"world": "alpha", "x": 0, "y": 60, "z": 0})
    second = client.post(f"/api/selections/{player}/pos2", headers=headers, json={"world": world2, "x": 20, "y": 80, "z": 40})
    assert first.status_code == 200
    assert second.status_code == 200


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}


def test_login_required_for_api(client):
    assert client.get("/api/farms").status_code == 401


def test_login_failure_returns_unauthorized(client):
    response = client.post("/login", data={"password": "wrong"})
    assert response.status_code == 401


def test_mutations_require_csrf(client, csrf_token):
    response = client.post("/api/farms/alpha/reset")
    assert response.status_code == 403


def test_create_farm_from_corners(client, csrf_token):
    select_corners(client, csrf_token)

    response = client.post(
        "/api/farms",
        headers={"X-CSRF-Token": csrf_token},
        json={"name": "alpha", "player": "Steve", "yaw": 180},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["world"] == "alpha"
    assert (payload["spawn"]["x"], payload["spawn"]["y"], payload["spawn"]["z"]) == (10.0, 70.0, 20.0)
    assert payload["spawn"]["yaw"] == 180.0

    farms = client.get("/api/farms").json()["farms"]
    assert [farm["name"] for farm in farms] == ["alpha"]


def test_create_farm_requires_both_corners(client, csrf_token):
    response = client.post(
        "/api/farms",
        headers={"X-CSRF-Token": csrf_token},
        json={"name": "alpha", "player": "Nobody"},
    )
    assert response.status_code == 400
    assert "position 1 and position 2" in response.json()["detail"]


def test_create_farm_rejects_corners_in_two_worlds(client, csrf_token):
    select_corners(client, csrf_token, world2="world")

    response = client.post(
        "/api/farms",
        headers={"X-CSRF-Token": csrf_token},
        json={"name": "alpha", "player": "Steve"},
    )
    assert response.status_code == 400


def test_manual_reset_conflicts_while_running(client, csrf_token, scheduler):
    select_corners(client, csrf_token)
    client.post("/api/farms", headers={"X-CSRF-Token": csrf_token}, json={"name": "alpha", "player": "Steve"})

    first = client.post("/api/farms/alpha/reset", headers={"X-CSRF-Token": csrf_token})
    second = client.post("/api/farms/alpha/reset", headers={"X-CSRF-Token": csrf_token})

    assert first.status_code == 200
    assert first.json()["farm"] == "alpha"
    assert second.status_code == 409

    schedule = client.get("/api/schedule").json()
    assert schedule["manual_reset"]["farm"] == "alpha"

    scheduler.advance(30)
    assert client.get("/api/schedule").json()["manual_reset"] is None


def test_manual_reset_unknown_farm(client, csrf_token):
    response = client.post("/api/farms/ghost/reset", headers={"X-CSRF-Token": csrf_token})
    assert response.status_code == 404


def test_schedule_reports_progress(client, csrf_token):
    payload = client.get("/api/schedule").json()

    assert payload["state"] == "idle"
    assert payload["reset_hour"] == 12
    assert payload["interval_days"] == 30
    assert 0.0 <= payload["progress"] <= 1.0
    assert payload["label"].startswith("Farm reset in ")
    assert payload["pending_spawn_fixes"] == []


def test_player_join_returns_progress(client, csrf_token):
    response = client.post("/api/players/Steve/join")
    assert response.status_code == 200
    assert "next_reset" in response.json()


def test_create_farm_rejects_unsafe_names(client, csrf_token):
    select_corners(client, csrf_token)

    response = client.post(
        "/api/farms",
        headers={"X-CSRF-Token": csrf_token},
        json={"name": "../alpha", "player": "Steve"},
    )
    assert response.status_code == 422
