"""
Tests for the HTTP routes.
"""
from fastapi.testclient import TestClient

SEEDING = ["T1", "T2", "T3", "T4"]


def _create(client: TestClient, **overrides):
    payload = {"tournament_id": 1, "name": "Cup", "type": "single_elimination", "seeding": SEEDING}
    payload.update(overrides)
    response = client.post("/api/stages", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def _first_match(client: TestClient, stage_id: int):
    data = client.get(f"/api/stages/{stage_id}").json()
    return min(data["match"], key=lambda m: m["id"])


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestStageRoutes:
    def test_create_stage(self, client):
        stage = _create(client)
        assert stage["type"] == "single_elimination"
        assert stage["settings"]["size"] == 4

        data = client.get(f"/api/stages/{stage['id']}").json()
        assert len(data["match"]) == 3
        assert len(data["participant"]) == 4

    def test_create_stage_blank_name(self, client):
        response = client.post(
            "/api/stages", json={"tournament_id": 1, "name": "  ", "type": "single_elimination", "seeding": SEEDING}
        )
        assert response.status_code == 422

    def test_create_stage_invalid_size(self, client):
        response = client.post(
            "/api/stages",
            json={"tournament_id": 1, "name": "Cup", "type": "single_elimination", "seeding": SEEDING[:3], "settings": {"size": 3}},
        )
        assert response.status_code == 422
        assert "power of two" in response.json()["detail"]

    def test_unknown_stage(self, client):
        assert client.get("/api/stages/99").status_code == 404

    def test_seeding(self, client):
        stage = _create(client, seeding=None, settings={"size": 4})
        response = client.put(f"/api/stages/{stage['id']}/seeding", json={"seeding": SEEDING})
        assert response.status_code == 200
        assert [slot["id"] for slot in response.json()] == [1, 2, 3, 4]

        response = client.delete(f"/api/stages/{stage['id']}/seeding")
        assert [slot["id"] for slot in response.json()] == [None] * 4

    def test_ordering(self, client):
        stage = _create(client)
        response = client.put(f"/api/stages/{stage['id']}/ordering", json={"seed_ordering": ["natural"]})
        assert response.status_code == 200
        assert response.json()["settings"]["seed_ordering"] == ["natural"]

    def test_round_ordering(self, client):
        stage = _create(client)
        first = _first_match(client, stage["id"])
        response = client.patch(f"/api/rounds/{first['round_id']}/ordering", json={"method": "natural"})
        assert response.status_code == 200
        matches = response.json()
        assert [m["number"] for m in matches] == [1, 2]
        assert (matches[0]["opponent1"]["id"], matches[0]["opponent2"]["id"]) == (1, 2)

    def test_standings_not_finished(self, client):
        stage = _create(client)
        assert client.get(f"/api/stages/{stage['id']}/standings").status_code == 409

    def test_current_matches(self, client):
        stage = _create(client)
        response = client.get(f"/api/stages/{stage['id']}/current-matches")
        assert len(response.json()) == 2
        assert client.get(f"/api/stages/{stage['id']}/current-round").json()["number"] == 1

    def test_delete_stage(self, client):
        stage = _create(client)
        assert client.delete(f"/api/stages/{stage['id']}").status_code == 204
        assert client.get(f"/api/stages/{stage['id']}").status_code == 404


class TestMatchRoutes:
    def test_update_match(self, client):
        stage = _create(client)
        match = _first_match(client, stage["id"])

        response = client.patch(f"/api/matches/{match['id']}", json={"opponent1": {"result": "win"}})

        assert response.status_code == 200, response.text
        body = response.json()
        assert body["match"]["status"] == 4
        assert body["propagated"] is True
        assert len(body["affected_match_ids"]) == 1

        following = client.get(f"/api/matches/{match['id']}/next").json()
        assert following[0]["opponent1"] == {"id": 1}

    def test_draw_rejected(self, client):
        stage = _create(client)
        match = _first_match(client, stage["id"])
        response = client.patch(
            f"/api/matches/{match['id']}", json={"opponent1": {"result": "draw"}, "opponent2": {"result": "draw"}}
        )
        assert response.status_code == 422

    def test_locked_match(self, client):
        stage = _create(client)
        data = client.get(f"/api/stages/{stage['id']}").json()
        final = max(data["match"], key=lambda m: m["id"])
        response = client.patch(f"/api/matches/{final['id']}", json={"opponent1": {"result": "win"}})
        assert response.status_code == 409
        assert response.json()["detail"] == "The match is locked."

    def test_reset_results(self, client):
        stage = _create(client)
        match = _first_match(client, stage["id"])
        client.patch(f"/api/matches/{match['id']}", json={"opponent1": {"result": "win"}})

        response = client.delete(f"/api/matches/{match['id']}/results")

        assert response.json()["match"]["status"] == 2

    def test_match_games(self, client):
        stage = _create(client, settings={"matches_child_count": 3})
        match = _first_match(client, stage["id"])
        games = client.get(f"/api/matches/{match['id']}/games").json()
        assert len(games) == 3

        response = client.patch(f"/api/match-games/{games[0]['id']}", json={"opponent1": {"result": "win"}})

        assert response.status_code == 200, response.text
        assert response.json()["match"]["opponent1"]["score"] == 1

    def test_child_count(self, client):
        stage = _create(client)
        response = client.put(f"/api/child-count/stage/{stage['id']}", json={"count": 3})
        assert response.json() == {"adjusted_matches": 3}
        assert client.put(f"/api/child-count/season/{stage['id']}", json={"count": 3}).status_code == 422

    def test_unknown_match(self, client):
        assert client.get("/api/matches/999").status_code == 404


class TestTournamentRoutes:
    def test_export_import(self, client):
        _create(client)
        exported = client.get("/api/export").json()

        response = client.post("/api/import", json=exported)

        assert response.json() == {"imported": True}
        assert client.get("/api/export").json() == exported

    def test_current_stage_and_delete(self, client):
        stage = _create(client)
        assert client.get("/api/tournaments/1/current-stage").json()["id"] == stage["id"]
        assert len(client.get("/api/tournaments/1/data").json()["stage"]) == 1

        assert client.delete("/api/tournaments/1").status_code == 204
        assert client.get("/api/tournaments/1/current-stage").json() is None
