"""
HTTP surface: routes, response shapes and error mapping
(NotFound -> 404, ValidationFailed -> 422, ConsistencyError -> 409).
"""
from fastapi.testclient import TestClient


def _create_users(client: TestClient, count: int):
    ids = []
    for i in range(count):
        response = client.post("/api/users", json={"name": f"Player {i + 1}", "rating": 1000 + 60 * i})
        assert response.status_code == 201
        ids.append(response.json()["id"])
    return ids


def _register(client: TestClient, tournament_id: int, user_ids):
    ids = []
    for i, uid in enumerate(user_ids):
        response = client.post(
            f"/api/tournaments/{tournament_id}/participants",
            json={"name": f"Entry {i + 1}", "user1_id": uid},
        )
        assert response.status_code == 201
        ids.append(response.json()["id"])
    return ids


def _single_tournament(client: TestClient, entrants: int = 4):
    response = client.post("/api/tournaments", json={"name": "Open", "tournament_format": "single"})
    assert response.status_code == 201
    tournament_id = response.json()["id"]
    participants = _register(client, tournament_id, _create_users(client, entrants))
    return tournament_id, participants


def _final_stage_id(client: TestClient, tournament_id: int) -> int:
    stages = client.get(f"/api/tournaments/{tournament_id}/stages").json()
    return next(s["id"] for s in stages if s["name"] == "Final Stage")


def test_health(client: TestClient):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_user_category_follows_rating(client: TestClient):
    response = client.post("/api/users", json={"name": "Dana", "rating": 1120})
    assert response.status_code == 201
    assert response.json()["category"] == "C"

    default = client.post("/api/users", json={"name": "Eli"}).json()
    assert default["rating"] == 900.0
    assert default["category"] == "D-"

    assert client.post("/api/users", json={"name": "Bad", "rating": -1}).status_code == 422
    assert client.get("/api/users/999").status_code == 404


def test_single_elimination_flow(client: TestClient):
    tournament_id, participants = _single_tournament(client)

    response = client.post(f"/api/tournaments/{tournament_id}/bracket")
    assert response.status_code == 201
    assert response.json() == {"stage_participants": 4, "matches": 3}

    stage_id = _final_stage_id(client, tournament_id)
    matches = client.get(f"/api/stages/{stage_id}/matches").json()
    assert [m["round_name"] for m in matches] == ["Semi Finals", "Semi Finals", "Final"]
    semi1, semi2, final = matches
    assert semi1["slot1"]["kind"] == "resolved"
    assert semi1["slot1"]["participant_id"] == participants[0]
    assert final["slot1"] == {"kind": "awaiting", "participant_id": None, "stage_participant_id": None, "match_id": semi1["id"]}

    response = client.patch(f"/api/matches/{semi1['id']}", json={"scores_csv": "6-1,6-1"})
    assert response.status_code == 200
    body = response.json()
    assert body["changed"]
    assert body["advanced_count"] == 1
    assert body["rating_changes"] == 2
    assert body["match"]["winner_id"] == participants[0]

    client.patch(f"/api/matches/{semi2['id']}", json={"scores_csv": "6-1,6-1"})
    response = client.patch(f"/api/matches/{final['id']}", json={"scores_csv": "6-4,6-4", "actor": "desk"})
    assert response.status_code == 200
    assert response.json()["tournament_completed"]

    placements = client.get(f"/api/tournaments/{tournament_id}/placements").json()
    assert placements == [
        {"participant_id": participants[0], "placement": 1},
        {"participant_id": participants[1], "placement": 2},
    ]
    tournament = client.get(f"/api/tournaments/{tournament_id}").json()
    assert tournament["state"] == "completed"
    assert tournament["first_place_participant_id"] == participants[0]

    activity = client.get(f"/api/tournaments/{tournament_id}/activity").json()
    assert activity[0]["action_type"] == "tournament_created"
    completed = [a for a in activity if a["action_type"] == "match_completed"]
    assert [a["entity_id"] for a in completed] == [semi1["id"], semi2["id"], final["id"]]
    assert completed[-1]["actor"] == "desk"

    # Replay is a no-op, a different winner is a conflict
    replay = client.patch(f"/api/matches/{final['id']}", json={"scores_csv": "6-4,6-4"})
    assert replay.status_code == 200
    assert not replay.json()["changed"]
    assert client.patch(f"/api/matches/{final['id']}", json={"scores_csv": "4-6,4-6"}).status_code == 409


def test_knockout_draft(client: TestClient):
    tournament_id, participants = _single_tournament(client, entrants=3)
    url = f"/api/tournaments/{tournament_id}/bracket/draft"

    assert client.post(url, json={"rounds": []}).status_code == 422
    malformed = {"rounds": [[{"player1_id": participants[0], "player2_id": participants[0]}]]}
    assert client.post(url, json=malformed).status_code == 422
    assert client.post("/api/tournaments/999/bracket/draft", json={"rounds": [[{"player1_id": 1}]]}).status_code == 404

    draft = {
        "rounds": [
            [
                {"player1_id": participants[2], "player2_id": None},
                {"player1_id": participants[0], "player2_id": participants[1]},
            ],
            [{}],
        ]
    }
    response = client.post(url, json=draft)
    assert response.status_code == 201
    assert response.json() == {"stage_participants": 3, "matches": 2}

    matches = client.get(f"/api/stages/{_final_stage_id(client, tournament_id)}/matches").json()
    semi, final = matches
    assert semi["round_name"] == "Semi Finals"
    assert final["slot1"]["kind"] == "resolved"
    assert final["slot1"]["participant_id"] == participants[2]
    assert final["slot2"]["match_id"] == semi["id"]

    assert client.post(url, json=draft).status_code == 409
    assert client.post(f"/api/tournaments/{tournament_id}/bracket").status_code == 409


def test_rating_history(client: TestClient):
    tournament_id, participants = _single_tournament(client, entrants=2)
    client.post(f"/api/tournaments/{tournament_id}/bracket")
    final = client.get(f"/api/stages/{_final_stage_id(client, tournament_id)}/matches").json()[0]
    client.patch(f"/api/matches/{final['id']}", json={"scores_csv": "6-0,6-0"})

    user_id = client.get(f"/api/tournaments/{tournament_id}/participants").json()[0]["user1_id"]
    history = client.get(f"/api/users/{user_id}/rating-history").json()
    assert len(history) == 1
    assert history[0]["match_id"] == final["id"]
    assert history[0]["rating_after"] > history[0]["rating_before"]

    user = client.get(f"/api/users/{user_id}").json()
    assert user["rating"] == history[0]["rating_after"]
    assert user["rank"] is not None


def test_error_mapping(client: TestClient):
    assert client.get("/api/tournaments/999").status_code == 404
    assert client.get("/api/tournaments/999/stages").status_code == 404
    assert client.get("/api/stages/999/matches").status_code == 404
    assert client.get("/api/tournaments/999/groups").status_code == 404
    assert client.get("/api/tournaments/999/activity").status_code == 404
    assert client.patch("/api/matches/999", json={"scores_csv": "6-1"}).status_code == 404
    assert client.post("/api/stages/999/resolve-dependencies").status_code == 404

    # Request validation and service validation both map to 422
    assert client.post("/api/tournaments", json={"name": ""}).status_code == 422
    assert client.post("/api/tournaments", json={"name": "X", "tournament_format": "swiss"}).status_code == 422
    assert client.post("/api/tournaments", json={"name": "X"}).status_code == 422  # no participants_advance

    tournament_id, _ = _single_tournament(client)
    assert client.post(f"/api/tournaments/{tournament_id}/bracket").status_code == 201
    assert client.post(f"/api/tournaments/{tournament_id}/bracket").status_code == 409

    final = client.get(f"/api/stages/{_final_stage_id(client, tournament_id)}/matches").json()[-1]
    response = client.patch(f"/api/matches/{final['id']}", json={"scores_csv": "6-1,6-1"})
    assert response.status_code == 409

    semi = client.get(f"/api/stages/{_final_stage_id(client, tournament_id)}/matches").json()[0]
    assert client.patch(f"/api/matches/{semi['id']}", json={"scores_csv": "nonsense"}).status_code == 422
    assert client.patch(f"/api/matches/{semi['id']}", json={"scores_csv": "6-4,4-6"}).status_code == 422


def test_group_flow(client: TestClient):
    response = client.post("/api/tournaments", json={
        "name": "League",
        "participants_per_group": 2,
        "participants_advance": 1,
    })
    assert response.status_code == 201
    tournament_id = response.json()["id"]
    participants = _register(client, tournament_id, _create_users(client, 4))

    response = client.post(
        f"/api/tournaments/{tournament_id}/groups",
        json={"groups": [participants[:2], participants[2:]]},
    )
    assert response.status_code == 201
    assert [g["name"] for g in response.json()] == ["Group A", "Group B"]
    listed = client.get(f"/api/tournaments/{tournament_id}/groups").json()
    assert [(g["group_index"], g["state"]) for g in listed] == [(0, "pending"), (1, "pending")]

    response = client.post(f"/api/tournaments/{tournament_id}/group-matches")
    assert response.status_code == 201
    assert response.json() == {"group_matches": 2, "stage_participants": 2, "bracket_matches": 1}
    assert client.post(f"/api/tournaments/{tournament_id}/group-matches").status_code == 409

    # Registration and withdrawal are closed now
    assert client.delete(f"/api/participants/{participants[0]}").status_code == 422

    stages = client.get(f"/api/tournaments/{tournament_id}/stages").json()
    group_stage_id = next(s["id"] for s in stages if s["name"] == "Group Stage")
    final_stage_id = next(s["id"] for s in stages if s["name"] == "Final Stage")

    final = client.get(f"/api/stages/{final_stage_id}/matches").json()[0]
    assert final["slot1"]["kind"] == "placeholder"
    assert final["identifier"] == "Seed1 vs Seed2 (Final)"

    for match in client.get(f"/api/stages/{group_stage_id}/matches").json():
        response = client.patch(f"/api/matches/{match['id']}", json={"scores_csv": "6-2,6-2"})
        assert response.status_code == 200
    assert response.json()["stage_completed"]

    standings = client.get(f"/api/tournaments/{tournament_id}/standings").json()
    assert [g["state"] for g in standings] == ["completed", "completed"]
    assert standings[0]["standings"][0]["participant_id"] == participants[0]
    assert standings[0]["standings"][0]["history"] == ["W"]

    final = client.get(f"/api/stages/{final_stage_id}/matches").json()[0]
    assert {final["player1_id"], final["player2_id"]} == {participants[0], participants[2]}
    assert final["slot1"]["kind"] == "resolved"

    response = client.post(f"/api/stages/{final_stage_id}/resolve-dependencies")
    assert response.status_code == 200
    assert response.json()["teams_advanced"] == 0


def test_participant_disqualify_and_withdraw(client: TestClient):
    response = client.post("/api/tournaments", json={"name": "Cup", "participants_advance": 1})
    tournament_id = response.json()["id"]
    participants = _register(client, tournament_id, _create_users(client, 3))

    response = client.post(f"/api/participants/{participants[0]}/disqualify")
    assert response.status_code == 200
    assert response.json()["is_disqualified"]
    assert client.post(f"/api/participants/{participants[0]}/disqualify").status_code == 200

    assert client.delete(f"/api/participants/{participants[1]}").status_code == 204
    remaining = client.get(f"/api/tournaments/{tournament_id}/participants").json()
    assert [p["id"] for p in remaining] == [participants[0], participants[2]]

    assert client.post("/api/participants/999/disqualify").status_code == 404
    response = client.post(
        f"/api/tournaments/{tournament_id}/participants",
        json={"name": "Dup", "user1_id": remaining[1]["user1_id"]},
    )
    assert response.status_code == 422
