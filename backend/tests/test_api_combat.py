DM = {"X-User-Id": "dm-api"}
PLAYER = {"X-User-Id": "player-api"}


def _new_session(client, name="API fight"):
    r = client.post("/combat", json={"name": name}, headers=DM)
    assert r.status_code == 200, r.text
    return r.json()["session_id"]


def _add(client, sid, name, initiative, **extra):
    body = {"name": name, "initiative": initiative, "max_hit_points": 20, **extra}
    r = client.post(f"/combat/{sid}/participants", json=body, headers=DM)
    assert r.status_code == 200, r.text
    return r.json()["events_delta"][0]["payload"]["participant"]["id"]


def test_full_combat_flow(client):
    sid = _new_session(client)
    a = _add(client, sid, "A", 15)
    b = _add(client, sid, "B", 20)
    c = _add(client, sid, "C", 10)

    r = client.post(f"/combat/{sid}/start", headers=DM)
    assert r.status_code == 200, r.text
    state = r.json()["state"]
    assert [p["id"] for p in state["participants"]] == [b, a, c]
    assert state["round"] == 1
    assert state["current_turn_index"] == 0
    assert state["status"] == "active"

    seen = []
    for _ in range(3):
        r = client.post(f"/combat/{sid}/next-turn", headers=DM)
        assert r.status_code == 200
        body = r.json()
        seen.append((body["state"]["current_turn_index"], body["state"]["round"]))
    assert seen == [(1, 1), (2, 1), (0, 2)]
    assert body["events_delta"][0]["type"] == "turnAdvanced"
    assert body["events_delta"][0]["payload"]["new_round"] is True

    r = client.post(f"/combat/{sid}/toggle-status", json={"action": "pause"}, headers=DM)
    assert r.json()["state"]["status"] == "paused"
    r = client.post(f"/combat/{sid}/next-turn", headers=DM)
    assert r.status_code == 409
    assert r.json()["detail"]["kind"] == "invalid_transition"
    r = client.post(f"/combat/{sid}/toggle-status", json={"action": "resume"}, headers=DM)
    assert r.json()["state"]["status"] == "active"

    r = client.post(f"/combat/{sid}/end", headers=DM)
    assert r.json()["state"]["status"] == "ended"

    r = client.get(f"/combat/{sid}", headers=PLAYER)
    assert r.status_code == 200
    assert r.json()["state"]["status"] == "ended"


def test_start_without_participants_is_409(client):
    sid = _new_session(client)
    r = client.post(f"/combat/{sid}/start", headers=DM)
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "NO_PARTICIPANTS"


def test_player_cannot_mutate(client):
    sid = _new_session(client)
    _add(client, sid, "A", 15)

    r = client.post(f"/combat/{sid}/start", headers=PLAYER)
    assert r.status_code == 403
    assert r.json()["detail"]["kind"] == "permission_denied"


def test_admin_header_can_mutate(client):
    sid = _new_session(client)
    _add(client, sid, "A", 15)

    r = client.post(
        f"/combat/{sid}/start", headers={"X-User-Id": "ops", "X-User-Role": "admin"}
    )
    assert r.status_code == 200


def test_missing_identity_is_401(client):
    r = client.post("/combat", json={"name": "anon"})
    assert r.status_code == 401


def test_unknown_session_is_404(client):
    r = client.get("/combat/does-not-exist", headers=DM)
    assert r.status_code == 404
    assert r.json()["detail"]["code"] == "UNKNOWN_SESSION"


def test_health_conditions_and_log(client):
    sid = _new_session(client)
    hero = _add(client, sid, "Hero", 12, temporary_hit_points=3)
    wolf = _add(client, sid, "Wolf", 14)
    client.post(f"/combat/{sid}/start", headers=DM)

    r = client.post(
        f"/combat/{sid}/participants/{hero}/health",
        json={"amount": 10, "source_id": wolf, "damage_type": "piercing"},
        headers=DM,
    )
    assert r.status_code == 200, r.text
    events = r.json()["events_delta"]
    assert [e["type"] for e in events] == ["participantUpdated", "actionRecorded"]
    hero_state = events[0]["payload"]["participant"]
    assert hero_state["temporary_hit_points"] == 0
    assert hero_state["current_hit_points"] == 13

    r = client.post(
        f"/combat/{sid}/participants/{hero}/health",
        json={"amount": 50, "is_healing": True},
        headers=DM,
    )
    assert r.json()["events_delta"][0]["payload"]["participant"]["current_hit_points"] == 20

    r = client.put(
        f"/combat/{sid}/participants/{hero}/conditions",
        json={"conditions": [{"name": "poisoned", "duration": 3}]},
        headers=DM,
    )
    assert r.status_code == 200
    assert r.json()["events_delta"][0]["payload"]["participant"]["conditions"][0]["name"] == "poisoned"

    r = client.post(
        f"/combat/{sid}/actions",
        json={
            "actor_id": wolf,
            "target_id": hero,
            "action_type": "attack",
            "action_name": "Bite",
            "roll_data": {"kind": "save", "save_type": "str", "dc": 11, "success": True},
        },
        headers=DM,
    )
    assert r.status_code == 200, r.text

    r = client.get(f"/combat/{sid}/actions", headers=PLAYER)
    body = r.json()
    assert [a["action_name"] for a in body["actions"]] == ["Bite", "Healing", "Damage"]
    assert body["actions"][0]["actor"]["name"] == "Wolf"
    assert body["actions"][0]["target"]["name"] == "Hero"
    assert body["rounds"] == [1]

    r = client.get(f"/combat/{sid}/actions", params={"round": 2}, headers=PLAYER)
    assert r.json()["actions"] == []
    assert r.json()["round"] == 2


def test_negative_health_amount_is_422(client):
    sid = _new_session(client)
    hero = _add(client, sid, "Hero", 12)
    r = client.post(
        f"/combat/{sid}/participants/{hero}/health", json={"amount": -4}, headers=DM
    )
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "NEGATIVE_AMOUNT"


def test_update_and_deactivate(client):
    sid = _new_session(client)
    a = _add(client, sid, "A", 15)
    b = _add(client, sid, "B", 20)
    client.post(f"/combat/{sid}/start", headers=DM)

    r = client.put(
        f"/combat/{sid}/participants/{a}",
        json={"max_hit_points": 8, "notes": "bloodied"},
        headers=DM,
    )
    p = r.json()["events_delta"][0]["payload"]["participant"]
    assert p["max_hit_points"] == 8
    assert p["current_hit_points"] == 8

    r = client.post(f"/combat/{sid}/participants/{a}/deactivate", headers=DM)
    assert r.status_code == 200

    # B -> (A пропущен) -> B, новый раунд
    r = client.post(f"/combat/{sid}/next-turn", headers=DM)
    state = r.json()["state"]
    assert state["current_participant_id"] == b
    assert state["round"] == 2


def test_hidden_participants_not_visible_to_players(client):
    sid = _new_session(client)
    _add(client, sid, "Guard", 10)
    _add(client, sid, "Lurker", 18, is_visible=False)

    r = client.get(f"/combat/{sid}/participants", headers=PLAYER)
    assert [p["name"] for p in r.json()] == ["Guard"]

    r = client.get(f"/combat/{sid}/participants", headers=DM)
    assert sorted(p["name"] for p in r.json()) == ["Guard", "Lurker"]


def test_generic_command_endpoint(client):
    sid = _new_session(client)
    r = client.post(
        f"/combat/{sid}/commands:apply",
        json={"command": {"type": "AddParticipant", "name": "Imp", "max_hit_points": 10}},
        headers=DM,
    )
    assert r.status_code == 200, r.text
    assert r.json()["events_delta"][0]["type"] == "participantAdded"

    r = client.post(
        f"/combat/{sid}/commands:apply",
        json={"command": {"type": "Teleport", "to": "moon"}},
        headers=DM,
    )
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "BAD_COMMAND"


def test_list_sessions(client):
    sid = _new_session(client, "listed fight")
    r = client.get("/combat", headers=DM)
    assert r.status_code == 200
    assert any(s["id"] == sid and s["name"] == "listed fight" for s in r.json())


def test_add_from_character(client):
    r = client.post(
        "/characters",
        json={
            "name": "Tamsin",
            "data": {
                "class": "wizard",
                "level": 4,
                "ability_scores": {"dex": 14, "int": 18},
                "max_hit_points": 22,
                "armor_class": 12,
            },
        },
        headers=PLAYER,
    )
    assert r.status_code == 200, r.text
    char_id = r.json()["id"]

    sid = _new_session(client)
    r = client.post(
        f"/combat/{sid}/participants:from-character",
        json={"character_id": char_id, "initiative_roll": 17},
        headers=DM,
    )
    assert r.status_code == 200, r.text
    p = r.json()["events_delta"][0]["payload"]["participant"]
    assert p["name"] == "Tamsin"
    assert p["initiative"] == 2
    assert p["initiative_roll"] == 17
    assert p["armor_class"] == 12
    assert p["character_id"] == char_id
    assert p["stats"]["ability_scores"]["int"] == 18

    r = client.post(
        f"/combat/{sid}/participants:from-character",
        json={"character_id": "missing"},
        headers=DM,
    )
    assert r.status_code == 404


def test_create_session_unknown_campaign_404(client):
    r = client.post(
        "/combat", json={"name": "lost", "campaign_id": "no-such-campaign"}, headers=DM
    )
    assert r.status_code == 404
    assert r.json()["detail"]["code"] == "UNKNOWN_CAMPAIGN"

    camp = client.post("/campaigns", json={"name": "Real one"}, headers=DM).json()
    r = client.post("/combat", json={"name": "found", "campaign_id": camp["id"]}, headers=DM)
    assert r.status_code == 200, r.text
