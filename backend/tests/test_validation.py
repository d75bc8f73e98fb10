import pytest


def test_character_validation_422(client):
    # max_hit_points отсутствует -> должен быть 422
    bad = {"name": "Bad", "data": {"armor_class": 10}}
    r = client.post("/characters", json=bad, headers={"X-User-Id": "u"})
    assert r.status_code == 422


def test_unknown_character_404(client):
    assert client.get("/characters/missing").status_code == 404


def test_unsupported_die_422(client):
    r = client.post("/dice/roll", json={"dice_type": "d7"}, headers={"X-User-Id": "u"})
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "UNSUPPORTED_DIE"


@pytest.mark.parametrize("count", [0, 101, 10**7])
def test_bad_dice_count_422(client, count):
    r = client.post(
        "/dice/roll", json={"dice_type": "d6", "dice_count": count}, headers={"X-User-Id": "u"}
    )
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "BAD_DICE_COUNT"


def test_extra_fields_rejected(client):
    r = client.post(
        "/combat", json={"name": "x", "round": 5}, headers={"X-User-Id": "u"}
    )
    assert r.status_code == 422


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
