from billiards.roles import CO_LEADER_LIMIT, NO_PERMISSION_CHANGE
from conftest import register, tomorrow_at


def set_role(client, token, user_id, role):
    return client.post(f"/api/admin/users/{user_id}/role", json={"role": role, "token": token})


def test_permissions_endpoint(client):
    leader = register(client, "alice")
    member = register(client, "bob")
    perms = client.get("/api/admin/permissions", params={"token": member["token"]}).json()
    assert perms["role"] == "member"
    assert perms["can_manage_matches"] is False

    perms = client.get("/api/admin/permissions", params={"token": leader["token"]}).json()
    assert perms["role"] == "leader"
    assert perms["can_delete_club"] is True


def test_role_management(client):
    leader = register(client, "alice")
    bob = register(client, "bob")
    carol = register(client, "carol")

    resp = set_role(client, leader["token"], bob["user_id"], "officer")
    assert resp.status_code == 200
    assert resp.json()["role"] == "officer"
    assert resp.json()["is_admin"] is True

    # an officer cannot create another officer
    resp = set_role(client, bob["token"], carol["user_id"], "officer")
    assert resp.status_code == 403
    assert resp.json()["detail"] == NO_PERMISSION_CHANGE

    # members cannot change roles at all
    resp = set_role(client, carol["token"], bob["user_id"], "member")
    assert resp.status_code == 403

    # nobody may act on the leader
    resp = set_role(client, leader["token"], leader["user_id"], "officer")
    assert resp.status_code == 403

    resp = set_role(client, leader["token"], bob["user_id"], "captain")
    assert resp.status_code == 400


def test_co_leader_limit(client):
    leader = register(client, "alice")
    others = [register(client, name) for name in ("bob", "carol", "dave")]
    for user in others[:2]:
        assert set_role(client, leader["token"], user["user_id"], "co_leader").status_code == 200

    resp = set_role(client, leader["token"], others[2]["user_id"], "co_leader")
    assert resp.status_code == 400
    assert resp.json()["detail"] == CO_LEADER_LIMIT

    # a co-leader may manage officers below them
    co = others[0]
    resp = set_role(client, co["token"], others[2]["user_id"], "officer")
    assert resp.json()["role"] == "officer"


def test_remove_user(client):
    leader = register(client, "alice")
    bob = register(client, "bob")
    carol = register(client, "carol")
    set_role(client, leader["token"], bob["user_id"], "officer")

    resp = client.delete(f"/api/admin/users/{leader['user_id']}", params={"token": bob["token"]})
    assert resp.status_code == 403

    resp = client.delete(f"/api/admin/users/{carol['user_id']}", params={"token": bob["token"]})
    assert resp.status_code == 200

    # the removed account's session is gone too
    assert client.get("/api/auth/me", params={"token": carol["token"]}).status_code == 401

    resp = client.delete(f"/api/admin/users/{bob['user_id']}", params={"token": leader["token"]})
    assert resp.status_code == 200
    resp = client.delete(f"/api/admin/users/{bob['user_id']}", params={"token": leader["token"]})
    assert resp.status_code == 404


def test_removed_user_gives_up_match_seats(client):
    leader = register(client, "alice")
    bob = register(client, "bob")
    carol = register(client, "carol")
    match = client.post(
        "/api/matches",
        json={
            "type": "1v1",
            "datetime": tomorrow_at(18).isoformat(),
            "location": "Table 1",
            "token": bob["token"],
        },
    ).json()
    client.post(f"/api/matches/{match['id']}/join", json={"token": carol["token"]})

    resp = client.delete(f"/api/admin/users/{carol['user_id']}", params={"token": leader["token"]})
    assert resp.status_code == 200
    listed = client.get("/api/matches", params={"token": leader["token"]}).json()
    assert listed[0]["status"] == "open"
    assert [p["user_id"] for p in listed[0]["players"]] == [bob["user_id"]]

    client.delete(f"/api/admin/users/{bob['user_id']}", params={"token": leader["token"]})
    listed = client.get("/api/matches", params={"token": leader["token"]}).json()
    assert listed[0]["status"] == "cancelled"
