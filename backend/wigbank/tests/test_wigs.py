from .conftest import client, new_user_headers


WIG = {"wig_type": "natural", "color": "brown", "length_cm": 30, "size": "M"}


def test_create_and_get_wig(client):
    institution_id, institution = new_user_headers("institution")
    resp = client.post("/api/wigs/", json=WIG, headers=institution)
    assert resp.status_code == 201
    wig = resp.json()
    assert wig["institution_id"] == institution_id
    assert wig["available"] is True

    fetched = client.get(f"/api/wigs/{wig['id']}", headers=institution)
    assert fetched.status_code == 200
    assert fetched.json()["color"] == "brown"


def test_requester_cannot_register_wig(client):
    _, requester = new_user_headers()
    assert client.post("/api/wigs/", json=WIG, headers=requester).status_code == 403


def test_invalid_wig_payload(client):
    _, institution = new_user_headers("institution")
    assert client.post("/api/wigs/", json={**WIG, "size": "XL"}, headers=institution).status_code == 422
    assert client.post("/api/wigs/", json={**WIG, "length_cm": -1}, headers=institution).status_code == 422
    assert client.post("/api/wigs/", json={**WIG, "color": "  "}, headers=institution).status_code == 400


def test_wigs_are_private_to_their_institution(client):
    _, owner = new_user_headers("institution")
    _, other = new_user_headers("institution")
    wig_id = client.post("/api/wigs/", json=WIG, headers=owner).json()["id"]

    assert client.get(f"/api/wigs/{wig_id}", headers=other).status_code == 403
    assert client.put(f"/api/wigs/{wig_id}", json={"color": "red"}, headers=other).status_code == 403
    assert client.delete(f"/api/wigs/{wig_id}", headers=other).status_code == 403
    listed = client.get("/api/wigs/", params={"limit": 100}, headers=other).json()
    assert all(w["id"] != wig_id for w in listed["data"])


def test_list_filters(client):
    _, institution = new_user_headers("institution")
    client.post("/api/wigs/", json=WIG, headers=institution)
    client.post("/api/wigs/", json={**WIG, "color": "Blonde", "size": "P"}, headers=institution)

    all_wigs = client.get("/api/wigs/", headers=institution).json()
    assert all_wigs["count"] == 2
    small = client.get("/api/wigs/", params={"size": "P"}, headers=institution).json()
    assert [w["color"] for w in small["data"]] == ["Blonde"]
    blonde = client.get("/api/wigs/", params={"color": "blond"}, headers=institution).json()
    assert blonde["count"] == 1


def test_update_and_delete_wig(client):
    _, institution = new_user_headers("institution")
    wig_id = client.post("/api/wigs/", json=WIG, headers=institution).json()["id"]

    resp = client.put(f"/api/wigs/{wig_id}", json={"color": "black", "available": False}, headers=institution)
    assert resp.status_code == 200
    assert resp.json()["color"] == "black"
    assert resp.json()["available"] is False

    assert client.delete(f"/api/wigs/{wig_id}", headers=institution).status_code == 200
    assert client.get(f"/api/wigs/{wig_id}", headers=institution).status_code == 404
