from .conftest import client, new_user_headers, submit_request


def _claim(client, request_id, headers, notes=None):
    body = {"notes": notes} if notes is not None else None
    return client.post(f"/api/analyses/claim/{request_id}", json=body, headers=headers)


def test_claim_creates_pending_analysis(client):
    _, owner = new_user_headers()
    institution_id, institution = new_user_headers("institution")
    request_id = submit_request(client, owner)["id"]

    resp = _claim(client, request_id, institution, notes="looking at it")
    assert resp.status_code == 201
    data = resp.json()
    assert data["status"] == 1
    assert data["institution_id"] == institution_id
    assert data["notes"] == "looking at it"


def test_duplicate_claim_conflicts(client):
    _, owner = new_user_headers()
    _, institution = new_user_headers("institution")
    request_id = submit_request(client, owner)["id"]

    assert _claim(client, request_id, institution).status_code == 201
    second = _claim(client, request_id, institution)
    assert second.status_code == 409
    assert second.json()["code"] == "conflict"


def test_requester_cannot_claim(client):
    _, owner = new_user_headers()
    request_id = submit_request(client, owner)["id"]
    assert _claim(client, request_id, owner).status_code == 403


def test_claim_unknown_request(client):
    _, institution = new_user_headers("institution")
    assert _claim(client, 999999, institution).status_code == 404


def test_claim_refused_on_cancelled_request(client):
    _, owner = new_user_headers()
    _, institution = new_user_headers("institution")
    request_id = submit_request(client, owner)["id"]
    client.post(f"/api/requests/{request_id}/cancel", headers=owner)
    assert _claim(client, request_id, institution).status_code == 409


def test_advance_moves_request_under_review(client):
    _, owner = new_user_headers()
    _, institution = new_user_headers("institution")
    request_id = submit_request(client, owner)["id"]
    analysis_id = _claim(client, request_id, institution).json()["id"]

    resp = client.put(f"/api/analyses/{analysis_id}", json={"status": 2, "notes": "docs ok"}, headers=institution)
    assert resp.status_code == 200
    assert resp.json()["status_name"] == "Under Review"
    assert resp.json()["notes"] == "docs ok"

    request = client.get(f"/api/requests/{request_id}", headers=owner).json()
    assert request["status"] == 2


def test_advance_rules(client):
    _, owner = new_user_headers()
    _, institution = new_user_headers("institution")
    _, other_institution = new_user_headers("institution")
    request_id = submit_request(client, owner)["id"]
    analysis_id = _claim(client, request_id, institution).json()["id"]
    url = f"/api/analyses/{analysis_id}"

    assert client.put(url, json={"status": 2}, headers=other_institution).status_code == 403
    assert client.put(url, json={"status": 42}, headers=institution).status_code == 400
    assert client.put(url, json={"status": 5}, headers=institution).status_code == 409
    assert client.put(url, json={"status": 6}, headers=institution).status_code == 409

    assert client.put(url, json={"status": 3}, headers=institution).status_code == 200
    frozen = client.put(url, json={"status": 2}, headers=institution)
    assert frozen.status_code == 409
    assert frozen.json()["code"] == "invalid_transition"


def test_withdraw_only_pending(client):
    _, owner = new_user_headers()
    _, institution = new_user_headers("institution")
    first = submit_request(client, owner)["id"]
    second = submit_request(client, owner)["id"]
    pending_id = _claim(client, first, institution).json()["id"]
    reviewing_id = _claim(client, second, institution).json()["id"]
    client.put(f"/api/analyses/{reviewing_id}", json={"status": 2}, headers=institution)

    assert client.delete(f"/api/analyses/{pending_id}", headers=institution).status_code == 200
    assert client.get(f"/api/analyses/{pending_id}", headers=institution).status_code == 404
    assert client.delete(f"/api/analyses/{reviewing_id}", headers=institution).status_code == 409


def test_get_analysis_visible_to_request_owner(client):
    _, owner = new_user_headers()
    _, stranger = new_user_headers()
    _, institution = new_user_headers("institution")
    request_id = submit_request(client, owner)["id"]
    analysis_id = _claim(client, request_id, institution).json()["id"]

    assert client.get(f"/api/analyses/{analysis_id}", headers=owner).status_code == 200
    assert client.get(f"/api/analyses/{analysis_id}", headers=stranger).status_code == 403


def test_list_own_analyses(client):
    _, owner = new_user_headers()
    _, institution = new_user_headers("institution")
    first = submit_request(client, owner)["id"]
    second = submit_request(client, owner)["id"]
    _claim(client, first, institution)
    analysis_id = _claim(client, second, institution).json()["id"]
    client.put(f"/api/analyses/{analysis_id}", json={"status": 4}, headers=institution)

    everything = client.get("/api/analyses/", headers=institution).json()
    assert everything["count"] == 2
    rejected = client.get("/api/analyses/", params={"status": 4}, headers=institution).json()
    assert [a["id"] for a in rejected["data"]] == [analysis_id]
    assert client.get("/api/analyses/", headers=owner).status_code == 403


def test_summary_counts(client):
    _, owner = new_user_headers()
    request_id = submit_request(client, owner)["id"]
    institutions = [new_user_headers("institution")[1] for _ in range(3)]
    ids = [_claim(client, request_id, h).json()["id"] for h in institutions]
    client.put(f"/api/analyses/{ids[0]}", json={"status": 3}, headers=institutions[0])
    client.put(f"/api/analyses/{ids[1]}", json={"status": 4}, headers=institutions[1])

    summary = client.get(f"/api/requests/{request_id}/summary", headers=owner).json()
    assert summary["approved"] == 1
    assert summary["rejected"] == 1
    assert summary["pending"] == 1
    assert summary["total"] == 3
    assert summary["has_analyses"] is True

    listed = client.get(f"/api/requests/{request_id}/analyses", headers=owner).json()
    assert [a["id"] for a in listed] == ids


def test_summary_without_analyses(client):
    _, owner = new_user_headers()
    request_id = submit_request(client, owner)["id"]
    summary = client.get(f"/api/requests/{request_id}/summary", headers=owner).json()
    assert summary["total"] == 0
    assert summary["has_analyses"] is False


def test_only_owner_can_withdraw(client):
    _, owner = new_user_headers()
    _, institution = new_user_headers("institution")
    _, other = new_user_headers("institution")
    request_id = submit_request(client, owner)["id"]
    analysis_id = _claim(client, request_id, institution).json()["id"]

    resp = client.delete(f"/api/analyses/{analysis_id}", headers=other)
    assert resp.status_code == 403
    assert client.get(f"/api/analyses/{analysis_id}", headers=institution).status_code == 200
