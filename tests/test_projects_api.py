from bson import ObjectId

import settings
from auth import COOKIE_NAME, issue_token


def projects_url(owner_id, *parts):
    return "/".join([f"/projects/{owner_id}", *[str(p) for p in parts]])


def test_get_container(client, owner_id):
    response = client.get(projects_url(owner_id))
    assert response.status_code == 200
    body = response.json()
    assert body["owner_id"] == owner_id
    assert body["email"] == "alice@example.com"
    assert body["projects"] == []
    assert "version" not in body
    assert "next_project_id" not in body


def test_get_container_bad_or_unknown_owner(client):
    assert client.get("/projects/not-an-object-id").status_code == 422
    assert client.get(projects_url(ObjectId())).status_code == 404


def test_mutations_require_session(client, owner_id, db):
    assert client.post(projects_url(owner_id), json={"name": "X"}).status_code == 401
    assert client.patch(projects_url(owner_id, "project", 1), json={"name": "X"}).status_code == 401
    assert client.delete(projects_url(owner_id, "project", 1)).status_code == 401
    assert client.post(projects_url(owner_id, "project", 1, "tasks"), json={}).status_code == 401
    assert client.patch(projects_url(owner_id, "project", 1, "tasks", 1), json={}).status_code == 401
    assert client.delete(projects_url(owner_id, "project", 1, "tasks", 1)).status_code == 401
    assert db["projects"].find_one({"owner_id": owner_id})["projects"] == []


def test_bad_session_cookie_is_rejected(client, owner_id):
    client.cookies.set(COOKIE_NAME, "garbage")
    assert client.post(projects_url(owner_id), json={}).status_code == 401


def test_create_project(auth_client, owner_id):
    response = auth_client.post(projects_url(owner_id), json={})
    assert response.status_code == 201
    assert response.json() == {
        "id": 1,
        "name": "Untitled Project",
        "status": "In Progress",
        "tasks": [],
    }


def test_create_project_unknown_owner(auth_client, db):
    stranger = str(ObjectId())
    response = auth_client.post(projects_url(stranger), json={"name": "Ghost"})
    assert response.status_code == 404
    assert db["projects"].count_documents({"owner_id": stranger}) == 0


def test_non_integer_ids_are_client_errors(auth_client, owner_id):
    auth_client.post(projects_url(owner_id), json={"name": "Site"})
    assert auth_client.patch(projects_url(owner_id, "project", "abc"), json={}).status_code == 422
    assert auth_client.delete(projects_url(owner_id, "project", "1", "tasks", "x")).status_code == 422
    assert auth_client.post("/projects/zzz", json={}).status_code == 422


def test_update_project_status_only(auth_client, owner_id):
    auth_client.post(projects_url(owner_id), json={"name": "Website"})
    response = auth_client.patch(projects_url(owner_id, "project", 1), json={"status": "Done"})
    assert response.status_code == 200
    assert response.json()["name"] == "Website"
    assert response.json()["status"] == "Done"
    project = auth_client.get(projects_url(owner_id, "project", 1)).json()
    assert (project["name"], project["status"]) == ("Website", "Done")


def test_update_unknown_project(auth_client, owner_id):
    response = auth_client.patch(projects_url(owner_id, "project", 5), json={"name": "Nope"})
    assert response.status_code == 404


def test_delete_project(auth_client, owner_id):
    auth_client.post(projects_url(owner_id), json={"name": "A"})
    auth_client.post(projects_url(owner_id), json={"name": "B"})
    response = auth_client.delete(projects_url(owner_id, "project", 1))
    assert response.status_code == 200
    assert auth_client.get(projects_url(owner_id, "project", 1)).status_code == 404
    names = [p["name"] for p in auth_client.get(projects_url(owner_id)).json()["projects"]]
    assert names == ["B"]
    assert auth_client.delete(projects_url(owner_id, "project", 1)).status_code == 404


def test_task_lifecycle(auth_client):
    registered = auth_client.post("/users", json={"email": "dana@example.com", "name": "Dana"})
    owner = registered.json()["_id"]

    project = auth_client.post(projects_url(owner), json={"name": "Launch"}).json()
    assert project["tasks"] == []
    tasks_url = projects_url(owner, "project", project["id"], "tasks")

    t1 = auth_client.post(tasks_url, json={"title": "T1"})
    t2 = auth_client.post(tasks_url, json={"title": "T2"})
    assert t1.status_code == 201
    assert t1.json()["id"] != t2.json()["id"]

    deleted = auth_client.delete(f"{tasks_url}/{t1.json()['id']}")
    assert deleted.status_code == 200

    fetched = auth_client.get(projects_url(owner, "project", project["id"])).json()
    assert fetched["tasks"] == [t2.json()]
    assert "next_task_id" not in fetched


def test_add_task_unknown_project(auth_client, owner_id):
    response = auth_client.post(projects_url(owner_id, "project", 3, "tasks"), json={"title": "T"})
    assert response.status_code == 404


def test_update_task_merges(auth_client, owner_id):
    auth_client.post(projects_url(owner_id), json={})
    tasks_url = projects_url(owner_id, "project", 1, "tasks")
    auth_client.post(tasks_url, json={"title": "Draft", "status": "todo"})

    response = auth_client.patch(f"{tasks_url}/1", json={"status": "done", "title": None})
    assert response.status_code == 200
    assert response.json() == {"id": 1, "title": "Draft", "status": "done"}
    assert auth_client.patch(f"{tasks_url}/2", json={"status": "done"}).status_code == 404


def test_delete_wrong_task_leaves_tasks(auth_client, owner_id):
    auth_client.post(projects_url(owner_id), json={})
    tasks_url = projects_url(owner_id, "project", 1, "tasks")
    auth_client.post(tasks_url, json={"title": "Keep"})
    before = auth_client.get(projects_url(owner_id, "project", 1)).json()["tasks"]

    assert auth_client.delete(f"{tasks_url}/9").status_code == 404
    assert auth_client.get(projects_url(owner_id, "project", 1)).json()["tasks"] == before


def test_task_field_names_are_validated(auth_client, owner_id):
    auth_client.post(projects_url(owner_id), json={})
    tasks_url = projects_url(owner_id, "project", 1, "tasks")
    assert auth_client.post(tasks_url, json={"$set": 1}).status_code == 422
    assert auth_client.post(tasks_url, json={"a.b": 1}).status_code == 422
    assert auth_client.post(tasks_url, json={"meta": {"$gt": 1}}).status_code == 422
    assert auth_client.post(tasks_url, json={"checklist": [{"x.y": True}]}).status_code == 422
    assert auth_client.get(projects_url(owner_id, "project", 1)).json()["tasks"] == []


def test_owner_match_when_enabled(client, db, owner_id, monkeypatch):
    monkeypatch.setattr(settings, "OWNER_MATCH_REQUIRED", True)

    client.cookies.set(COOKIE_NAME, issue_token({"email": "mallory@example.com"}))
    assert client.post(projects_url(owner_id), json={}).status_code == 403
    assert db["projects"].find_one({"owner_id": owner_id})["projects"] == []

    client.cookies.set(COOKIE_NAME, issue_token({"email": "alice@example.com"}))
    assert client.post(projects_url(owner_id), json={}).status_code == 201


def test_any_session_may_mutate_by_default(client, owner_id):
    client.cookies.set(COOKIE_NAME, issue_token({"email": "mallory@example.com"}))
    assert client.post(projects_url(owner_id), json={}).status_code == 201


def test_nested_task_fields_are_stored(auth_client, owner_id):
    auth_client.post(projects_url(owner_id), json={})
    tasks_url = projects_url(owner_id, "project", 1, "tasks")
    body = {"title": "Plan", "meta": {"priority": 1}, "checklist": [{"done": False}]}
    response = auth_client.post(tasks_url, json=body)
    assert response.status_code == 201
    assert response.json() == {"id": 1, **body}


def test_session_with_any_identity_claims_can_mutate(client, owner_id):
    # sub and aud are part of the identity payload, not checked claims
    for identity in ({"email": "alice@example.com", "sub": 42}, {"email": "alice@example.com", "aud": "web"}):
        client.cookies.clear()
        assert client.post("/jwt", json=identity).status_code == 200
        assert client.post(projects_url(owner_id), json={}).status_code == 201
