import pytest

from tests.conftest import apply, auth_headers, create_project


def statuses(store, project_id):
    return {
        app["freelancer_id"]: app["status"]
        for app in store.query("applications", "project_id", "==", project_id)
    }


def test_submit_application_success(api, client_user, freelancer, store):
    project = create_project(api, client_user)

    data = apply(api, freelancer, project["id"], 4500)

    assert data["status"] == "pending"
    assert data["client_id"] == client_user.id
    assert data["freelancer_id"] == freelancer.id
    assert data["title"] == project["title"]
    assert data["skills"] == project["skills"]

    stored_project = store.get("projects", project["id"])
    assert stored_project["bids"] == [{"freelancer_id": freelancer.id, "amount": 4500}]
    assert store.get("freelancer_profiles", freelancer.id)["applications"] == [data["id"]]


def test_submit_application_twice_conflicts(api, client_user, freelancer, store):
    project = create_project(api, client_user)
    apply(api, freelancer, project["id"])

    response = api.post(
        "/applications/",
        json={"project_id": project["id"], "proposal": "Again", "bid_amount": 3000},
        headers=auth_headers(freelancer),
    )
    assert response.status_code == 409
    assert response.json()["detail"] == "Already applied to this project"
    assert len(store.query("applications", "project_id", "==", project["id"])) == 1
    assert len(store.get("projects", project["id"])["bids"]) == 1


def test_submit_application_as_client_forbidden(api, client_user):
    project = create_project(api, client_user)

    response = api.post(
        "/applications/",
        json={"project_id": project["id"], "proposal": "Hire me", "bid_amount": 100},
        headers=auth_headers(client_user),
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "Only freelancers can apply to projects"


def test_submit_application_unknown_project(api, freelancer):
    response = api.post(
        "/applications/",
        json={"project_id": "missing", "proposal": "Hire me", "bid_amount": 100},
        headers=auth_headers(freelancer),
    )
    assert response.status_code == 404


def test_submit_application_invalid_input(api, client_user, freelancer):
    project = create_project(api, client_user)
    headers = auth_headers(freelancer)

    response = api.post(
        "/applications/",
        json={"project_id": project["id"], "proposal": "", "bid_amount": 100},
        headers=headers,
    )
    assert response.status_code == 422

    response = api.post(
        "/applications/",
        json={"project_id": project["id"], "proposal": "Hire me", "bid_amount": -5},
        headers=headers,
    )
    assert response.status_code == 422


@pytest.mark.parametrize("raw_amount", ["NaN", "Infinity"])
def test_submit_application_rejects_non_finite_bid(api, client_user, freelancer, store, raw_amount):
    project = create_project(api, client_user)
    body = '{"project_id": "%s", "proposal": "Hire me", "bid_amount": %s}' % (project["id"], raw_amount)

    response = api.post(
        "/applications/",
        content=body,
        headers={**auth_headers(freelancer), "Content-Type": "application/json"},
    )
    assert response.status_code == 422
    assert response.json()["detail"] == "bid amount must be a positive number"
    assert store.docs("applications") == {}
    assert store.get("projects", project["id"])["bids"] == []


def test_submit_application_to_assigned_project(api, client_user, freelancer, freelancer2):
    project = create_project(api, client_user)
    application = apply(api, freelancer, project["id"])
    api.put(f"/applications/{application['id']}/accept", headers=auth_headers(client_user))

    response = api.post(
        "/applications/",
        json={"project_id": project["id"], "proposal": "Me too", "bid_amount": 100},
        headers=auth_headers(freelancer2),
    )
    assert response.status_code == 409
    assert response.json()["detail"] == "Project is not open for applications"


def test_accept_application_assigns_and_rejects_others(api, client_user, freelancer, freelancer2, store):
    project = create_project(api, client_user)
    first = apply(api, freelancer, project["id"], 4500)
    apply(api, freelancer2, project["id"], 4800)

    response = api.put(f"/applications/{first['id']}/accept", headers=auth_headers(client_user))
    assert response.status_code == 200
    assert response.json()["status"] == "accepted"

    stored_project = store.get("projects", project["id"])
    assert stored_project["status"] == "in-progress"
    assert stored_project["freelancer_id"] == freelancer.id
    assert statuses(store, project["id"]) == {freelancer.id: "accepted", freelancer2.id: "rejected"}
    assert store.get("freelancer_profiles", freelancer.id)["projects"] == [project["id"]]


def test_accept_application_twice_is_noop(api, client_user, freelancer, store):
    project = create_project(api, client_user)
    application = apply(api, freelancer, project["id"])
    headers = auth_headers(client_user)
    api.put(f"/applications/{application['id']}/accept", headers=headers)

    response = api.put(f"/applications/{application['id']}/accept", headers=headers)
    assert response.status_code == 200
    assert response.json()["status"] == "accepted"
    assert store.get("freelancer_profiles", freelancer.id)["projects"] == [project["id"]]


def test_accept_rejected_application(api, client_user, freelancer):
    project = create_project(api, client_user)
    application = apply(api, freelancer, project["id"])
    headers = auth_headers(client_user)
    api.put(f"/applications/{application['id']}/reject", headers=headers)

    response = api.put(f"/applications/{application['id']}/accept", headers=headers)
    assert response.status_code == 409
    assert response.json()["detail"] == "Application has already been rejected"


def test_accept_application_not_owner(api, client_user, other_client, freelancer, store):
    project = create_project(api, client_user)
    application = apply(api, freelancer, project["id"])

    for intruder in (other_client, freelancer):
        response = api.put(f"/applications/{application['id']}/accept", headers=auth_headers(intruder))
        assert response.status_code == 403
    assert store.get("projects", project["id"])["status"] == "open"


def test_accept_missing_application(api, client_user):
    response = api.put("/applications/missing/accept", headers=auth_headers(client_user))
    assert response.status_code == 404
    assert response.json()["detail"] == "Application not found"


def test_accept_after_opt_out_rejects_previous_assignee(api, client_user, freelancer, freelancer2, store):
    project = create_project(api, client_user)
    first = apply(api, freelancer, project["id"])
    headers = auth_headers(client_user)
    api.put(f"/applications/{first['id']}/accept", headers=headers)
    api.put(f"/projects/{project['id']}/optout", headers=auth_headers(freelancer))

    second = apply(api, freelancer2, project["id"])
    response = api.put(f"/applications/{second['id']}/accept", headers=headers)
    assert response.status_code == 200

    assert statuses(store, project["id"]) == {freelancer.id: "rejected", freelancer2.id: "accepted"}
    assert store.get("projects", project["id"])["freelancer_id"] == freelancer2.id


def test_reject_application(api, client_user, freelancer, store):
    project = create_project(api, client_user)
    application = apply(api, freelancer, project["id"])
    headers = auth_headers(client_user)

    response = api.put(f"/applications/{application['id']}/reject", headers=headers)
    assert response.status_code == 200
    assert response.json()["status"] == "rejected"

    # Rejecting again changes nothing
    response = api.put(f"/applications/{application['id']}/reject", headers=headers)
    assert response.status_code == 200
    assert store.get("applications", application["id"])["status"] == "rejected"
    assert store.get("projects", project["id"])["status"] == "open"


def test_reject_assigned_application(api, client_user, freelancer):
    project = create_project(api, client_user)
    application = apply(api, freelancer, project["id"])
    headers = auth_headers(client_user)
    api.put(f"/applications/{application['id']}/accept", headers=headers)

    response = api.put(f"/applications/{application['id']}/reject", headers=headers)
    assert response.status_code == 409
    assert response.json()["detail"] == "Cannot reject the application of the assigned freelancer"


def test_list_applications_for_project_by_role(api, client_user, other_client, freelancer, freelancer2, admin):
    project = create_project(api, client_user)
    first = apply(api, freelancer, project["id"])
    second = apply(api, freelancer2, project["id"])
    url = f"/applications/project/{project['id']}"

    owner_view = api.get(url, headers=auth_headers(client_user)).json()
    assert [app["id"] for app in owner_view] == [first["id"], second["id"]]

    admin_view = api.get(url, headers=auth_headers(admin)).json()
    assert len(admin_view) == 2

    freelancer_view = api.get(url, headers=auth_headers(freelancer2)).json()
    assert [app["id"] for app in freelancer_view] == [second["id"]]

    response = api.get(url, headers=auth_headers(other_client))
    assert response.status_code == 403
    assert response.json()["detail"] == "Not authorized to view applications for this project"


def test_list_applications_for_missing_project(api, client_user):
    response = api.get("/applications/project/missing", headers=auth_headers(client_user))
    assert response.status_code == 404


def test_list_my_applications(api, client_user, other_client, freelancer, freelancer2, admin):
    project = create_project(api, client_user)
    elsewhere = create_project(api, other_client)
    mine = apply(api, freelancer, project["id"])
    apply(api, freelancer2, project["id"])
    apply(api, freelancer2, elsewhere["id"])

    freelancer_view = api.get("/applications/mine", headers=auth_headers(freelancer)).json()
    assert [app["id"] for app in freelancer_view] == [mine["id"]]

    client_view = api.get("/applications/mine", headers=auth_headers(client_user)).json()
    assert {app["project_id"] for app in client_view} == {project["id"]}
    assert len(client_view) == 2

    assert api.get("/applications/mine", headers=auth_headers(admin)).json() == []


def test_admin_list_and_stats(api, client_user, freelancer, freelancer2, admin):
    project = create_project(api, client_user)
    other = create_project(api, client_user)
    first = apply(api, freelancer, project["id"])
    apply(api, freelancer2, project["id"])
    apply(api, freelancer, other["id"])
    api.put(f"/applications/{first['id']}/accept", headers=auth_headers(client_user))

    headers = auth_headers(admin)
    assert len(api.get("/applications/", headers=headers).json()) == 3
    stats = api.get("/applications/stats", headers=headers).json()
    assert stats == {"total": 3, "pending": 1, "accepted": 1, "rejected": 1}


def test_stats_requires_admin(api, freelancer):
    response = api.get("/applications/stats", headers=auth_headers(freelancer))
    assert response.status_code == 403
