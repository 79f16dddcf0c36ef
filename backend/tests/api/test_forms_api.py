"""Form CRUD through the HTTP API: ownership, slugs, field validation, plan limits."""

import pytest

pytestmark = pytest.mark.integration

CUSTOM_FIELDS = [
    {"name": "name", "label": "Name", "type": "text", "required": True, "max_length": 50},
    {"name": "email", "label": "Email", "type": "email", "required": True},
    {"name": "topic", "label": "Topic", "type": "select", "options": [{"value": "sales", "label": "Sales"}]},
]


def test_requires_login(api_client):
    assert api_client.get("/api/forms").status_code == 401
    assert api_client.post("/api/forms", json={"name": "X"}).status_code == 401


def test_create_with_defaults(api_client, login_as, make_form):
    login_as("owner@example.com")

    form = make_form("Contact Us")

    assert form["name"] == "Contact Us"
    assert form["slug"] == "contact-us"
    assert form["description"] is None
    assert [f["name"] for f in form["fields"]] == ["email", "message"]
    assert form["created_at"] and form["updated_at"]


def test_create_with_explicit_slug_and_fields(api_client, login_as, make_form):
    login_as("owner@example.com")

    form = make_form("Sales", slug="Sales Leads!", description="  inbound  ", fields=CUSTOM_FIELDS)

    assert form["slug"] == "sales-leads"
    assert form["description"] == "inbound"
    assert [f["type"] for f in form["fields"]] == ["text", "email", "select"]


def test_slug_conflict(api_client, login_as, make_form):
    login_as("owner@example.com")
    api_client.post("/api/billing/webhook", json=_activate("owner@example.com"))
    make_form("Contact")

    response = api_client.post("/api/forms", json={"name": "Other", "slug": "contact"})

    assert response.status_code == 409
    assert response.json()["detail"] == "slug_taken"


def test_unusable_slug(api_client, login_as):
    login_as("owner@example.com")

    response = api_client.post("/api/forms", json={"name": "!!!"})

    assert response.status_code == 400
    assert response.json()["detail"] == "invalid_slug"


@pytest.mark.parametrize(
    "fields",
    [
        [{"name": "1bad", "label": "Bad", "type": "text"}],
        [{"name": "a", "label": "A", "type": "color"}],
        [{"name": "a", "label": "A", "type": "text"}, {"name": "A", "label": "A2", "type": "text"}],
        [{"name": f"f{i}", "label": "F", "type": "text"} for i in range(21)],
        [{"name": "s", "label": "S", "type": "select", "options": []}],
    ],
)
def test_invalid_fields_rejected(api_client, login_as, fields):
    login_as("owner@example.com")

    response = api_client.post("/api/forms", json={"name": "Bad", "fields": fields})

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "invalid_fields"


def test_free_plan_allows_one_form(api_client, login_as, make_form):
    login_as("owner@example.com")
    make_form("First")

    response = api_client.post("/api/forms", json={"name": "Second"})

    assert response.status_code == 403
    assert response.json() == {"error": "plan_limit_reached", "current": 1, "max": 1}


def test_other_owners_forms_are_invisible(api_client, login_as, make_form):
    login_as("alice@example.com")
    form = make_form("Alice Form")

    login_as("bob@example.com")

    assert api_client.get("/api/forms").json() == []
    assert api_client.get(f"/api/forms/{form['id']}").status_code == 404
    assert api_client.patch(f"/api/forms/{form['id']}", json={"name": "Mine"}).status_code == 404
    assert api_client.delete(f"/api/forms/{form['id']}").status_code == 404
    assert api_client.get(f"/api/forms/{form['id']}/submissions").status_code == 404


def test_non_uuid_id_is_not_found(api_client, login_as):
    login_as("owner@example.com")

    assert api_client.get("/api/forms/not-a-uuid").status_code == 404


def test_update(api_client, login_as, make_form):
    login_as("owner@example.com")
    form = make_form("Contact", description="old")

    response = api_client.patch(
        f"/api/forms/{form['id']}",
        json={"name": "Renamed", "description": None, "fields": CUSTOM_FIELDS[:1]},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "Renamed"
    assert body["slug"] == "contact"
    assert body["description"] is None
    assert [f["name"] for f in body["fields"]] == ["name"]


def test_update_rejects_invalid_fields(api_client, login_as, make_form):
    login_as("owner@example.com")
    form = make_form("Contact")

    response = api_client.patch(f"/api/forms/{form['id']}", json={"fields": [{"name": "x"}]})

    assert response.status_code == 400


def test_delete_removes_submissions(api_client, login_as, make_form):
    login_as("owner@example.com")
    form = make_form("Contact")
    submit = api_client.post(
        f"/api/public/forms/{form['slug']}/submit",
        json={"payload": {"email": "a@example.com", "message": "Hi"}},
    )
    assert submit.status_code == 200

    assert api_client.delete(f"/api/forms/{form['id']}").json() == {"ok": True}

    assert api_client.get(f"/api/forms/{form['id']}").status_code == 404
    assert api_client.get(f"/api/public/forms/{form['slug']}").status_code == 404
    # The freed slot can be reused on the free plan
    assert api_client.post("/api/forms", json={"name": "Contact"}).status_code == 201


def test_list_returns_only_own_forms(api_client, login_as, make_form):
    login_as("owner@example.com")
    api_client.post("/api/billing/webhook", json=_activate("owner@example.com"))
    for name in ("One", "Two", "Three"):
        make_form(name)

    names = [f["name"] for f in api_client.get("/api/forms").json()]

    assert sorted(names) == ["One", "Three", "Two"]
    assert len(names) == 3

    login_as("other@example.com")
    assert api_client.get("/api/forms").json() == []


def _activate(email: str) -> dict:
    return {
        "meta": {"event_name": "subscription_created"},
        "data": {"id": "sub_1", "attributes": {"user_email": email}},
    }
