from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from schema_admin.models import Audit, Module, User

STRONG_PASSWORD = "Str0ng!Password"


def _headers(user: User | None = None, session_id: str = "session-a") -> dict[str, str]:
    headers = {"X-Session-Id": session_id}
    if user is not None:
        headers["X-User-Id"] = str(user.id)
    return headers


def _new_user_payload(email: str = "grace@example.com") -> dict[str, str]:
    return {
        "role": "standard",
        "first_name": "Grace",
        "surname": "Hopper",
        "email": email,
        "password": STRONG_PASSWORD,
        "password_match": STRONG_PASSWORD,
    }


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    # The health check lives outside the API prefix.
    assert response.status_code == 404

    response = TestClient(client.app).get("/health")
    assert response.json() == {"status": "ok"}


def test_listing_uses_camel_case(client: TestClient, admin_user: User, modules: dict[str, Module]) -> None:
    response = client.get("/modules/users", headers=_headers(admin_user))

    assert response.status_code == 200
    body = response.json()
    assert body["module"] == "users"
    assert body["title"] == "Users"
    assert body["orderBy"] == "id"
    assert body["sort"] == "DESC"
    assert body["pagination"]["totalRows"] == 1
    assert body["pagination"]["perPageOptions"] == [10, 25, 50, 100]
    assert [column["name"] for column in body["columns"]] == ["id", "role", "name", "email", "created_at"]
    assert body["rows"][0]["values"]["email"] == "root@example.com"
    assert body["showFilters"] is True
    assert body["hasFilters"] is False
    assert [action["name"] for action in body["toolbarActions"]] == ["create", "export"]
    assert body["toolbarActions"][0]["requiresForm"] is True


def test_session_header_is_required(client: TestClient, admin_user: User, modules: dict[str, Module]) -> None:
    response = client.get("/modules/users", headers={"X-User-Id": str(admin_user.id)})

    assert response.status_code == 400


def test_unknown_module_returns_404(client: TestClient, admin_user: User, modules: dict[str, Module]) -> None:
    assert client.get("/modules/ghosts", headers=_headers(admin_user)).status_code == 404


def test_access_is_denied_without_user_or_grant(
    client: TestClient, standard_user: User, modules: dict[str, Module]
) -> None:
    assert client.get("/modules/users", headers=_headers()).status_code == 403
    assert client.get("/modules/users", headers=_headers(standard_user)).status_code == 403


def test_list_modules_for_admin(client: TestClient, admin_user: User, modules: dict[str, Module]) -> None:
    response = client.get("/modules", headers=_headers(admin_user))

    assert response.status_code == 200
    assert [(item["link"], item["itemOrder"]) for item in response.json()] == [("users", 10), ("audits", 20)]


def test_store_creates_record_and_audit(
    client: TestClient, db_session: Session, admin_user: User, modules: dict[str, Module]
) -> None:
    response = client.post("/modules/users", json=_new_user_payload(), headers=_headers(admin_user))

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["recordId"] is not None
    assert body["notices"] == [{"level": "success", "message": "Successfully created record"}]
    assert body["listing"]["pagination"]["totalRows"] == 2

    audit = db_session.execute(select(Audit)).scalars().one()
    assert audit.event == "created"
    assert audit.ip_address == "testclient"


def test_store_with_invalid_payload_returns_422(
    client: TestClient, admin_user: User, modules: dict[str, Module]
) -> None:
    payload = _new_user_payload()
    payload["password_match"] = "different"

    response = client.post("/modules/users", json=payload, headers=_headers(admin_user))

    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["errors"] == {"password_match": ["Password does not match"]}
    assert body["notices"][0]["level"] == "warning"


def test_update_and_edit_form(client: TestClient, admin_user: User, modules: dict[str, Module]) -> None:
    created = client.post("/modules/users", json=_new_user_payload(), headers=_headers(admin_user)).json()
    record_id = created["recordId"]

    response = client.post(
        f"/modules/users/{record_id}/update",
        json={"role": "admin", "first_name": "Grace", "surname": "Hopper", "email": "grace@example.com"},
        headers=_headers(admin_user),
    )
    assert response.status_code == 200
    assert response.json()["success"] is True

    form = client.get(f"/modules/users/modal/{record_id}/edit", headers=_headers(admin_user)).json()
    assert form["formType"] == "edit"
    assert form["submitLabel"] == "Save Changes"
    assert {field["name"]: field["value"] for field in form["fields"]}["role"] == "admin"


def test_show_form_and_missing_record(client: TestClient, admin_user: User, modules: dict[str, Module]) -> None:
    response = client.get(f"/modules/users/modal/{admin_user.id}", headers=_headers(admin_user))
    assert response.status_code == 200
    body = response.json()
    assert body["formType"] == "show"
    assert body["submitLabel"] is None
    assert all(field["readonly"] and field["disabled"] for field in body["fields"])

    assert client.get("/modules/users/modal/999", headers=_headers(admin_user)).status_code == 404


def test_create_form_requires_grant(
    client: TestClient, standard_user: User, modules: dict[str, Module], grant
) -> None:
    grant(standard_user, modules["users"], has_edit=True)

    assert client.get("/modules/users/modal/create", headers=_headers(standard_user)).status_code == 403


def test_self_delete_is_forbidden(client: TestClient, admin_user: User, modules: dict[str, Module]) -> None:
    response = client.post(f"/modules/users/{admin_user.id}/destroy", headers=_headers(admin_user))

    assert response.status_code == 403


def test_destroy_removes_record(
    client: TestClient, db_session: Session, admin_user: User, standard_user: User, modules: dict[str, Module]
) -> None:
    response = client.post(f"/modules/users/{standard_user.id}/destroy", headers=_headers(admin_user))

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["listing"]["pagination"]["totalRows"] == 1
    assert db_session.execute(select(Audit.event)).scalars().all() == ["deleted"]


def test_table_action_reports_unknown_action(
    client: TestClient, admin_user: User, modules: dict[str, Module]
) -> None:
    response = client.post(
        "/modules/users/table-action",
        json={"action": "archive", "ids": [admin_user.id]},
        headers=_headers(admin_user),
    )

    assert response.status_code == 200
    assert response.json()["notices"] == [{"level": "warning", "message": "Unknown action"}]


def test_navigation_state_is_per_session(client: TestClient, admin_user: User, modules: dict[str, Module]) -> None:
    sorted_listing = client.get("/modules/users/sort/3", headers=_headers(admin_user)).json()
    assert (sorted_listing["orderBy"], sorted_listing["sort"]) == ("email", "DESC")

    resized = client.get("/modules/users/per-page/25", headers=_headers(admin_user)).json()
    assert resized["pagination"]["perPage"] == 25
    assert client.get("/modules/users/page/3", headers=_headers(admin_user)).json()["pagination"]["page"] == 1

    other_session = client.get("/modules/users", headers=_headers(admin_user, session_id="session-b")).json()
    assert other_session["orderBy"] == "id"
    assert other_session["pagination"]["perPage"] == 10


def test_filters_round_trip(
    client: TestClient, admin_user: User, standard_user: User, modules: dict[str, Module]
) -> None:
    response = client.post(
        "/modules/users/modal/filter",
        json={"search": "Sam", "dropdowns": {"0": "standard"}},
        headers=_headers(admin_user),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["hasFilters"] is True
    assert [row["values"]["email"] for row in body["rows"]] == ["sam@example.com"]

    form = client.get("/modules/users/modal/filter", headers=_headers(admin_user)).json()
    assert form["search"] == "Sam"
    assert form["showSearch"] is True
    assert form["dropdowns"][0]["selected"] == "standard"

    cleared = client.post("/modules/users/filter/clear", headers=_headers(admin_user)).json()
    assert cleared["hasFilters"] is False
    assert cleared["pagination"]["totalRows"] == 2


def test_invalid_filter_returns_form_with_errors(
    client: TestClient, admin_user: User, modules: dict[str, Module]
) -> None:
    response = client.post(
        "/modules/audits/modal/filter",
        json={"dateStart": "last week"},
        headers=_headers(admin_user),
    )

    assert response.status_code == 422
    body = response.json()
    assert list(body["errors"]) == ["date_start"]
    assert body["showDate"] is True


def test_filter_link_endpoints(
    client: TestClient, admin_user: User, modules: dict[str, Module]
) -> None:
    client.post("/modules/users", json=_new_user_payload(), headers=_headers(admin_user))
    client.post("/modules/users", json=_new_user_payload("ada@example.com"), headers=_headers(admin_user))

    count = client.get("/modules/audits/filter/count/0", headers=_headers(admin_user)).json()
    assert count == {"index": 0, "count": 2}

    listing = client.get("/modules/audits/filter/link/1", headers=_headers(admin_user)).json()
    assert listing["pagination"]["totalRows"] == 0
    assert [link["active"] for link in listing["filterLinks"]] == [False, True, False]


def test_export_csv_streams_attachment(client: TestClient, admin_user: User, modules: dict[str, Module]) -> None:
    response = client.get("/modules/users/export-csv", headers=_headers(admin_user))

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.headers["content-disposition"] == "attachment; filename=users_export.csv"
    lines = response.text.splitlines()
    assert lines[0] == "ID,Role,Name,Email,Created"
    assert lines[1].startswith(f"{admin_user.id},admin,Root Admin,root@example.com,")


def test_export_requires_grant(
    client: TestClient, standard_user: User, modules: dict[str, Module], grant
) -> None:
    grant(standard_user, modules["users"], has_create=True)

    assert client.get("/modules/users/export-csv", headers=_headers(standard_user)).status_code == 403


def test_filter_accepts_option_values_from_its_form(
    client: TestClient, admin_user: User, modules: dict[str, Module]
) -> None:
    client.post("/modules/users", json=_new_user_payload(), headers=_headers(admin_user))

    form = client.get("/modules/audits/modal/filter", headers=_headers(admin_user)).json()
    user_filter = form["dropdowns"][1]
    assert user_filter["label"] == "User"
    options = {option["label"].strip(): option["value"] for option in user_filter["options"]}

    response = client.post(
        "/modules/audits/modal/filter",
        json={"dropdowns": {"1": options["Root Admin"]}},
        headers=_headers(admin_user),
    )
    assert response.status_code == 200
    assert response.json()["pagination"]["totalRows"] == 1

    form = client.get("/modules/audits/modal/filter", headers=_headers(admin_user)).json()
    assert form["dropdowns"][1]["selected"] == str(options["Root Admin"])

    response = client.post(
        "/modules/audits/modal/filter",
        json={"dropdowns": {"1": options["Grace Hopper"]}},
        headers=_headers(admin_user),
    )
    assert response.json()["pagination"]["totalRows"] == 0
