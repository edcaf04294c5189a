"""Echo endpoints behind the scope and permission guard."""

from conftest import bearer, client_token, user_token

READ_API = {"method": "GET", "path": "^/api/.*"}
WRITE_API = {"method": "POST", "path": "^/api/data$"}


def test_health(api):
    assert api.get("/health").json() == {"status": "ok", "service": "filtroclientes-api"}


def test_read_with_scope_and_permission(api, make_client):
    client = make_client(scopes=["read"], permissions=[READ_API])
    response = api.get("/api/data", headers=bearer(client_token(client)))
    assert response.status_code == 200
    assert response.json()["client"] == "acme-webhook"
    assert response.headers["cache-control"].startswith("no-store")


def test_write_needs_write_scope(api, make_client):
    client = make_client(scopes=["read"], permissions=[READ_API, WRITE_API])
    response = api.post("/api/data", headers=bearer(client_token(client)))
    assert response.status_code == 403
    assert response.json() == {"error": "insufficient_scopes"}


def test_scope_without_matching_permission(api, make_client):
    client = make_client(scopes=["read", "write"], permissions=[READ_API])
    response = api.post("/api/data", headers=bearer(client_token(client)))
    assert response.status_code == 403
    assert response.json() == {"error": "not_allowed"}


def test_token_scopes_narrow_the_client(api, make_client):
    client = make_client(scopes=["read", "write"], permissions=[READ_API, WRITE_API])
    response = api.post("/api/data", headers=bearer(client_token(client, scopes=["read"])))
    assert response.status_code == 403


def test_admin_bypasses_checks(api, make_client):
    client = make_client(scopes=[], permissions=[], is_admin=True)
    assert api.post("/api/data", headers=bearer(client_token(client))).status_code == 200


def test_portal_user_lacks_api_scopes(api, make_user):
    response = api.get("/api/data", headers=bearer(user_token(make_user())))
    assert response.status_code == 403
    assert response.json() == {"error": "insufficient_scopes"}


def test_garbage_token(api):
    response = api.get("/api/data", headers=bearer("not-a-jwt"))
    assert response.status_code == 401
    assert response.json() == {"error": "unauthorized"}


def test_exact_prefixed_permission(api, make_client):
    client = make_client(scopes=["read"], permissions=[{"method": "GET", "path": "^/api/data$"}])
    response = api.get("/api/data?verbose=1", headers=bearer(client_token(client)))
    assert response.status_code == 200
