import pytest

from neomed.middleware.mount_prefix import MountPrefixMiddleware

CORS = {
    "access-control-allow-origin": "*",
    "access-control-allow-headers": "Content-Type, Authorization, X-User-Id",
    "access-control-allow-methods": "GET, POST, OPTIONS",
}


def assert_cors(response):
    for name, value in CORS.items():
        assert response.headers[name] == value


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["ok"] is True
    assert_cors(response)


async def test_detailed_health(client):
    response = await client.get("/health/detailed")
    assert response.status_code == 200
    assert response.json()["services"]["database"]["status"] == "healthy"


@pytest.mark.parametrize("path", ["/health", "/saveAll", "/doctor/emergency/x/resolve", "/nowhere"])
async def test_preflight_answers_204_everywhere(client, path):
    response = await client.options(path)
    assert response.status_code == 204
    assert response.content == b""
    assert_cors(response)


@pytest.mark.parametrize("prefix", ["", "/api", "/.netlify/functions/api"])
async def test_mount_prefixes_are_stripped(client, prefix):
    response = await client.get(f"{prefix}/health")
    assert response.status_code == 200
    assert response.json()["ok"] is True


async def test_prefixed_auth_flow(client, admin):
    response = await client.get("/.netlify/functions/api/auth/me", headers=admin.headers)
    assert response.status_code == 200
    assert response.json()["user"]["id"] == admin.id


async def test_unknown_route(client):
    response = await client.get("/api/does/not/exist")
    assert response.status_code == 404
    assert response.json() == {
        "success": False,
        "code": "route/not-found",
        "message": "Route not found: GET /does/not/exist",
    }
    assert_cors(response)


async def test_wrong_method_is_route_not_found(client):
    response = await client.get("/auth/login")
    assert response.status_code == 404
    assert response.json()["message"] == "Route not found: GET /auth/login"


async def test_error_envelope_carries_cors_headers(client):
    response = await client.get("/auth/me")
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"
    assert_cors(response)


async def test_malformed_body_is_invalid_body(client):
    response = await client.post(
        "/auth/login", content=b"{not json", headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 400
    assert response.json()["code"] == "request/invalid-body"


def test_mount_prefix_strip():
    middleware = MountPrefixMiddleware(app=None, prefixes=["/api", "/.netlify/functions/api"])
    assert middleware.strip("/.netlify/functions/api/all") == "/all"
    assert middleware.strip("/api/all") == "/all"
    assert middleware.strip("/api") == "/"
    assert middleware.strip("/apiary") == "/apiary"
    assert middleware.strip("/all") == "/all"
