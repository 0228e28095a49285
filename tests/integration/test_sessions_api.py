"""
Integration tests for the session API endpoints

These tests drive the FastAPI application through TestClient with the
in-memory table backend behind the repository.
"""

import pytest

from session_service.core.exceptions import StorageError
from session_service.main import app
from session_service.services.session_repository import SessionRepository
from session_service.storage.memory import InMemoryTableBackend
from tests.utils.factories import SessionFactory

# Mark all tests in this module as integration tests
pytestmark = pytest.mark.integration


class BrokenBackend(InMemoryTableBackend):
    """Backend that is always unavailable"""

    async def get_item(self, key):
        raise StorageError("table unavailable", operation="get_item")

    async def put_item(self, item, *, now):
        raise StorageError("table unavailable", operation="put_item")

    def query_by_username(self, username):
        raise StorageError("table unavailable", operation="query")

    async def health_check(self):
        return {"type": "broken", "healthy": False, "message": "table unavailable"}


@pytest.fixture
def broken_client(client, clock):
    """Client whose storage fails every call"""
    backend = BrokenBackend()
    app.state.session_backend = backend
    app.state.session_repository = SessionRepository(backend, clock=clock)
    return client


@pytest.mark.api
@pytest.mark.critical
class TestSessionLifecycle:
    """End-to-end session scenarios"""

    def test_create_get_delete_scenario(self, client, sample_session_request):
        response = client.post("/sessions", json=sample_session_request)
        assert response.status_code == 201
        created = response.json()
        session_id = created["sessionId"]
        assert session_id
        assert created["username"] == "alice"
        assert created["payload"] == "p1"
        assert created["expiresAt"] - created["createdAt"] == 3600

        response = client.get(f"/sessions/{session_id}")
        assert response.status_code == 200
        assert response.json() == created

        response = client.delete("/sessions/alice")
        assert response.status_code == 200
        assert response.json() == {"username": "alice", "deletedCount": 1}

        response = client.get(f"/sessions/{session_id}")
        assert response.status_code == 404

    def test_get_nonexistent_session(self, client, memory_backend):
        response = client.get("/sessions/nonexistent-id")

        assert response.status_code == 404
        assert response.json() == {"error": "Session does not exist."}
        assert len(memory_backend) == 0

    def test_get_by_query_parameter(self, client, sample_session_request):
        created = client.post("/sessions", json=sample_session_request).json()

        response = client.get("/sessions", params={"id": created["sessionId"]})

        assert response.status_code == 200
        assert response.json()["sessionId"] == created["sessionId"]

    def test_get_by_query_parameter_requires_id(self, client):
        response = client.get("/sessions")

        assert response.status_code == 400
        assert "id" in response.json()["error"]

    def test_expired_session_returns_404(self, client, clock):
        created = client.post(
            "/sessions", json=SessionFactory.create_request(ttlSeconds=60)
        ).json()

        clock.advance(60)

        assert client.get(f"/sessions/{created['sessionId']}").status_code == 404

    def test_default_ttl_when_omitted(self, client, repository):
        created = client.post("/sessions", json={"username": "alice", "payload": "p1"}).json()

        assert created["expiresAt"] - created["createdAt"] == repository.default_ttl_seconds

    def test_two_creates_for_same_user_are_distinct(self, client):
        first = client.post("/sessions", json=SessionFactory.create_request(payload="a")).json()
        second = client.post("/sessions", json=SessionFactory.create_request(payload="b")).json()

        assert first["sessionId"] != second["sessionId"]
        assert client.get(f"/sessions/{first['sessionId']}").json()["payload"] == "a"
        assert client.get(f"/sessions/{second['sessionId']}").json()["payload"] == "b"


@pytest.mark.api
class TestCreateValidation:
    """Test POST /sessions input handling"""

    @pytest.mark.parametrize(
        "case", sorted(SessionFactory.create_malformed_requests().keys())
    )
    def test_malformed_request_rejected_without_write(self, client, memory_backend, case):
        body = SessionFactory.create_malformed_requests()[case]

        response = client.post("/sessions", json=body)

        assert response.status_code == 400
        assert "error" in response.json()
        assert len(memory_backend) == 0

    def test_missing_username_writes_nothing(self, client):
        response = client.post("/sessions", json={"payload": "p1"})
        assert response.status_code == 400

        # No session can be found for any user afterwards
        response = client.delete("/sessions/alice")
        assert response.json()["deletedCount"] == 0

    def test_non_json_body_rejected(self, client, memory_backend):
        response = client.post(
            "/sessions", content="username=alice", headers={"Content-Type": "text/plain"}
        )

        assert response.status_code == 400
        assert len(memory_backend) == 0

    def test_ttl_above_maximum_rejected(self, client, repository):
        body = SessionFactory.create_request(ttlSeconds=repository.max_ttl_seconds + 1)

        response = client.post("/sessions", json=body)

        assert response.status_code == 400
        assert "ttlSeconds" in response.json()["error"]

    def test_supplied_session_id(self, client):
        body = SessionFactory.create_request(sessionId="chosen-id")

        response = client.post("/sessions", json=body)

        assert response.status_code == 201
        assert response.json()["sessionId"] == "chosen-id"

    def test_supplied_session_id_with_slash(self, client):
        client.post("/sessions", json=SessionFactory.create_request(sessionId="a/b"))

        response = client.get("/sessions/a%2Fb")

        assert response.status_code == 200
        assert response.json()["sessionId"] == "a/b"
        assert client.get("/sessions", params={"id": "a/b"}).status_code == 200

    def test_supplied_session_id_collision_conflicts(self, client):
        client.post("/sessions", json=SessionFactory.create_request(sessionId="chosen-id"))

        response = client.post(
            "/sessions",
            json=SessionFactory.create_request(username="mallory", sessionId="chosen-id"),
        )

        assert response.status_code == 409
        assert client.get("/sessions/chosen-id").json()["username"] == "alice"


@pytest.mark.api
class TestDeleteUserSessions:
    """Test DELETE /sessions/{username}"""

    def test_user_without_sessions_is_not_404(self, client):
        response = client.delete("/sessions/nobody")

        assert response.status_code == 200
        assert response.json() == {"username": "nobody", "deletedCount": 0}

    def test_username_with_slash(self, client):
        created = client.post(
            "/sessions", json=SessionFactory.create_request(username="team/alice")
        ).json()

        response = client.delete("/sessions/team%2Falice")

        assert response.status_code == 200
        assert response.json() == {"username": "team/alice", "deletedCount": 1}
        assert client.get(f"/sessions/{created['sessionId']}").status_code == 404

    def test_overlong_username_is_not_an_error(self, client):
        response = client.delete(f"/sessions/{'x' * 300}")

        assert response.status_code == 200
        assert response.json()["deletedCount"] == 0

    def test_other_users_unaffected(self, client):
        alice = [
            client.post("/sessions", json=SessionFactory.create_request()).json()
            for _ in range(2)
        ]
        bob = client.post(
            "/sessions", json=SessionFactory.create_request(username="bob")
        ).json()

        response = client.delete("/sessions/alice")

        assert response.json()["deletedCount"] == 2
        for session in alice:
            assert client.get(f"/sessions/{session['sessionId']}").status_code == 404
        assert client.get(f"/sessions/{bob['sessionId']}").status_code == 200


@pytest.mark.api
class TestStorageFailures:
    """Storage failures surface as 5xx without retries"""

    def test_get_storage_error_is_503(self, broken_client):
        response = broken_client.get("/sessions/anything")

        assert response.status_code == 503
        assert "error" in response.json()

    def test_create_storage_error_is_503(self, broken_client):
        response = broken_client.post("/sessions", json=SessionFactory.create_request())

        assert response.status_code == 503

    def test_delete_storage_error_is_503(self, broken_client):
        response = broken_client.delete("/sessions/alice")

        assert response.status_code == 503

    def test_key_generation_exhausted_is_500(self, client, memory_backend, clock):
        app.state.session_repository = SessionRepository(
            memory_backend, clock=clock, id_generator=lambda: "fixed"
        )
        assert client.post("/sessions", json=SessionFactory.create_request()).status_code == 201

        response = client.post("/sessions", json=SessionFactory.create_request())

        assert response.status_code == 500
        assert "unique session id" in response.json()["error"]


@pytest.mark.api
class TestServiceEndpoints:
    """Test health, routing and request tracing"""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_api_health_reports_storage(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["services"]["storage"]["type"] == "memory"

    def test_api_health_degraded_when_storage_down(self, broken_client):
        response = broken_client.get("/api/health")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"

    def test_unknown_endpoint(self, client):
        response = client.get("/nowhere")

        assert response.status_code == 404
        assert response.json() == {"error": "endpoint /nowhere not found"}

    def test_correlation_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "trace-42"})

        assert response.headers["X-Request-ID"] == "trace-42"

    def test_correlation_id_generated(self, client):
        response = client.get("/health", headers={"X-Request-ID": "bad id with spaces"})

        assert response.headers["X-Request-ID"] != "bad id with spaces"
        assert response.headers["X-Request-ID"]
