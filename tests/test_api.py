import pytest
from fastapi.testclient import TestClient

from gymflow.main import create_app
from gymflow.services.auth_service import hash_password

pytestmark = pytest.mark.api


@pytest.fixture
def client(session_factory):
    app = create_app(session_factory=session_factory)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def staff(user_factory):
    return user_factory(name="Staff", role="GYM_STAFF", email="staff@test.cl", password_hash=hash_password("secret123"))


def _operator_token(client, gym_id):
    resp = client.post(
        "/api/auth/operator-session",
        json={"email": "staff@test.cl", "password": "secret123", "gymId": gym_id},
    )
    assert resp.status_code == 200
    return resp.json()["token"]


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


class TestCheckinRoutes:
    def test_checkin_then_duplicate(self, client, member):
        user, gym = member
        resp = client.post("/api/checkins", json={"gymId": gym.id, "userId": user.id})
        assert resp.status_code == 201
        body = resp.json()
        assert body["gymId"] == gym.id
        assert body["state"] == "INSIDE"

        dup = client.post("/api/checkins", json={"gymId": gym.id, "userId": user.id})
        assert dup.status_code == 409
        assert dup.json()["error"] == "DUPLICATE_SESSION"
        assert dup.json()["ok"] is False

        cap = client.get(f"/api/checkins/gym/{gym.id}/capacity").json()
        assert cap["current"] == 1
        assert cap["max"] == 10
        assert cap["percentage"] == 10

    def test_event_id_replay_returns_same_row(self, client, member):
        user, gym = member
        payload = {"gymId": gym.id, "rut": "12.345.678-5", "eventId": "evt-1"}
        first = client.post("/api/checkins", json=payload)
        second = client.post("/api/checkins", json=payload)
        assert first.status_code == second.status_code == 201
        assert first.json()["id"] == second.json()["id"]

    def test_checkout_routes(self, client, member):
        user, gym = member
        row = client.post("/api/checkins", json={"gymId": gym.id, "userId": user.id}).json()

        out = client.put(f"/api/checkins/{row['id']}/checkout")
        assert out.status_code == 200
        assert out.json()["checkedOut"] is not None

        again = client.put(f"/api/checkins/{row['id']}/checkout")
        assert again.status_code == 409
        assert again.json()["error"] == "ALREADY_CHECKED_OUT"

        missing = client.post("/api/checkins/checkout", json={"gymId": gym.id, "userId": user.id})
        assert missing.status_code == 404

    def test_active_reads(self, client, member):
        user, gym = member
        client.post("/api/checkins", json={"gymId": gym.id, "userId": user.id})
        active = client.get(f"/api/checkins/gym/{gym.id}/active").json()
        assert [r["userId"] for r in active] == [user.id]
        by_rut = client.get(f"/api/checkins/active/{gym.id}/12345678-5").json()
        assert by_rut["userId"] == user.id
        mine = client.get(f"/api/checkins/user/{user.id}/active").json()
        assert len(mine) == 1 and "user" not in mine[0]

    def test_unknown_gym_is_404(self, client):
        resp = client.get("/api/checkins/gym/nope/capacity")
        assert resp.status_code == 404
        assert set(resp.json()) == {"ok", "error", "message", "details"}

    def test_checkin_without_credential_is_anonymous(self, client, member):
        _, gym = member
        resp = client.post("/api/checkins", json={"gymId": gym.id})
        assert resp.status_code == 201
        assert resp.json()["userId"] is None
        assert resp.json()["user"] is None


class TestSimulator:
    def test_toggle(self, client, member):
        user, gym = member
        first = client.post("/api/checkins/simulate", json={"gymId": gym.id, "qrCode": user.qr_code})
        assert first.json()["action"] == "checkin"
        second = client.post("/api/checkins/simulate", json={"gymId": gym.id, "qrCode": user.qr_code})
        assert second.json()["action"] == "checkout"
        assert second.json()["isCheckout"] is True

    def test_explicit_events(self, client, member):
        user, gym = member
        entry = client.post("/api/checkins/simulate", json={"gymId": gym.id, "userId": user.id, "event": "entry"})
        assert entry.json()["action"] == "checkin"
        assert entry.json()["checkin"]["source"] == "simulator"
        exit_ = client.post("/api/checkins/simulate", json={"gymId": gym.id, "userId": user.id, "event": "exit"})
        assert exit_.json()["action"] == "checkout"

    def test_disabled_in_production(self, client, member, monkeypatch):
        user, gym = member
        monkeypatch.setenv("ENV", "production")
        resp = client.post("/api/checkins/simulate", json={"gymId": gym.id, "userId": user.id})
        assert resp.status_code == 403
        assert resp.json()["error"] == "SIMULATOR_DISABLED"


class TestOperatorAccess:
    def test_requires_operator_session(self, client, member):
        user, _ = member
        resp = client.post("/api/auth/access", json={"userId": user.id})
        assert resp.status_code == 401
        assert resp.json()["error"] == "OPERATOR_SESSION_REQUIRED"

    def test_rejects_user_token(self, client, member):
        user, _ = member
        reg = client.post(
            "/api/auth/register",
            json={"email": "nuevo@test.cl", "name": "Nuevo Socio", "password": "secret123"},
        )
        token = reg.json()["token"]
        resp = client.post(
            "/api/auth/access", json={"userId": user.id}, headers={"Authorization": f"Bearer {token}"}
        )
        assert resp.status_code == 401
        assert resp.json()["error"] == "INVALID_TOKEN"

    def test_scan_toggles(self, client, member, staff):
        user, gym = member
        token = _operator_token(client, gym.id)
        headers = {"Authorization": f"Bearer {token}"}

        entry = client.post("/api/auth/access", json={"rut": "12345678-5"}, headers=headers)
        assert entry.status_code == 200
        assert entry.json()["action"] == "checkin"
        assert entry.json()["message"] == "Acceso concedido"

        exit_ = client.post("/api/auth/access", json={"rut": "12345678-5"}, headers={"X-Operator-Token": token})
        assert exit_.json()["action"] == "checkout"

    def test_gym_mismatch(self, client, member, staff, gym_factory):
        user, gym = member
        other = gym_factory()
        token = _operator_token(client, gym.id)
        resp = client.post(
            "/api/auth/access",
            json={"userId": user.id, "gymId": other.id},
            headers={"Authorization": f"Bearer {token}"},
        )
        assert resp.status_code == 403
        assert resp.json()["error"] == "OPERATOR_GYM_MISMATCH"

    def test_membership_denial_message(self, client, user_factory, gym_factory, staff):
        gym = gym_factory()
        user_factory(rut="11111111-1")
        token = _operator_token(client, gym.id)
        resp = client.post(
            "/api/auth/access", json={"rut": "11111111-1"}, headers={"Authorization": f"Bearer {token}"}
        )
        assert resp.status_code == 403
        assert resp.json()["message"] == "No tienes membresía activa"

    def test_plain_user_cannot_open_operator_session(self, client, gym_factory, user_factory):
        gym = gym_factory()
        user_factory(email="socio@test.cl", password_hash=hash_password("secret123"))
        resp = client.post(
            "/api/auth/operator-session",
            json={"email": "socio@test.cl", "password": "secret123", "gymId": gym.id},
        )
        assert resp.status_code == 403
        assert resp.json()["error"] == "NOT_STAFF"


class TestAuthRoutes:
    def test_register_and_login(self, client, gym_factory):
        gym = gym_factory(chain="SmartFit")
        reg = client.post(
            "/api/auth/register",
            json={
                "email": "Nueva@Test.cl",
                "name": "Nueva Socia",
                "password": "secret123",
                "rut": "12.345.678-5",
                "gymId": gym.id,
            },
        )
        assert reg.status_code == 201
        body = reg.json()
        assert body["user"]["rut"] == "12345678-5"
        assert body["membership"]["type"] == "SMARTFIT"

        login = client.post("/api/auth/login", json={"email": "nueva@test.cl", "password": "secret123"})
        assert login.status_code == 200
        assert login.json()["user"]["id"] == body["user"]["id"]

        bad = client.post("/api/auth/login", json={"email": "nueva@test.cl", "password": "wrong"})
        assert bad.status_code == 401

    def test_register_validation(self, client):
        resp = client.post(
            "/api/auth/register",
            json={"email": "x@test.cl", "name": "Xi Test", "password": "secret123", "rut": "abc"},
        )
        assert resp.status_code == 422


class TestGymAndMembershipRoutes:
    def test_gyms(self, client, member, gym_factory):
        user, gym = member
        gym_factory(is_active=False)
        listed = client.get("/api/gyms").json()
        assert [g["id"] for g in listed] == [gym.id]
        assert listed[0]["availableSpots"] == 10
        assert client.get(f"/api/gyms/{gym.id}").json()["name"] == gym.name
        assert client.get("/api/gyms/missing").status_code == 404
        assert [g["id"] for g in client.get(f"/api/gyms/for-user/{user.id}").json()] == [gym.id]
        stats = client.get(f"/api/gyms/{gym.id}/hourly-stats").json()
        assert len(stats["hours"]) == 24

    def test_memberships(self, client, member, user_factory, gym_factory):
        user, gym = member
        other = gym_factory()
        data = client.get(f"/api/memberships/user/{user.id}").json()
        assert data["gyms"][0]["gymId"] == gym.id
        assert client.get(f"/api/memberships/user/{user_factory().id}").status_code == 404

        ok = client.get(f"/api/memberships/user/{user.id}/gym/{gym.id}/validate").json()
        no = client.get(f"/api/memberships/user/{user.id}/gym/{other.id}/validate").json()
        assert ok["hasAccess"] is True
        assert no["hasAccess"] is False

        taken = client.post("/api/memberships/validate-rut", json={"rut": "12345678-5", "gymId": gym.id}).json()
        assert taken["exists"] is True

    def test_dashboards(self, client, member):
        user, gym = member
        client.post("/api/checkins", json={"gymId": gym.id, "userId": user.id})
        staff = client.get(f"/api/checkins/dashboard/staff/{gym.id}").json()
        assert staff["stats"]["currentInside"] == 1
        owner = client.get(f"/api/checkins/dashboard/owner/{gym.id}", params={"days": 7})
        assert owner.status_code == 200
        assert owner.json()["period"]["days"] == 7
        assert client.get(f"/api/checkins/dashboard/owner/{gym.id}", params={"days": 0}).status_code == 422


class TestRealtime:
    def test_subscribe_receives_snapshot_and_events(self, client, member):
        user, gym = member
        with client.websocket_connect("/ws/capacity") as ws:
            ws.send_json({"action": "subscribe", "gymId": gym.id})
            ack = ws.receive_json()
            assert ack == {"event": "subscribed", "data": {"topic": f"gym:{gym.id}", "gymId": gym.id}}
            initial = ws.receive_json()
            assert initial["type"] == "capacity"
            assert initial["payload"]["current"] == 0

            client.post("/api/checkins", json={"gymId": gym.id, "userId": user.id})
            event = ws.receive_json()
            assert event["type"] == "checkin"
            assert event["payload"]["userId"] == user.id
            update = ws.receive_json()
            assert update == {
                "type": "capacity",
                "payload": {
                    "gymId": gym.id,
                    "gymName": gym.name,
                    "current": 1,
                    "max": 10,
                    "available": 9,
                    "percentage": 10,
                },
            }

    def test_ping_and_invalid_messages(self, client):
        with client.websocket_connect("/ws/capacity") as ws:
            ws.send_text("ping")
            assert ws.receive_text() == "pong"
            ws.send_text("not json")
            assert ws.receive_json()["event"] == "error"
            ws.send_json({"action": "subscribe"})
            assert ws.receive_json()["event"] == "error"
            ws.send_json({"action": "subscribe", "topic": "global"})
            assert ws.receive_json() == {"event": "subscribed", "data": {"topic": "global"}}
