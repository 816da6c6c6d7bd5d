from datetime import date, timedelta

import pytest

from gymflow.exceptions import Conflict, NotFound
from gymflow.services.membership_service import MembershipService, serialize_membership

pytestmark = pytest.mark.integration


@pytest.fixture
def svc(db):
    return MembershipService(db)


def test_chain_snapshot_is_fixed_at_creation(svc, gym_factory, user_factory):
    a = gym_factory(name="SmartFit A", chain="SmartFit")
    b = gym_factory(name="SmartFit B", chain="SmartFit")
    c = gym_factory(name="SmartFit C", chain="SmartFit")
    gym_factory(name="Other", chain="PowerFit")
    user = user_factory()

    m = svc.create_for_gym(user.id, b.id)
    assert m.type == "SMARTFIT"
    assert svc.granted_gym_ids(user.id) == sorted([a.id, b.id, c.id])

    d = gym_factory(name="SmartFit D", chain="SmartFit")
    assert d.id not in svc.granted_gym_ids(user.id)


def test_inactive_chain_gyms_are_not_granted(svc, gym_factory, user_factory):
    a = gym_factory(chain="SmartFit")
    closed = gym_factory(chain="SmartFit", is_active=False)
    user = user_factory()
    svc.create_for_gym(user.id, a.id)
    assert closed.id not in svc.granted_gym_ids(user.id)


def test_gym_without_chain_grants_only_itself(svc, gym_factory, user_factory):
    gym = gym_factory()
    gym_factory()
    user = user_factory()
    m = svc.create_for_gym(user.id, gym.id, days=10)
    assert m.type == "BASIC"
    assert m.status == "ACTIVE"
    assert m.end_date - m.start_date == timedelta(days=10)
    assert svc.granted_gym_ids(user.id) == [gym.id]


def test_one_membership_per_user(svc, gym_factory, user_factory):
    gym = gym_factory()
    user = user_factory()
    svc.create_for_gym(user.id, gym.id)
    with pytest.raises(Conflict):
        svc.create_for_gym(user.id, gym.id)


def test_unknown_user_or_gym(svc, gym_factory, user_factory):
    with pytest.raises(NotFound):
        svc.create_for_gym("missing", gym_factory().id)
    with pytest.raises(NotFound):
        svc.create_for_gym(user_factory().id, "missing")


def test_default_length_from_env(svc, gym_factory, user_factory, monkeypatch):
    monkeypatch.setenv("MEMBERSHIP_DAYS", "90")
    m = svc.create_for_gym(user_factory().id, gym_factory().id)
    assert m.start_date == date.today()
    assert m.end_date == date.today() + timedelta(days=90)


def test_serialize_membership(svc, gym_factory, user_factory):
    gym = gym_factory(name="FitZone")
    user = user_factory()
    svc.create_for_gym(user.id, gym.id)
    data = serialize_membership(svc.get_user_membership(user.id))
    assert data["userId"] == user.id
    assert data["gyms"] == [{"gymId": gym.id, "name": "FitZone"}]


def test_validate_rut(svc, gym_factory, user_factory):
    gym = gym_factory(name="SmartFit Centro", chain="SmartFit")
    user_factory(rut="12345678-5")

    taken = svc.validate_rut("12.345.678-5", gym.id)
    assert taken["exists"] is True
    assert taken["hasAccount"] is True

    free = svc.validate_rut("9876543-2", gym.id)
    assert free["exists"] is False
    assert free["gymFound"] is True
    assert free["gymChain"] == "SmartFit"

    assert svc.validate_rut("9876543-2", "missing")["gymFound"] is False
