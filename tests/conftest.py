from datetime import date, time, timedelta

import pytest

from app import create_app
from models import db
from models.facility import Facility
from models.membership import Membership, MembershipType
from models.user import Role, User
from security.password import hash_password

PASSWORD = "correct-horse-battery"


@pytest.fixture
def app(tmp_path):
    # a file database so that threads with their own connections see each other's commits
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///" + str(tmp_path / "clubslot-test.db"),
        "AUTO_CREATE_TABLES": True,
        "LOG_LEVEL": "WARNING",
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make(email=None, role="MEMBER", status="active"):
        counter["n"] += 1
        user = User(
            email=email or f"member{counter['n']}@club.test",
            password_hash=hash_password(PASSWORD, rounds=4),
            first_name="Test",
            last_name=f"User{counter['n']}",
            status=status,
        )
        user.roles.append(Role.query.filter_by(name=role).one())
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_facility(app):
    def _make(**overrides):
        fields = dict(
            name="Court 1",
            type="tennis_court",
            operating_hours_start=time(8, 0),
            operating_hours_end=time(22, 0),
            booking_duration_minutes=60,
            booking_buffer_minutes=15,
            status="available",
        )
        fields.update(overrides)
        facility = Facility(**fields)
        db.session.add(facility)
        db.session.commit()
        return facility

    return _make


@pytest.fixture
def make_membership_type(app):
    def _make(**overrides):
        fields = dict(
            name="Tennis",
            duration_months=12,
            price=0,
            facilities_access=["tennis_court"],
            max_bookings_per_day=5,
            max_booking_days_ahead=30,
        )
        fields.update(overrides)
        mtype = MembershipType(**fields)
        db.session.add(mtype)
        db.session.commit()
        return mtype

    return _make


@pytest.fixture
def make_membership(app, make_membership_type):
    def _make(user, mtype=None, start_date=None, end_date=None, status="active"):
        mtype = mtype or make_membership_type()
        today = date.today()
        membership = Membership(
            user_id=user.id,
            membership_type_id=mtype.id,
            start_date=start_date or today - timedelta(days=30),
            end_date=end_date or today + timedelta(days=365),
            status=status,
        )
        db.session.add(membership)
        db.session.commit()
        return membership

    return _make


@pytest.fixture
def login(app):
    """Log a user in on a fresh test client; returns (client, csrf headers)."""

    def _login(user):
        c = app.test_client()
        resp = c.post("/auth/login", json={"email": user.email, "password": PASSWORD})
        assert resp.status_code == 200, resp.get_json()
        headers = {"X-CSRF-Token": c.get_cookie("csrf_token").value}
        return c, headers

    return _login
