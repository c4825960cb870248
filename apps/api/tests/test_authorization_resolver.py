from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.authz.roles import NotificationScope, Role
from app.authz.service import AuthorizationResolver, DenyReason
from app.core.database import Base
from app.identity import Principal, StubIdentityProvider
from app.notifications.models import Notification
from app.tenancy.models import Agency, Invitation, Permission, SubAccount, User


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


def _agency(agency_id: str) -> Agency:
    return Agency(
        id=agency_id,
        name=f"Agency {agency_id}",
        agency_logo="https://cdn.acme.io/logo.png",
        company_email=f"{agency_id}@acme.io",
        company_phone="+1 555 0100",
        address="1 Main St",
        city="Springfield",
        zip_code="12345",
        state="IL",
        country="US",
    )


def _sub_account(subaccount_id: str, agency_id: str) -> SubAccount:
    return SubAccount(
        id=subaccount_id,
        agency_id=agency_id,
        name=f"Sub {subaccount_id}",
        sub_account_logo="https://cdn.acme.io/sub.png",
        company_email=f"{subaccount_id}@acme.io",
        company_phone="+1 555 0101",
        address="2 Main St",
        city="Springfield",
        zip_code="12345",
        state="IL",
        country="US",
    )


@pytest.fixture()
def tenancy(db_session: Session) -> None:
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    db_session.add_all(
        [
            _agency("agency-1"),
            _agency("agency-2"),
            _sub_account("sub-1", "agency-1"),
            _sub_account("sub-2", "agency-1"),
            _sub_account("sub-9", "agency-2"),
            User(id="owner-1", name="Olive Owner", email="owner@acme.io", role="AGENCY_OWNER", agency_id="agency-1"),
            User(id="admin-2", name="Adam Admin", email="admin2@acme.io", role="AGENCY_ADMIN", agency_id="agency-2"),
            User(id="member-1", name="Mia Member", email="mia@acme.io", role="SUBACCOUNT_USER", agency_id="agency-1"),
            User(id="guest-1", name="Gus Guest", email="gus@acme.io", role="SUBACCOUNT_GUEST", agency_id="agency-1"),
            Permission(email="mia@acme.io", sub_account_id="sub-1", access=True),
            Permission(email="mia@acme.io", sub_account_id="sub-2", access=False),
        ]
    )
    db_session.flush()
    db_session.add_all(
        [
            Notification(
                id="n-agency",
                notification="Olive Owner | Updated agency",
                agency_id="agency-1",
                user_id="owner-1",
                created_at=base,
            ),
            Notification(
                id="n-sub-1",
                notification="Mia Member | Moved ticket",
                agency_id="agency-1",
                sub_account_id="sub-1",
                user_id="member-1",
                created_at=base + timedelta(minutes=1),
            ),
            Notification(
                id="n-sub-2",
                notification="Olive Owner | Created sub-account",
                agency_id="agency-1",
                sub_account_id="sub-2",
                user_id="owner-1",
                created_at=base + timedelta(minutes=2),
            ),
        ]
    )
    db_session.commit()


@pytest.fixture()
def identity() -> StubIdentityProvider:
    return StubIdentityProvider()


def _principal(user_id: str, email: str, role: str | None = None) -> Principal:
    metadata = {"role": role} if role else {}
    return Principal(id=user_id, email=email, first_name="Test", last_name="User", private_metadata=metadata)


def test_missing_principal_is_unauthenticated_with_sign_in_redirect(
    db_session: Session,
    tenancy: None,
    identity: StubIdentityProvider,
) -> None:
    decision = AuthorizationResolver().authorize_subaccount(db_session, None, "sub-1", identity=identity)

    assert decision.allowed is False
    assert decision.reason == DenyReason.UNAUTHENTICATED
    assert decision.redirect_to == "/sign-in"


def test_member_with_access_sees_only_subaccount_notifications(
    db_session: Session,
    tenancy: None,
    identity: StubIdentityProvider,
) -> None:
    decision = AuthorizationResolver().authorize_subaccount(
        db_session,
        _principal("member-1", "mia@acme.io"),
        "sub-1",
        identity=identity,
    )

    assert decision.allowed is True
    assert decision.role == Role.SUBACCOUNT_USER
    assert decision.agency_id == "agency-1"
    assert decision.scope == NotificationScope.SUBACCOUNT
    assert [row.id for row in decision.notifications] == ["n-sub-1"]


def test_member_with_revoked_access_is_denied(
    db_session: Session,
    tenancy: None,
    identity: StubIdentityProvider,
) -> None:
    decision = AuthorizationResolver().authorize_subaccount(
        db_session,
        _principal("member-1", "mia@acme.io"),
        "sub-2",
        identity=identity,
    )

    assert decision.allowed is False
    assert decision.reason == DenyReason.UNAUTHORIZED
    assert decision.notifications == []


def test_guest_without_permission_row_is_denied(
    db_session: Session,
    tenancy: None,
    identity: StubIdentityProvider,
) -> None:
    decision = AuthorizationResolver().authorize_subaccount(
        db_session,
        _principal("guest-1", "gus@acme.io"),
        "sub-1",
        identity=identity,
    )

    assert decision.allowed is False
    assert decision.reason == DenyReason.UNAUTHORIZED


def test_owner_skips_permission_check_and_sees_agency_notifications(
    db_session: Session,
    tenancy: None,
    identity: StubIdentityProvider,
) -> None:
    decision = AuthorizationResolver().authorize_subaccount(
        db_session,
        _principal("owner-1", "owner@acme.io"),
        "sub-2",
        identity=identity,
    )

    assert decision.allowed is True
    assert decision.role == Role.AGENCY_OWNER
    assert decision.scope == NotificationScope.AGENCY
    assert [row.id for row in decision.notifications] == ["n-sub-2", "n-sub-1", "n-agency"]


def test_admin_of_another_agency_is_denied(
    db_session: Session,
    tenancy: None,
    identity: StubIdentityProvider,
) -> None:
    decision = AuthorizationResolver().authorize_subaccount(
        db_session,
        _principal("admin-2", "admin2@acme.io"),
        "sub-1",
        identity=identity,
    )

    assert decision.allowed is False
    assert decision.reason == DenyReason.UNAUTHORIZED


def test_datastore_role_wins_over_metadata_role(
    db_session: Session,
    tenancy: None,
    identity: StubIdentityProvider,
) -> None:
    decision = AuthorizationResolver().authorize_subaccount(
        db_session,
        _principal("guest-1", "gus@acme.io", role="AGENCY_OWNER"),
        "sub-1",
        identity=identity,
    )

    assert decision.allowed is False


def test_metadata_role_is_used_when_user_row_is_missing(
    db_session: Session,
    tenancy: None,
    identity: StubIdentityProvider,
) -> None:
    decision = AuthorizationResolver().authorize_subaccount(
        db_session,
        _principal("ghost-1", "ghost@acme.io", role="AGENCY_ADMIN"),
        "sub-1",
        identity=identity,
    )

    assert decision.allowed is True
    assert decision.role == Role.AGENCY_ADMIN
    assert decision.agency_id == "agency-1"


def test_principal_without_any_role_is_denied(
    db_session: Session,
    tenancy: None,
    identity: StubIdentityProvider,
) -> None:
    decision = AuthorizationResolver().authorize_subaccount(
        db_session,
        _principal("ghost-1", "ghost@acme.io"),
        "sub-1",
        identity=identity,
    )

    assert decision.allowed is False
    assert decision.reason == DenyReason.UNAUTHORIZED


def test_unknown_subaccount_is_denied(
    db_session: Session,
    tenancy: None,
    identity: StubIdentityProvider,
) -> None:
    decision = AuthorizationResolver().authorize_subaccount(
        db_session,
        _principal("owner-1", "owner@acme.io"),
        "sub-404",
        identity=identity,
    )

    assert decision.allowed is False


def test_agency_access_requires_privileged_member_of_that_agency(
    db_session: Session,
    tenancy: None,
    identity: StubIdentityProvider,
) -> None:
    resolver = AuthorizationResolver()

    owner = resolver.authorize_agency(db_session, _principal("owner-1", "owner@acme.io"), "agency-1", identity=identity)
    member = resolver.authorize_agency(db_session, _principal("member-1", "mia@acme.io"), "agency-1", identity=identity)
    outsider = resolver.authorize_agency(
        db_session,
        _principal("admin-2", "admin2@acme.io"),
        "agency-1",
        identity=identity,
    )

    assert owner.allowed is True
    assert owner.scope == NotificationScope.AGENCY
    assert len(owner.notifications) == 3
    assert member.allowed is False
    assert outsider.allowed is False


def test_agency_access_accepts_pending_invitation_first(
    db_session: Session,
    tenancy: None,
) -> None:
    principal = _principal("newadmin-1", "newadmin@acme.io")
    identity = StubIdentityProvider([principal])
    db_session.add(Invitation(email="newadmin@acme.io", agency_id="agency-1", role="AGENCY_ADMIN", status="PENDING"))
    db_session.commit()

    decision = AuthorizationResolver().authorize_agency(db_session, principal, "agency-1", identity=identity)

    assert decision.allowed is True
    assert decision.role == Role.AGENCY_ADMIN
    assert any(row.notification == "Test User | Joined" for row in decision.notifications)
    assert db_session.scalar(select(Invitation).where(Invitation.email == "newadmin@acme.io")) is None
    assert identity.principals["newadmin-1"].private_metadata["role"] == "AGENCY_ADMIN"
