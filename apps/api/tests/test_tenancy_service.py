from __future__ import annotations

from collections.abc import Generator
from typing import Any

import pytest
from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.authz.roles import Role
from app.core.database import Base
from app.identity import Principal, StubIdentityProvider
from app.pipelines.models import Pipeline
from app.tenancy.models import Agency, Permission, SidebarOption, SubAccount, User
from app.tenancy.schemas import AgencyUpdate, UserInit, UserUpdate
from app.tenancy.service import (
    AgencyService,
    PermissionService,
    SidebarService,
    SubAccountService,
    UserService,
)


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


def _agency_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": "agency-1",
        "name": "Acme Agency",
        "agency_logo": "https://cdn.acme.io/logo.png",
        "company_email": "owner@acme.io",
        "company_phone": "+1 555 0100",
        "white_label": True,
        "address": "1 Main St",
        "city": "Springfield",
        "zip_code": "12345",
        "state": "IL",
        "country": "US",
    }
    payload.update(overrides)
    return payload


def _subaccount_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": "sub-1",
        "agency_id": "agency-1",
        "name": "Acme Local",
        "sub_account_logo": "https://cdn.acme.io/sub.png",
        "company_email": "local@acme.io",
        "company_phone": "+1 555 0101",
        "address": "2 Main St",
        "city": "Springfield",
        "zip_code": "12345",
        "state": "IL",
        "country": "US",
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def owner(db_session: Session) -> User:
    user = User(id="owner-1", name="Olive Owner", email="owner@acme.io", role="AGENCY_OWNER")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture()
def owner_principal() -> Principal:
    return Principal(id="owner-1", email="owner@acme.io", first_name="Olive", last_name="Owner")


@pytest.fixture()
def agency(db_session: Session, owner: User) -> Agency:
    return AgencyService().upsert_agency(db_session, _agency_payload())


def test_upsert_agency_creates_sidebar_and_links_owner(db_session: Session, owner: User) -> None:
    agency = AgencyService().upsert_agency(db_session, _agency_payload(goal=12))

    assert agency.goal == 12
    assert agency.connect_account_id == ""
    db_session.refresh(owner)
    assert owner.agency_id == "agency-1"

    options = db_session.scalars(
        select(SidebarOption).where(SidebarOption.agency_id == "agency-1").order_by(SidebarOption.position)
    ).all()
    assert [(option.name, option.icon, option.link) for option in options] == [
        ("Dashboard", "category", "/agency/agency-1"),
        ("Launchpad", "clipboardIcon", "/agency/agency-1/launchpad"),
        ("Billing", "payment", "/agency/agency-1/billing"),
        ("Settings", "settings", "/agency/agency-1/settings"),
        ("Sub Accounts", "person", "/agency/agency-1/all-subaccounts"),
        ("Team", "shield", "/agency/agency-1/team"),
    ]


def test_upsert_agency_defaults_goal(db_session: Session, owner: User) -> None:
    assert AgencyService().upsert_agency(db_session, _agency_payload()).goal == 5


def test_upsert_agency_without_matching_user_writes_nothing(db_session: Session) -> None:
    with pytest.raises(HTTPException) as exc_info:
        AgencyService().upsert_agency(db_session, _agency_payload(company_email="nobody@acme.io"))

    assert exc_info.value.status_code == 404
    assert db_session.scalar(select(func.count()).select_from(Agency)) == 0
    assert db_session.scalar(select(func.count()).select_from(SidebarOption)) == 0


def test_upsert_agency_rejects_blank_fields_before_writing(db_session: Session, owner: User) -> None:
    with pytest.raises(ValidationError) as exc_info:
        AgencyService().upsert_agency(db_session, _agency_payload(name="   ", city=""))

    failed = {error["loc"][0] for error in exc_info.value.errors()}
    assert failed == {"name", "city"}
    assert db_session.scalar(select(func.count()).select_from(Agency)) == 0


def test_upsert_agency_rejects_stringly_typed_flags(db_session: Session, owner: User) -> None:
    with pytest.raises(ValidationError) as exc_info:
        AgencyService().upsert_agency(db_session, _agency_payload(white_label="yes", goal="7"))

    assert {error["loc"][0] for error in exc_info.value.errors()} == {"white_label", "goal"}
    assert db_session.scalar(select(func.count()).select_from(Agency)) == 0
    assert db_session.scalar(select(func.count()).select_from(SidebarOption)) == 0


def test_update_agency_rejects_string_goal(db_session: Session, agency: Agency) -> None:
    with pytest.raises(ValidationError):
        AgencyUpdate(goal="20")

    db_session.refresh(agency)
    assert agency.goal == 5


def test_upsert_agency_update_path_keeps_sidebar(db_session: Session, agency: Agency) -> None:
    updated = AgencyService().upsert_agency(db_session, _agency_payload(name="Acme Renamed", white_label=False))

    assert updated.name == "Acme Renamed"
    assert updated.white_label is False
    assert db_session.scalar(select(func.count()).select_from(SidebarOption)) == 6


def test_update_agency_details_is_partial(db_session: Session, agency: Agency) -> None:
    updated = AgencyService().update_agency_details(db_session, "agency-1", AgencyUpdate(goal=20))

    assert updated.goal == 20
    assert updated.name == "Acme Agency"

    with pytest.raises(HTTPException) as exc_info:
        AgencyService().update_agency_details(db_session, "agency-404", AgencyUpdate(goal=1))
    assert exc_info.value.status_code == 404


def test_delete_agency_cascades_and_detaches_users(db_session: Session, agency: Agency, owner: User) -> None:
    SubAccountService().upsert_subaccount(db_session, _subaccount_payload())

    deleted = AgencyService().delete_agency(db_session, "agency-1")

    assert deleted is not None
    assert deleted.id == "agency-1"
    assert db_session.scalar(select(func.count()).select_from(SubAccount)) == 0
    assert db_session.scalar(select(func.count()).select_from(Pipeline)) == 0
    assert db_session.scalar(select(func.count()).select_from(SidebarOption)) == 0
    db_session.refresh(owner)
    assert owner.agency_id is None
    assert AgencyService().delete_agency(db_session, "agency-1") is None


def test_upsert_subaccount_without_owner_writes_nothing(db_session: Session, agency: Agency, owner: User) -> None:
    owner.role = Role.AGENCY_ADMIN.value
    db_session.commit()

    assert SubAccountService().upsert_subaccount(db_session, _subaccount_payload()) is None
    assert db_session.scalar(select(func.count()).select_from(SubAccount)) == 0
    assert db_session.scalar(select(func.count()).select_from(Pipeline)) == 0
    assert db_session.scalar(select(func.count()).select_from(Permission)) == 0


def test_upsert_subaccount_creates_pipeline_permission_and_sidebar(
    db_session: Session,
    agency: Agency,
    owner: User,
) -> None:
    sub_account = SubAccountService().upsert_subaccount(db_session, _subaccount_payload())

    assert sub_account is not None
    pipelines = db_session.scalars(select(Pipeline).where(Pipeline.sub_account_id == "sub-1")).all()
    assert [pipeline.name for pipeline in pipelines] == ["Lead Cycle"]

    permission = db_session.scalar(select(Permission).where(Permission.sub_account_id == "sub-1"))
    assert permission is not None
    assert permission.email == "owner@acme.io"
    assert permission.access is True

    options = db_session.scalars(
        select(SidebarOption).where(SidebarOption.sub_account_id == "sub-1").order_by(SidebarOption.position)
    ).all()
    assert [option.name for option in options] == [
        "Launchpad",
        "Settings",
        "Funnels",
        "Media",
        "Automations",
        "Pipelines",
        "Contacts",
        "Dashboard",
    ]
    assert options[0].link == "/subaccount/sub-1/launchpad"
    assert options[-1].link == "/subaccount/sub-1"


def test_upsert_subaccount_update_path_leaves_children_alone(
    db_session: Session,
    agency: Agency,
    owner: User,
) -> None:
    service = SubAccountService()
    service.upsert_subaccount(db_session, _subaccount_payload())

    updated = service.upsert_subaccount(db_session, _subaccount_payload(name="Acme Downtown", goal=9))

    assert updated is not None
    assert updated.name == "Acme Downtown"
    assert updated.goal == 9
    assert db_session.scalar(select(func.count()).select_from(Pipeline)) == 1
    assert db_session.scalar(select(func.count()).select_from(Permission)) == 1
    assert db_session.scalar(select(func.count()).select_from(SidebarOption).where(SidebarOption.sub_account_id == "sub-1")) == 8


def test_upsert_subaccount_requires_fields(db_session: Session, agency: Agency) -> None:
    with pytest.raises(ValidationError) as exc_info:
        SubAccountService().upsert_subaccount(db_session, _subaccount_payload(sub_account_logo=" "))

    assert {error["loc"][0] for error in exc_info.value.errors()} == {"sub_account_logo"}


def test_upsert_subaccount_rejects_string_goal(db_session: Session, agency: Agency) -> None:
    with pytest.raises(ValidationError) as exc_info:
        SubAccountService().upsert_subaccount(db_session, _subaccount_payload(goal="7"))

    assert {error["loc"][0] for error in exc_info.value.errors()} == {"goal"}
    assert db_session.scalar(select(func.count()).select_from(SubAccount)) == 0


def test_get_auth_user_details_loads_agency_tree(
    db_session: Session,
    agency: Agency,
    owner: User,
    owner_principal: Principal,
) -> None:
    SubAccountService().upsert_subaccount(db_session, _subaccount_payload())
    db_session.expire_all()

    user = UserService().get_auth_user_details(db_session, owner_principal)

    assert user is not None
    assert user.agency is not None
    assert len(user.agency.sidebar_options) == 6
    assert [sub.id for sub in user.agency.sub_accounts] == ["sub-1"]
    assert len(user.agency.sub_accounts[0].sidebar_options) == 8
    assert [permission.sub_account_id for permission in user.permissions] == ["sub-1"]
    assert UserService().get_auth_user_details(db_session, None) is None


def test_init_user_creates_with_default_role_and_syncs_metadata(db_session: Session) -> None:
    principal = Principal(id="user_new", email="new@acme.io", first_name="Nia", last_name="New", image_url="https://img/n.png")
    identity = StubIdentityProvider([principal])

    user = UserService().init_user(db_session, principal, UserInit(), identity=identity)

    assert user.id == "user_new"
    assert user.name == "Nia New"
    assert user.avatar_url == "https://img/n.png"
    assert user.role == "SUBACCOUNT_USER"
    assert identity.principals["user_new"].private_metadata["role"] == "SUBACCOUNT_USER"


def test_init_user_updates_existing_row(db_session: Session, owner: User, owner_principal: Principal) -> None:
    identity = StubIdentityProvider([owner_principal])

    user = UserService().init_user(db_session, owner_principal, UserInit(role=Role.AGENCY_ADMIN), identity=identity)

    assert user.id == "owner-1"
    assert user.role == "AGENCY_ADMIN"
    assert db_session.scalar(select(func.count()).select_from(User)) == 1
    assert identity.principals["owner-1"].private_metadata["role"] == "AGENCY_ADMIN"


def test_update_user_unknown_email_is_not_found(db_session: Session) -> None:
    with pytest.raises(HTTPException) as exc_info:
        UserService().update_user(db_session, UserUpdate(email="ghost@acme.io", name="Ghost"), identity=StubIdentityProvider())

    assert exc_info.value.status_code == 404


def test_update_user_survives_metadata_failure(db_session: Session, owner: User) -> None:
    user = UserService().update_user(
        db_session,
        UserUpdate(email="owner@acme.io", name="Olive O."),
        identity=StubIdentityProvider(),
    )

    assert user.name == "Olive O."


def test_delete_user_clears_metadata_and_permissions(
    db_session: Session,
    agency: Agency,
    owner: User,
    owner_principal: Principal,
) -> None:
    SubAccountService().upsert_subaccount(db_session, _subaccount_payload())
    identity = StubIdentityProvider([owner_principal])
    owner_principal.private_metadata["role"] = "AGENCY_OWNER"

    deleted = UserService().delete_user(db_session, "owner-1", identity=identity)

    assert deleted is not None
    assert deleted.email == "owner@acme.io"
    assert "role" not in identity.principals["owner-1"].private_metadata
    assert db_session.scalar(select(func.count()).select_from(User)) == 0
    assert db_session.scalar(select(func.count()).select_from(Permission)) == 0
    assert UserService().delete_user(db_session, "owner-1", identity=identity) is None


def test_get_user_permissions_includes_sub_accounts(db_session: Session, agency: Agency, owner: User) -> None:
    SubAccountService().upsert_subaccount(db_session, _subaccount_payload())

    permissions = UserService().get_user_permissions(db_session, "owner-1")

    assert [(row.sub_account.name, row.access) for row in permissions] == [("Acme Local", True)]
    with pytest.raises(HTTPException):
        UserService().get_user_permissions(db_session, "user-404")


def test_change_user_permissions_updates_then_logs_conflicts(
    db_session: Session,
    agency: Agency,
    owner: User,
) -> None:
    SubAccountService().upsert_subaccount(db_session, _subaccount_payload())
    member = User(id="member-1", name="Mia Member", email="mia@acme.io", role="SUBACCOUNT_USER", agency_id="agency-1")
    db_session.add(member)
    db_session.commit()
    service = PermissionService()

    created = service.change_user_permissions(db_session, None, "mia@acme.io", "sub-1", True)
    assert created is not None
    assert created.access is True

    revoked = service.change_user_permissions(db_session, created.id, "mia@acme.io", "sub-1", False)
    assert revoked is not None
    assert revoked.id == created.id
    assert revoked.access is False

    duplicate = service.change_user_permissions(db_session, "perm-new", "mia@acme.io", "sub-1", True)
    assert duplicate is None
    assert db_session.scalar(select(func.count()).select_from(Permission).where(Permission.email == "mia@acme.io")) == 1


def test_sidebar_for_agency_and_subaccount(
    db_session: Session,
    agency: Agency,
    owner: User,
    owner_principal: Principal,
) -> None:
    SubAccountService().upsert_subaccount(db_session, _subaccount_payload())
    service = SidebarService()

    agency_sidebar = service.get_sidebar(db_session, owner_principal, "agency", "agency-1")
    assert agency_sidebar is not None
    assert agency_sidebar.logo == "https://cdn.acme.io/logo.png"
    assert [option.name for option in agency_sidebar.options][:2] == ["Dashboard", "Launchpad"]
    assert [sub.id for sub in agency_sidebar.sub_accounts] == ["sub-1"]

    sub_sidebar = service.get_sidebar(db_session, owner_principal, "subaccount", "sub-1")
    assert sub_sidebar is not None
    assert sub_sidebar.white_label is True
    assert sub_sidebar.logo == "https://cdn.acme.io/logo.png"
    assert len(sub_sidebar.options) == 8

    assert service.get_sidebar(db_session, owner_principal, "subaccount", "sub-404") is None
    assert service.get_sidebar(db_session, owner_principal, "agency", "agency-404") is None


def test_sidebar_uses_subaccount_logo_without_white_label(
    db_session: Session,
    owner: User,
    owner_principal: Principal,
) -> None:
    AgencyService().upsert_agency(db_session, _agency_payload(white_label=False))
    SubAccountService().upsert_subaccount(db_session, _subaccount_payload())

    sidebar = SidebarService().get_sidebar(db_session, owner_principal, "subaccount", "sub-1")

    assert sidebar is not None
    assert sidebar.logo == "https://cdn.acme.io/sub.png"


def test_sidebar_requires_agency_membership(db_session: Session) -> None:
    loner = User(id="loner-1", name="Lone", email="lone@acme.io", role="SUBACCOUNT_USER")
    db_session.add(loner)
    db_session.commit()

    principal = Principal(id="loner-1", email="lone@acme.io")
    assert SidebarService().get_sidebar(db_session, principal, "agency", "agency-1") is None
