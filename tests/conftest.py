"""Shared fixtures: a prepared in-memory store seeded with a small firm."""

from datetime import datetime

import pytest

from contracts import Actor, Dossier, EffectiveActor, RequestContext, UserAccount
from orchestrator import DossierService
from providers import ConsoleGateway
from store import Collections, MemoryStore, prepare_store, to_document


NOW = datetime(2025, 1, 15, 10, 30)


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def store():
    return prepare_store(MemoryStore())


@pytest.fixture
def users(store):
    """Superadmin, admin (with phone), lawyer and client (with phone)."""
    accounts = {
        "superadmin": UserAccount(
            id="u-super", first_name="Alice", last_name="Martin",
            email="alice@cabinet.fr", role="superadmin",
        ),
        "admin": UserAccount(
            id="u-admin", first_name="Bruno", last_name="Petit",
            email="bruno@cabinet.fr", phone="06 11 11 11 11", role="admin",
        ),
        "avocat": UserAccount(
            id="u-avocat", first_name="Claire", last_name="Roux",
            email="claire@cabinet.fr", role="avocat",
        ),
        "client": UserAccount(
            id="u-client", first_name="Chloé", last_name="Durand",
            email="chloe@example.com", phone="06 12 34 56 78", role="client",
        ),
    }
    for account in accounts.values():
        store.insert(Collections.USERS, to_document(account))
    return accounts


@pytest.fixture
def dossier(store, users):
    """A fresh dossier owned by the client, inserted without side effects."""
    record = Dossier(
        id="d-1",
        number="DOS-20250110-0001",
        title="Titre de séjour",
        user_id=users["client"].id,
        created_by=users["superadmin"].id,
    )
    store.insert(Collections.DOSSIERS, to_document(record))
    return record


@pytest.fixture
def gateway():
    return ConsoleGateway()


@pytest.fixture
def service(store, users, gateway, clock):
    return DossierService(store=store, gateway=gateway, clock=clock)


@pytest.fixture
def as_user():
    """Build a plain request for an account."""
    def _request(user: UserAccount, **kwargs) -> RequestContext:
        return RequestContext(actor=Actor(id=user.id, role=user.role, email=user.email), **kwargs)
    return _request


@pytest.fixture
def effective_for():
    """Build a non-impersonating effective actor for an account."""
    def _effective(user: UserAccount) -> EffectiveActor:
        return EffectiveActor(
            actor=Actor(id=user.id, role=user.role, email=user.email),
            actor_account=user,
            effective_user_id=user.id,
            effective_user=user,
        )
    return _effective
