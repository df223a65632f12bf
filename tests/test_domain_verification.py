"""Unit tests for the domain verification engine."""
import uuid

import pytest

from app.crud.crud_custom_domain import DomainPersistenceError
from app.services.domain_verification import (
    DomainNotFoundError,
    DomainVerificationEngine,
    decide_status,
    strip_txt_quotes,
)
from tests.conftest import FakeResolver

SERVER_IP = "72.61.227.134"


class _Domain:
    def __init__(self, domain, token="TOK123", status="pending", dns_verified=False, ssl_status="pending"):
        self.id = uuid.uuid4()
        self.domain = domain
        self.verification_token = token
        self.status = status
        self.dns_verified = dns_verified
        self.ssl_status = ssl_status
        self.updated_at = None


class _FakeStore:
    def __init__(self, *domains, fail_update_for=()):
        self.rows = {d.id: d for d in domains}
        self.updates = []
        self.fail_update_for = set(fail_update_for)

    def get_by_id(self, domain_id):
        return self.rows.get(domain_id)

    def list_by_statuses(self, statuses):
        return [d for d in self.rows.values() if d.status in statuses]

    def update(self, domain_id, fields):
        row = self.rows[domain_id]
        if row.domain in self.fail_update_for:
            raise DomainPersistenceError("write failed")
        self.updates.append((row.domain, dict(fields)))
        for k, v in fields.items():
            setattr(row, k, v)
        return row


def _engine(store, resolver, sleeps=None):
    return DomainVerificationEngine(
        store,
        resolver,
        server_ip=SERVER_IP,
        txt_record_name="_linkbio",
        txt_verify_prefix="linkbio_verify",
        recheck_delay=0.1,
        sleep=(sleeps.append if sleeps is not None else lambda _: None),
    )


def _configured(domain="example.com", token="TOK123"):
    resolver = FakeResolver()
    resolver.set_a(domain, SERVER_IP)
    resolver.set_txt(f"_linkbio.{domain}", f'"linkbio_verify={token}"')
    return resolver


# ── Pure helpers ──

@pytest.mark.parametrize("current", ["pending", "verifying", "active", "failed"])
def test_decide_status_follows_dns_only(current):
    assert decide_status(current, True) == "active"
    assert decide_status(current, False) == "failed"


def test_strip_txt_quotes_removes_one_pair():
    assert strip_txt_quotes('"linkbio_verify=abcd1234"') == "linkbio_verify=abcd1234"
    assert strip_txt_quotes('""x""') == '"x"'
    assert strip_txt_quotes("plain") == "plain"


# ── Scenarios ──

def test_scenario_fully_configured_domain_activates():
    record = _Domain("example.com")
    store = _FakeStore(record)
    result = _engine(store, _configured()).verify(record)

    assert result.success is True
    assert result.status == "active"
    assert result.dns_verified is True
    assert result.errors == []
    assert result.message.startswith("Domain verified and activated")
    assert record.status == "active"
    assert record.ssl_status == "active"
    assert record.updated_at is not None


def test_scenario_wrong_ip_fails():
    record = _Domain("example.com")
    resolver = _configured()
    resolver.set_a("example.com", "1.1.1.1")
    result = _engine(_FakeStore(record), resolver).verify(record)

    assert result.success is False
    assert result.status == "failed"
    assert result.errors == ["A record points to 1.1.1.1, expected 72.61.227.134"]
    assert result.next_step == "Please check your DNS settings and try again."
    assert record.ssl_status == "pending"


def test_scenario_active_domain_without_a_record_is_demoted_by_recheck():
    record = _Domain("example.com", status="active", dns_verified=True, ssl_status="active")
    resolver = FakeResolver()
    resolver.set_txt("_linkbio.example.com", "linkbio_verify=TOK123")
    summary = _engine(_FakeStore(record), resolver).recheck_all()

    assert summary.checked == 1
    assert summary.results[0].status == "failed"
    assert summary.results[0].verified is False
    assert record.status == "failed"
    assert record.dns_verified is False


def test_scenario_legacy_domain_without_token():
    record = _Domain("example.com", token=None)
    resolver = FakeResolver()
    resolver.set_a("example.com", SERVER_IP)
    result = _engine(_FakeStore(record), resolver).verify(record)

    assert result.status == "active"
    assert result.txt_record_valid is True
    assert ("_linkbio.example.com", "TXT") not in resolver.queries


# ── Record matching ──

def test_a_record_matches_any_of_several():
    record = _Domain("example.com")
    resolver = _configured()
    resolver.set_a("example.com", "1.2.3.4", SERVER_IP)
    result = _engine(_FakeStore(record), resolver).verify(record)
    assert result.a_record_valid is True


def test_missing_a_record_message():
    record = _Domain("example.com", token=None)
    result = _engine(_FakeStore(record), FakeResolver()).verify(record)
    assert result.errors == ["No A record found for example.com"]


def test_txt_quoted_value_matches():
    record = _Domain("example.com", token="abcd1234")
    resolver = FakeResolver()
    resolver.set_a("example.com", SERVER_IP)
    resolver.set_txt("_linkbio.example.com", '"linkbio_verify=abcd1234"')
    result = _engine(_FakeStore(record), resolver).verify(record)
    assert result.txt_record_valid is True


def test_txt_wrong_token_and_missing_txt():
    record = _Domain("example.com")
    resolver = FakeResolver()
    resolver.set_a("example.com", SERVER_IP)
    resolver.set_txt("_linkbio.example.com", "linkbio_verify=OTHER")
    result = _engine(_FakeStore(record), resolver).verify(record)
    assert result.errors == [
        "TXT record at _linkbio.example.com does not contain correct verification token"
    ]

    resolver.records.pop(("_linkbio.example.com", "TXT"))
    result = _engine(_FakeStore(record), resolver).verify(record)
    assert result.errors == ["No TXT record found at _linkbio.example.com"]


def test_lookup_failures_are_isolated_per_record_type():
    record = _Domain("example.com")
    resolver = _configured()
    resolver.fail("example.com", "A")
    result = _engine(_FakeStore(record), resolver).verify(record)

    assert result.a_record_valid is False
    assert result.txt_record_valid is True
    assert result.errors == ["Failed to verify A record"]
    assert ("_linkbio.example.com", "TXT") in resolver.queries

    resolver = _configured()
    resolver.fail("_linkbio.example.com", "TXT")
    result = _engine(_FakeStore(record), resolver).verify(record)
    assert result.a_record_valid is True
    assert result.errors == ["Failed to verify TXT record"]
    assert result.message == "Verification failed: Failed to verify TXT record"


# ── Persistence ──

def test_verify_is_idempotent_and_skips_noop_writes():
    record = _Domain("example.com")
    store = _FakeStore(record)
    engine = _engine(store, _configured())

    first = engine.verify(record)
    second = engine.verify(record)

    assert first.status == second.status == "active"
    assert len(store.updates) == 1


def test_failed_domain_with_failed_dns_writes_nothing():
    record = _Domain("example.com", status="failed")
    store = _FakeStore(record)
    _engine(store, FakeResolver()).verify(record)
    assert store.updates == []


def test_store_write_failure_propagates():
    record = _Domain("example.com")
    store = _FakeStore(record, fail_update_for={"example.com"})
    with pytest.raises(DomainPersistenceError):
        _engine(store, _configured()).verify(record)


def test_verify_by_id_unknown_domain():
    with pytest.raises(DomainNotFoundError):
        _engine(_FakeStore(), FakeResolver()).verify_by_id(uuid.uuid4())


# ── Batch recheck ──

def test_recheck_skips_failed_domains():
    pending = _Domain("a.com", status="pending")
    failed = _Domain("b.com", status="failed")
    resolver = _configured("a.com")
    resolver.set_a("b.com", SERVER_IP)
    summary = _engine(_FakeStore(pending, failed), resolver).recheck_all()

    assert summary.checked == 1
    assert [r.domain for r in summary.results] == ["a.com"]
    assert failed.status == "failed"
    assert not any(name == "b.com" for name, _ in resolver.queries)


def test_recheck_continues_after_a_domain_errors():
    broken = _Domain("a.com", status="active", dns_verified=True, ssl_status="active")
    healthy = _Domain("b.com", status="pending")
    resolver = _configured("b.com")
    store = _FakeStore(broken, healthy, fail_update_for={"a.com"})

    summary = _engine(store, resolver).recheck_all()

    assert summary.checked == 2
    assert [e.domain for e in summary.errors] == ["a.com"]
    assert [(r.domain, r.status) for r in summary.results] == [("b.com", "active")]
    assert healthy.status == "active"


def test_recheck_paces_between_domains():
    domains = [_Domain(f"d{i}.com", token=None) for i in range(3)]
    sleeps = []
    _engine(_FakeStore(*domains), FakeResolver(), sleeps=sleeps).recheck_all()
    assert sleeps == [0.1, 0.1]


def test_recheck_with_nothing_to_do():
    summary = _engine(_FakeStore(), FakeResolver()).recheck_all()
    assert summary.checked == 0
    assert summary.results == []


def test_recheck_skips_domain_removed_mid_pass():
    first = _Domain("a.com", token=None)
    removed = _Domain("b.com", token=None)
    last = _Domain("c.com", token=None)
    store = _FakeStore(first, removed, last)

    def _owner_deletes(_delay):
        store.rows.pop(removed.id, None)

    engine = DomainVerificationEngine(
        store, FakeResolver(),
        server_ip=SERVER_IP, txt_record_name="_linkbio", txt_verify_prefix="linkbio_verify",
        recheck_delay=0.1, sleep=_owner_deletes,
    )
    summary = engine.recheck_all()

    assert summary.checked == 3
    assert [e.domain for e in summary.errors] == ["b.com"]
    assert [r.domain for r in summary.results] == ["a.com", "c.com"]


class _DeletingResolver(FakeResolver):
    """Deletes ``victim`` from another session on the first lookup."""

    def __init__(self, victim_id):
        super().__init__()
        self.victim_id = victim_id
        self.deleted = False

    def query(self, name, record_type):
        if not self.deleted:
            from app.db.session import db_registry
            from app.models.custom_domain import CustomDomain

            other = db_registry.session()
            try:
                other.query(CustomDomain).filter(CustomDomain.id == self.victim_id).delete()
                other.commit()
            finally:
                other.close()
            self.deleted = True
        return super().query(name, record_type)


def test_recheck_survives_row_deleted_from_another_session(db_session):
    from app.crud import crud_custom_domain
    from app.crud.crud_custom_domain import SqlDomainStore
    from tests.conftest import create_profile

    profile = create_profile(db_session)
    a, b, c = (
        crud_custom_domain.register(db_session, profile_id=profile.id, domain=d, include_www=False)[0]
        for d in ("a.com", "b.com", "c.com")
    )
    resolver = _DeletingResolver(b.id)

    summary = _engine(SqlDomainStore(db_session), resolver).recheck_all()

    assert summary.checked == 3
    assert [e.domain for e in summary.errors] == ["b.com"]
    assert sorted(r.domain for r in summary.results) == ["a.com", "c.com"]
    assert ("c.com", "A") in resolver.queries
    db_session.expire_all()
    assert crud_custom_domain.get(db_session, c.id).status == "failed"
