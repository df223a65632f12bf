"""Scheduled recheck task tests."""
from app.crud import crud_custom_domain
from app.tasks.domain_tasks import recheck_domains_task, run_recheck
from tests.conftest import SERVER_IP, FakeResolver, create_profile


def _patch_resolver(monkeypatch, resolver):
    monkeypatch.setattr("app.services.domain_verification.DohResolver", lambda: resolver)


def test_run_recheck_updates_statuses(db_session, monkeypatch):
    profile = create_profile(db_session)
    good, drifted = (
        crud_custom_domain.register(db_session, profile_id=profile.id, domain=d, include_www=False)[0]
        for d in ("good.com", "drifted.com")
    )
    crud_custom_domain.update(db_session, db_obj=drifted, fields={"status": "active", "dns_verified": True})
    resolver = FakeResolver()
    resolver.set_a("good.com", SERVER_IP)
    resolver.set_txt("_linkbio.good.com", f"linkbio_verify={good.verification_token}")
    resolver.set_a("drifted.com", "203.0.113.9")
    _patch_resolver(monkeypatch, resolver)

    summary = run_recheck()

    assert summary["checked"] == 2
    assert {r["domain"]: r["status"] for r in summary["results"]} == {
        "good.com": "active",
        "drifted.com": "failed",
    }
    db_session.expire_all()
    assert crud_custom_domain.get(db_session, drifted.id).status == "failed"
    assert crud_custom_domain.get(db_session, good.id).ssl_status == "active"


def test_task_returns_summary(db_session, monkeypatch):
    _patch_resolver(monkeypatch, FakeResolver())
    result = recheck_domains_task.apply().get()
    assert result == {"checked": 0, "results": [], "errors": []}
