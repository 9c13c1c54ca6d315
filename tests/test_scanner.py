"""Tests for the dependency scanner."""

import pytest

from unitindex.core.conventions import Conventions
from unitindex.core.scanner import (
    merge_dependencies,
    scan,
    scan_common_dependencies,
    scan_job_dependencies,
    scan_mailer_dependencies,
    scan_model_dependencies,
    scan_service_dependencies,
)
from unitindex.core.units import Dependency, register_provenance


class TestModelCategory:
    def test_duplicates_collapse(self, registry):
        deps = scan_model_dependencies("User.find(1); User.all", registry=registry)
        assert deps == [Dependency("model", "User", "code_reference")]

    def test_unregistered_name_yields_nothing(self, registry):
        assert scan_model_dependencies("Room.find(1)", registry=registry) == []

    def test_registered_name_yields_one(self, registry):
        deps = scan_model_dependencies("Room.find(1); User.find(1)", registry=registry)
        assert [d.target for d in deps] == ["User"]

    def test_uses_default_registry_when_none_given(self):
        from unitindex.core.names import default_registry

        default_registry().seed(["Invoice"])
        assert [d.target for d in scan("Invoice.last", "model")] == ["Invoice"]


class TestConventionCategories:
    def test_service_reference(self):
        deps = scan_service_dependencies("BillingService.call(x)\nBillingService::Result.new")
        assert deps == [Dependency("service", "BillingService", "code_reference")]

    def test_service_needs_invocation(self):
        assert scan_service_dependencies("service = BillingService") == []

    def test_job_references(self):
        text = (
            "SyncJob.perform_later(1)\n"
            "MailWorker.perform_async(2)\n"
            "ReportJob.set(wait: 5.minutes).perform_later(3)\n"
        )
        assert [d.target for d in scan_job_dependencies(text)] == ["SyncJob", "MailWorker", "ReportJob"]

    def test_job_needs_perform(self):
        assert scan_job_dependencies("job = SyncJob.new") == []

    def test_mailer_reference(self):
        deps = scan_mailer_dependencies("UserMailer.welcome(user).deliver_later")
        assert deps == [Dependency("mailer", "UserMailer", "code_reference")]

    def test_custom_conventions(self):
        conventions = Conventions(job_suffixes=("Task",))
        deps = scan_job_dependencies("CleanupTask.perform_later; SyncJob.perform_later", conventions=conventions)
        assert [d.target for d in deps] == ["CleanupTask"]


class TestEdgeCases:
    @pytest.mark.parametrize("category", ["model", "service", "job", "mailer"])
    def test_empty_text(self, category, registry):
        assert scan("", category, registry=registry) == []
        assert scan(None, category, registry=registry) == []

    def test_no_recognized_patterns(self, registry):
        assert scan_common_dependencies("puts 'hello world'\nx = 1 + 2\n", registry=registry) == []

    def test_unknown_category(self):
        with pytest.raises(ValueError, match="Unknown dependency category"):
            scan("User.find(1)", "controller")

    def test_unknown_via(self, registry):
        with pytest.raises(ValueError, match="Unknown provenance tag"):
            scan("User.find(1)", "model", via="guesswork", registry=registry)

    def test_registered_via(self, registry):
        register_provenance("fixture_lookup")
        deps = scan("User.find(1)", "model", via="fixture_lookup", registry=registry)
        assert deps[0].via == "fixture_lookup"

    def test_empty_via_cannot_be_registered(self):
        with pytest.raises(ValueError):
            register_provenance("")


class TestCommon:
    def test_all_categories_with_provenance(self, registry):
        text = (
            "user = User.find(id)\n"
            "PaymentService.call(user)\n"
            "ReceiptJob.perform_later(user.id)\n"
            "UserMailer.receipt(user).deliver_later\n"
            "User.where(active: true)\n"
        )
        deps = scan_common_dependencies(text, via="method_call", registry=registry)
        assert [(d.kind, d.target) for d in deps] == [
            ("model", "User"),
            ("service", "PaymentService"),
            ("job", "ReceiptJob"),
            ("mailer", "UserMailer"),
        ]
        assert all(d.via == "method_call" for d in deps)

    def test_merge_keeps_first_edge(self):
        first = [Dependency("model", "User", "association")]
        second = [Dependency("model", "User", "code_reference"), Dependency("model", "Post", "code_reference")]
        merged = merge_dependencies(first, second, [])
        assert merged == [Dependency("model", "User", "association"), Dependency("model", "Post", "code_reference")]
