"""Unit tests for extractor modules.

Tests verify ACTUAL behavior of extractors against real-looking application
files written into a temporary app root.

Test Coverage:
1. ExtractorRegistry - discovery and ordering
2. ModelExtractor - file fallback and runtime-manifest modes
3. JobExtractor - job metadata and enqueue edges
4. MailerExtractor - actions, templates, per-action chunks
"""

import pytest

from unitindex.core.locator import TIER_DECLARED, TIER_INSTANCE_METHOD
from unitindex.core.manifest import RuntimeManifest
from unitindex.core.names import NameRegistry
from unitindex.core.units import Dependency, UnitType
from unitindex.extractors import BaseExtractor, ExtractionContext, ExtractorRegistry
from unitindex.extractors.jobs import JobExtractor, extract_perform_params
from unitindex.extractors.mailers import MailerExtractor, public_actions
from unitindex.extractors.models import ModelExtractor, declared_associations, declared_callbacks


@pytest.fixture
def context(sample_app):
    return ExtractionContext(
        app_root=sample_app,
        registry=NameRegistry.from_names(["User", "Post", "Account"]),
    )


def by_id(units):
    return {u.identifier: u for u in units}


# ============================================================================
# Registry
# ============================================================================

class TestExtractorRegistry:
    def test_discovers_builtin_extractors(self, context):
        registry = ExtractorRegistry(context)
        assert registry.unit_types() == ["model", "job", "mailer"]
        assert isinstance(registry.get_extractor("job"), JobExtractor)
        assert registry.get_extractor("controller") is None

    def test_register_custom_extractor(self, context):
        class ServiceExtractor(BaseExtractor):
            unit_type = UnitType.SERVICE
            source_dirs = ("app/services",)
            priority = 5

            def extract_candidate(self, candidate):
                return None

        registry = ExtractorRegistry(context)
        registry.register(ServiceExtractor)
        assert registry.unit_types()[0] == "service"


# ============================================================================
# ModelExtractor
# ============================================================================

class TestModelExtractorFromFiles:
    """No runtime manifest: models come from app/models."""

    def test_models_found_and_concerns_skipped(self, context):
        units = by_id(ModelExtractor(context).extract_all())
        assert set(units) == {"Account", "Post", "User"}

    def test_user_unit(self, context, sample_app):
        user = by_id(ModelExtractor(context).extract_all())["User"]

        assert user.file_path == str(sample_app / "app/models/user.rb")
        assert user.metadata["source_tier"] == TIER_DECLARED
        assert user.metadata["concerns"] == ["Trackable"]
        assert "# --- inlined from Trackable ---" in user.source_code
        assert user.source_code.startswith("# ╔")
        assert "# ║ Model: User" in user.source_code

    def test_callbacks_from_source(self, context):
        user = by_id(ModelExtractor(context).extract_all())["User"]
        callbacks = {cb["filter"]: cb for cb in user.metadata["callbacks"]}

        assert set(callbacks) == {"normalize_email", "sync_profile"}
        assert callbacks["sync_profile"]["conditions"] == {"if": "saved_change_to_email?"}
        effects = callbacks["sync_profile"]["side_effects"]
        assert effects["jobs_enqueued"] == ["ProfileSyncJob"]
        assert effects["services_called"] == ["AuditService"]
        assert callbacks["normalize_email"]["side_effects"]["columns_written"] == [], "no known fields without a manifest"

    def test_dependencies(self, context):
        user = by_id(ModelExtractor(context).extract_all())["User"]
        deps = {(d.kind, d.target): d.via for d in user.dependencies}

        assert deps[("model", "Post")] == "association"
        assert deps[("model", "Account")] == "association"
        assert deps[("service", "AuditService")] == "code_reference"
        assert deps[("job", "ProfileSyncJob")] == "code_reference"
        assert ("model", "User") not in deps, "a model never depends on itself"
        assert all(d.via for d in user.dependencies)

    def test_non_class_file_is_skipped(self, context, make_app):
        make_app({"app/models/constants.rb": "STATUSES = %w[a b].freeze\n"})
        assert "Constants" not in by_id(ModelExtractor(context).extract_all())


class TestModelExtractorFromManifest:
    @pytest.fixture
    def manifest_context(self, sample_app, runtime_manifest):
        manifest = RuntimeManifest.load(runtime_manifest)
        return ExtractionContext(
            app_root=sample_app,
            manifest=manifest,
            registry=NameRegistry(manifest.model_names),
        )

    def test_missing_source_skips_only_that_model(self, manifest_context, log_messages):
        units = by_id(ModelExtractor(manifest_context).extract_all())
        assert set(units) == {"User", "Post"}
        assert any("Ghost" in m for m in log_messages)

    def test_location_and_fields(self, manifest_context, sample_app):
        user = by_id(ModelExtractor(manifest_context).extract_all())["User"]
        assert user.metadata["source_tier"] == TIER_INSTANCE_METHOD
        assert user.file_path == str(sample_app / "app/models/user.rb")
        assert user.metadata["column_names"] == ["email", "last_seen_at"]
        assert user.metadata["table_name"] == "users"

    def test_manifest_callbacks_are_analyzed(self, manifest_context):
        user = by_id(ModelExtractor(manifest_context).extract_all())["User"]
        named, anonymous = user.metadata["callbacks"]
        assert named["side_effects"]["columns_written"] == ["email"]
        assert all(values == [] for values in anonymous["side_effects"].values())


class TestModelHelpers:
    def test_declared_callbacks(self):
        source = "  before_validation :strip_name, unless: :imported?\n  after_commit :publish\n"
        assert declared_callbacks(source) == [
            {"type": "before_validation", "filter": "strip_name", "kind": "before", "conditions": {"unless": "imported?"}},
            {"type": "after_commit", "filter": "publish", "kind": "after", "conditions": {}},
        ]

    def test_declared_associations(self):
        source = (
            "  has_many :categories\n"
            "  belongs_to :owner, class_name: \"Admin::User\"\n"
            "  has_one :profile\n"
        )
        assert [a["class_name"] for a in declared_associations(source)] == ["Category", "Admin::User", "Profile"]


class TestChunking:
    def test_large_model_gets_callbacks_chunk(self, make_app, sample_app):
        methods = "".join(f"  def helper_{i}\n    compute_something_long_{i}(arg)\n  end\n\n" for i in range(200))
        make_app({
            "app/models/ledger.rb": (
                "class Ledger < ApplicationRecord\n"
                "  after_save :recalculate\n\n"
                "  def recalculate\n    RecalcJob.perform_later(id)\n  end\n\n"
                f"{methods}end\n"
            ),
        })
        context = ExtractionContext(app_root=sample_app, registry=NameRegistry.from_names(["Ledger"]))
        ledger = by_id(ModelExtractor(context).extract_all())["Ledger"]

        assert ledger.needs_chunking()
        chunk_ids = [c.identifier for c in ledger.chunks]
        assert chunk_ids[0] == "Ledger#chunk_0"
        assert chunk_ids[-1] == "Ledger#callbacks"
        callbacks_chunk = ledger.chunks[-1]
        assert callbacks_chunk.metadata["parent"] == "Ledger"
        assert "recalculate [enqueues: RecalcJob]" in callbacks_chunk.content


# ============================================================================
# JobExtractor
# ============================================================================

class TestJobExtractor:
    def test_job_metadata(self, context, sample_app):
        job = by_id(JobExtractor(context).extract_all())["ProfileSyncJob"]

        assert job.file_path == str(sample_app / "app/jobs/profile_sync_job.rb")
        assert job.metadata["job_type"] == "active_job"
        assert job.metadata["queue"] == "low"
        assert job.metadata["retry_on"] == ["Net::ReadTimeout"]
        assert job.metadata["enqueues_jobs"] == ["NotifyJob"]
        assert [p["name"] for p in job.metadata["perform_params"]] == ["user_id", "force"]
        assert job.source_code.startswith("# ╔")

    def test_job_dependencies(self, context):
        job = by_id(JobExtractor(context).extract_all())["ProfileSyncJob"]
        assert Dependency("model", "User", "code_reference") in job.dependencies
        assert Dependency("mailer", "UserMailer", "code_reference") in job.dependencies
        assert Dependency("job", "NotifyJob", "job_enqueue") in job.dependencies

    def test_namespaced_sidekiq_worker(self, context, make_app):
        make_app({
            "app/workers/admin/cleanup_worker.rb": (
                "module Admin\n"
                "  class CleanupWorker\n"
                "    include Sidekiq::Worker\n"
                "    sidekiq_options queue: :maintenance, retry: 3\n\n"
                "    def perform(*ids)\n"
                "      HTTParty.post(ENDPOINT, body: ids)\n"
                "    end\n"
                "  end\n"
                "end\n"
            ),
        })
        worker = by_id(JobExtractor(context).extract_all())["Admin::CleanupWorker"]
        assert worker.namespace == "Admin"
        assert worker.metadata["job_type"] == "sidekiq"
        assert worker.metadata["queue"] == "maintenance"
        assert worker.metadata["sidekiq_options"]["retry"] == "3"
        assert worker.metadata["perform_params"] == [{"name": "ids", "splat": "single", "has_default": False}]
        assert Dependency("external", "http_api", "code_reference") in worker.dependencies

    def test_unreadable_and_non_job_files_are_skipped(self, context, make_app, app_root):
        make_app({"app/jobs/concerns/retryable.rb": "module Retryable\nend\n"})
        (app_root / "app/jobs/broken_job.rb").mkdir()
        units = by_id(JobExtractor(context).extract_all())
        assert set(units) == {"ProfileSyncJob"}

    def test_vendored_files_are_ignored(self, context, make_app):
        make_app({"app/jobs/node_modules/pkg/fake_job.rb": "class FakeJob < ApplicationJob\nend\n"})
        assert "FakeJob" not in by_id(JobExtractor(context).extract_all())

    def test_perform_params(self):
        params = extract_perform_params("def perform(id, retries = 3, **opts)")
        assert params == [
            {"name": "id", "splat": None, "has_default": False},
            {"name": "retries", "splat": None, "has_default": True},
            {"name": "opts", "splat": "double", "has_default": False},
        ]


# ============================================================================
# MailerExtractor
# ============================================================================

class TestMailerExtractor:
    def test_mailer_metadata(self, context):
        mailer = by_id(MailerExtractor(context).extract_all())["UserMailer"]

        assert mailer.metadata["actions"] == ["profile_updated"]
        assert mailer.metadata["action_count"] == 1
        assert mailer.metadata["defaults"] == {"from": "noreply@example.com"}
        assert mailer.metadata["layout"] == "mailer"
        assert mailer.metadata["templates"] == {
            "profile_updated": ["app/views/user_mailer/profile_updated.html.erb"],
        }

    def test_route_dependencies(self, context):
        mailer = by_id(MailerExtractor(context).extract_all())["UserMailer"]
        assert Dependency("route", "profile", "url_helper") in mailer.dependencies

    def test_action_chunks(self, context):
        mailer = by_id(MailerExtractor(context).extract_all())["UserMailer"]
        (chunk,) = mailer.chunks
        assert chunk.identifier == "UserMailer#profile_updated"
        assert chunk.chunk_type == "mail_action"
        assert chunk.metadata["parent"] == "UserMailer"
        assert "# Templates: app/views/user_mailer/profile_updated.html.erb" in chunk.content
        assert chunk.content.rstrip().endswith("end")
        assert "formatted_name" not in chunk.content

    def test_public_actions(self):
        source = (
            "class A < ApplicationMailer\n"
            "  def self.build; end\n"
            "  def initialize; end\n"
            "  def welcome; end\n"
            "  protected\n"
            "  def hidden; end\n"
            "end\n"
        )
        assert public_actions(source) == ["welcome"]
