"""Tests for callback side-effect analysis.

Each test feeds real-looking class source and checks the five side-effect
lists. Method bodies must be bounded correctly: effects of the NEXT method
in the file must never leak into the analyzed one.
"""

import pytest

from unitindex.core.callbacks import (
    SIDE_EFFECT_KEYS,
    Callback,
    CallbackAnalyzer,
    analyze_callback,
    empty_side_effects,
    is_named_filter,
)

NOISY_SOURCE = """\
class Order < ApplicationRecord
  def settle
    self.status = "settled"
    SettlementJob.perform_later(id)
    LedgerService.call(self)
    OrderMailer.settled(self).deliver_later
    Payment.where(order_id: id).exists?
  end
end
"""


def cb(name, callback_type="before_save"):
    return {"type": callback_type, "kind": callback_type.split("_")[0], "filter": name}


class TestAnonymousAndMissing:
    """Unresolvable callbacks always produce the empty record."""

    @pytest.mark.parametrize("name", [None, "", "#<Proc:0x000055d5 order.rb:12>", "<lambda>"])
    def test_anonymous_filter(self, name):
        result = analyze_callback(cb(name), NOISY_SOURCE, ["status"])
        assert result["side_effects"] == empty_side_effects()

    def test_missing_definition(self):
        result = analyze_callback(cb("archive"), NOISY_SOURCE, ["status"])
        assert result["side_effects"] == empty_side_effects()

    def test_empty_source(self):
        result = analyze_callback(cb("settle"), None, ["status"])
        assert set(result["side_effects"]) == set(SIDE_EFFECT_KEYS)
        assert result["side_effects"] == empty_side_effects()

    def test_is_named_filter(self):
        assert is_named_filter("normalize_email")
        assert is_named_filter("valid?")
        assert not is_named_filter("#<Proc:0x1>")
        assert not is_named_filter(None)


class TestColumnsWritten:
    def test_known_field_assignment(self):
        source = """\
class User
  def normalize_email
    self.email = email.downcase
  end
end
"""
        result = analyze_callback(cb("normalize_email"), source, ["email"])
        assert result["side_effects"]["columns_written"] == ["email"]

    def test_unknown_field_is_not_a_write(self):
        source = """\
class User
  def stash
    self.unknown_field = x
  end
end
"""
        result = analyze_callback(cb("stash"), source, ["email"])
        assert result["side_effects"]["columns_written"] == []

    def test_comparison_is_not_a_write(self):
        source = "def check\n  raise if self.email == other\nend\n"
        assert analyze_callback(cb("check"), source, ["email"])["side_effects"]["columns_written"] == []

    def test_writer_calls(self):
        source = """\
class Order
  def finish
    update_column(:completed_at, Time.current)
    write_attribute("total", 10)
    self[:state] = "done"
    update_columns(status: "done", archived_at: Time.current, note: nil)
    assign_attributes(:priority => 1)
  end
end
"""
        fields = ["completed_at", "total", "state", "status", "archived_at", "priority"]
        result = analyze_callback(cb("finish"), source, fields)
        assert result["side_effects"]["columns_written"] == sorted(fields)

    def test_one_liner(self):
        source = "class User\n  def touch_it; update_column(:seen_at, Time.now); end\n  def other; self.name = 1; end\nend\n"
        result = analyze_callback(cb("touch_it"), source, ["seen_at", "name"])
        assert result["side_effects"]["columns_written"] == ["seen_at"]


class TestDetectors:
    def test_all_five_categories(self):
        result = analyze_callback(cb("settle"), NOISY_SOURCE, ["status"])
        assert result["side_effects"] == {
            "columns_written": ["status"],
            "jobs_enqueued": ["SettlementJob"],
            "services_called": ["LedgerService"],
            "mailers_triggered": ["OrderMailer"],
            "database_reads": ["where", "exists?"],
        }

    def test_results_are_deduplicated(self):
        source = """\
def fan_out
  AuditService.call(a)
  AuditService.call(b)
  ReportJob.set(wait: 5.minutes).perform_later(id)
  ReportJob.perform_later(id)
end
"""
        effects = analyze_callback(cb("fan_out"), source)["side_effects"]
        assert effects["services_called"] == ["AuditService"]
        assert effects["jobs_enqueued"] == ["ReportJob"]

    def test_reads_follow_vocabulary_order(self):
        source = """\
def check_duplicates
  return if Order.where(user_id: user_id).exists?
  Order.where(user_id: user_id).first
  Order.find_by(code: code)
end
"""
        effects = analyze_callback(cb("check_duplicates"), source)["side_effects"]
        assert effects["database_reads"] == ["find_by", "where", "first", "exists?"]

    def test_synchronous_perform_is_not_enqueued(self):
        source = "def run\n  ImportJob.perform_now(id)\nend\n"
        assert analyze_callback(cb("run"), source)["side_effects"]["jobs_enqueued"] == []


class TestBodyExtent:
    """Body boundaries are found by keyword counting or indentation."""

    def test_nested_if_does_not_end_early(self):
        source = """\
class Account
  def activate
    if pending?
      self.status = "on"
    end
    ActivationMailer.welcome(self).deliver_later
  end

  def later
    SyncJob.perform_later(id)
  end
end
"""
        effects = analyze_callback(cb("activate"), source, ["status"])["side_effects"]
        assert effects["columns_written"] == ["status"]
        assert effects["mailers_triggered"] == ["ActivationMailer"]
        assert effects["jobs_enqueued"] == []

    def test_do_blocks(self):
        source = """\
class Team
  def notify_all
    users.each do |u|
      UserMailer.ping(u).deliver_later
    end
    Rails.logger.info("done")
  end

  def unrelated
    CleanupJob.perform_later
  end
end
"""
        effects = analyze_callback(cb("notify_all"), source)["side_effects"]
        assert effects["mailers_triggered"] == ["UserMailer"]
        assert effects["jobs_enqueued"] == []

    def test_assigned_conditional(self):
        source = """\
class Member
  def set_tier
    self.tier = if premium?
      "gold"
    else
      "basic"
    end
  end

  def later
    TierJob.perform_later
  end
end
"""
        effects = analyze_callback(cb("set_tier"), source, ["tier"])["side_effects"]
        assert effects["columns_written"] == ["tier"]
        assert effects["jobs_enqueued"] == []

    def test_modifier_if_and_end_in_strings_and_comments(self):
        source = """\
class Story
  def wrap_up
    self.summary = "the end" if finished?
    # end of story
    self.state = "closed"
  end

  def reopen
    ReopenJob.perform_later(id)
  end
end
"""
        effects = analyze_callback(cb("wrap_up"), source, ["summary", "state"])["side_effects"]
        assert effects["columns_written"] == ["state", "summary"]
        assert effects["jobs_enqueued"] == []

    def test_endless_method(self):
        source = """\
class Visitor
  def greet = GreetingMailer.hello(self).deliver_later
  def other
    OtherService.call
  end
end
"""
        effects = analyze_callback(cb("greet"), source)["side_effects"]
        assert effects["mailers_triggered"] == ["GreetingMailer"]
        assert effects["services_called"] == []

    def test_setter_definition_is_not_endless(self):
        source = """\
class Contact
  def email=(value)
    super(value.strip)
    NormalizeService.call(self)
  end
end
"""
        effects = analyze_callback(cb("email="), source)["side_effects"]
        assert effects["services_called"] == ["NormalizeService"]

    def test_name_prefix_does_not_match(self):
        source = """\
def notify_later
  SlowJob.perform_later
end

def notify
  FastService.call
end
"""
        effects = analyze_callback(cb("notify"), source)["side_effects"]
        assert effects["services_called"] == ["FastService"]
        assert effects["jobs_enqueued"] == []

    def test_body_in_inlined_module(self):
        source = """\
class User < ApplicationRecord
  include Trackable
  before_save :touch_activity
end

# --- inlined from Trackable ---
module Trackable
  def touch_activity
    update_column(:last_seen_at, Time.current)
  end
end
"""
        effects = analyze_callback(cb("touch_activity"), source, ["last_seen_at"])["side_effects"]
        assert effects["columns_written"] == ["last_seen_at"]

    def test_unterminated_body_runs_to_end_of_text(self):
        source = "def truncated\n  PartialService.call\n"
        assert analyze_callback(cb("truncated"), source)["side_effects"]["services_called"] == ["PartialService"]

    def test_indented_python_body(self):
        source = """\
class Account(Model):
    def normalize(self):
        self.email = self.email.lower()
        NotifyService.call(self)

    def other(self):
        BillingJob.perform_later(self.id)
"""
        effects = analyze_callback(cb("normalize"), source, ["email"])["side_effects"]
        assert effects["columns_written"] == ["email"]
        assert effects["services_called"] == ["NotifyService"]
        assert effects["jobs_enqueued"] == []

    @pytest.mark.parametrize("modifier", ["private", "protected", "public"])
    def test_visibility_prefixed_definition(self, modifier):
        source = f"""\
class User < ApplicationRecord
  before_save :normalize_email

  {modifier} def normalize_email
    self.email = email.downcase
    WelcomeJob.perform_later(id)
  end

  def other
    OtherJob.perform_later(id)
  end
end
"""
        effects = analyze_callback(cb("normalize_email"), source, ["email"])["side_effects"]
        assert effects["columns_written"] == ["email"]
        assert effects["jobs_enqueued"] == ["WelcomeJob"]

    def test_async_python_definition(self):
        source = """\
class Account(Model):
    async def refresh(self):
        SyncService.call(self)

    def other(self):
        BillingJob.perform_later(self.id)
"""
        effects = analyze_callback(cb("refresh"), source)["side_effects"]
        assert effects["services_called"] == ["SyncService"]
        assert effects["jobs_enqueued"] == []


class TestContract:
    def test_original_keys_survive_and_input_is_untouched(self):
        callback = {"type": "after_commit", "kind": "after", "filter": "settle", "conditions": {"if": "paid?"}}
        result = analyze_callback(callback, NOISY_SOURCE, ["status"])
        assert result["conditions"] == {"if": "paid?"}
        assert result["type"] == "after_commit"
        assert "side_effects" not in callback

    def test_accepts_callback_dataclass(self):
        result = analyze_callback(Callback("before_save", "settle", "before"), NOISY_SOURCE, ["status"])
        assert result["filter"] == "settle"
        assert result["side_effects"]["columns_written"] == ["status"]

    def test_internal_error_yields_empty_record(self, monkeypatch, log_messages):
        def boom(self, body):
            raise RuntimeError("detector exploded")

        monkeypatch.setattr(CallbackAnalyzer, "detect_columns_written", boom)
        result = analyze_callback(cb("settle"), NOISY_SOURCE, ["status"])
        assert result["side_effects"] == empty_side_effects()
        assert any("detector exploded" in m for m in log_messages)

    def test_analyzer_reuse_across_callbacks(self):
        analyzer = CallbackAnalyzer(NOISY_SOURCE, ["status"])
        assert analyzer.method_body("settle").startswith("def settle")
        assert analyzer.method_body("missing") is None
