"""Pytest configuration and fixtures."""
import json
from pathlib import Path

import pytest

from unitindex.core.names import NameRegistry, default_registry
from unitindex.utils.logging import logger

USER_MODEL = """\
class User < ApplicationRecord
  include Trackable

  has_many :posts
  belongs_to :account

  before_save :normalize_email
  after_commit :sync_profile, if: :saved_change_to_email?

  def normalize_email
    self.email = email.downcase
  end

  def sync_profile
    ProfileSyncJob.perform_later(id)
    AuditService.call(self)
  end
end
"""

POST_MODEL = """\
class Post < ApplicationRecord
  belongs_to :user
end
"""

ACCOUNT_MODEL = """\
class Account < ApplicationRecord
end
"""

TRACKABLE_CONCERN = """\
module Trackable
  def touch_activity
    update_column(:last_seen_at, Time.current)
  end
end
"""

PROFILE_SYNC_JOB = """\
class ProfileSyncJob < ApplicationJob
  queue_as :low
  retry_on Net::ReadTimeout

  def perform(user_id, force: false)
    user = User.find(user_id)
    UserMailer.profile_updated(user).deliver_later
    NotifyJob.perform_later(user_id)
  end
end
"""

USER_MAILER = """\
class UserMailer < ApplicationMailer
  default from: "noreply@example.com"
  layout "mailer"

  def profile_updated(user)
    @user = user
    @url = profile_url(user)
    mail(to: user.email, subject: "Profile updated")
  end

  private

  def formatted_name
    @user.name.titleize
  end
end
"""

SAMPLE_APP_FILES = {
    "app/models/user.rb": USER_MODEL,
    "app/models/post.rb": POST_MODEL,
    "app/models/account.rb": ACCOUNT_MODEL,
    "app/models/concerns/trackable.rb": TRACKABLE_CONCERN,
    "app/jobs/profile_sync_job.rb": PROFILE_SYNC_JOB,
    "app/mailers/user_mailer.rb": USER_MAILER,
    "app/views/user_mailer/profile_updated.html.erb": "<p>Hi <%= @user.name %></p>\n",
    "vendor/bundle/ruby/3.2.0/gems/activerecord/lib/active_record/base.rb": "module ActiveRecord\nend\n",
}


def write_files(root: Path, files: dict[str, str]) -> Path:
    """Write ``{relative_path: content}`` under *root*."""
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def app_root(tmp_path):
    """Empty application root (resolved, so paths compare equal on every platform)."""
    root = tmp_path.resolve() / "app_root"
    root.mkdir()
    return root


@pytest.fixture
def sample_app(app_root):
    """
    Small Rails-style application.

    Models: User (includes Trackable, has_many posts, belongs_to account),
    Post, Account. One job (ProfileSyncJob) and one mailer (UserMailer)
    with a template for its only public action. A vendored gem file sits
    under vendor/bundle to check it never leaks into the index.
    """
    return write_files(app_root, SAMPLE_APP_FILES)


@pytest.fixture
def runtime_manifest(sample_app):
    """unitindex.json for sample_app, as the host process would write it."""
    vendored = str(sample_app / "vendor/bundle/ruby/3.2.0/gems/activerecord/lib/active_record/base.rb")
    data = {
        "app_root": str(sample_app),
        "units": [
            {
                "name": "User",
                "kind": "model",
                "declared_at": None,
                "instance_methods": [vendored, str(sample_app / "app/models/user.rb")],
                "class_methods": [vendored],
                "fields": ["email", "last_seen_at"],
                "callbacks": [
                    {"type": "before_save", "kind": "before", "filter": "normalize_email"},
                    {"type": "after_save", "kind": "after", "filter": "#<Proc:0x000055d5 user.rb:9>"},
                ],
                "table_name": "users",
            },
            {
                "name": "Post",
                "kind": "model",
                "declared_at": str(sample_app / "app/models/post.rb"),
                "fields": ["title", "user_id"],
            },
            {
                "name": "Ghost",
                "kind": "model",
                "instance_methods": [vendored],
            },
        ],
    }
    path = sample_app / "unitindex.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


@pytest.fixture
def registry():
    """Fresh registry seeded with a few model names."""
    return NameRegistry.from_names(["User", "Post", "Account", "Admin::User"])


@pytest.fixture(autouse=True)
def reset_default_registry():
    """The process-wide registry is shared state; leave it clean for the next test."""
    yield
    default_registry().use_loader(None)


@pytest.fixture
def log_messages():
    """Capture loguru messages (all levels) emitted during the test."""
    messages = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def make_app(app_root):
    """Factory fixture: write ``{relative_path: content}`` into app_root and return the root."""

    def make(files: dict[str, str]) -> Path:
        return write_files(app_root, files)

    return make
