"""Helper utility functions for unitindex.

IMPORTANT UTILITIES:
- normalize_relative_path(): Use this for ANY file path written to output.
  Units carry absolute paths while extracting, but the index stores
  Unix-style paths relative to the app root so it is portable across
  machines (local, Docker, CI) where the root differs.
- collision_safe_filename(): The one place identifiers become file names.
"""

import hashlib
import json
import re
from pathlib import Path
from typing import Any

from .logging import logger

_ACRONYM_BOUNDARY = re.compile(r"([A-Z\d]+)([A-Z][a-z])")
_CAMEL_BOUNDARY = re.compile(r"([a-z\d])([A-Z])")
_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def normalize_relative_path(file_path: str | None, project_root: Path | str | None = None) -> str | None:
    """Strip *project_root* from *file_path* and use forward slashes.

    Paths outside the root (and None) are returned unchanged apart from
    the slash conversion.

    Examples:
        >>> normalize_relative_path("/srv/app/app/models/user.rb", "/srv/app")
        'app/models/user.rb'

        >>> normalize_relative_path("app/models/user.rb", "/srv/app")
        'app/models/user.rb'

        >>> normalize_relative_path("/gems/devise/lib/devise.rb", "/srv/app")
        '/gems/devise/lib/devise.rb'
    """
    if file_path is None:
        return None

    normalized = str(file_path).replace("\\", "/")
    if project_root is None:
        return normalized

    root_str = str(project_root).replace("\\", "/").rstrip("/")
    if normalized.startswith(root_str + "/"):
        return normalized[len(root_str) + 1 :]
    return normalized


def compute_text_hash(text: str | None) -> str:
    """SHA-256 hex digest of *text* (None hashes like the empty string)."""
    return hashlib.sha256((text or "").encode("utf-8")).hexdigest()


def underscore(name: str) -> str:
    """Convert one CamelCase segment to lower snake case.

    Examples:
        >>> underscore("UsersController")
        'users_controller'

        >>> underscore("HTTPClient")
        'http_client'
    """
    word = _ACRONYM_BOUNDARY.sub(r"\1_\2", name)
    word = _CAMEL_BOUNDARY.sub(r"\1_\2", word)
    return word.replace("-", "_").lower()


def camelize(segment: str) -> str:
    """Inverse of underscore() for the common case.

    Examples:
        >>> camelize("user_mailer")
        'UserMailer'
    """
    return "".join(part[:1].upper() + part[1:] for part in segment.split("_") if part)


def class_name_from_path(file_path: str | Path, base_dir: str | Path) -> str:
    """Constant name the autoload convention expects for *file_path*.

    Examples:
        >>> class_name_from_path("/srv/app/app/jobs/admin/sync_job.rb", "/srv/app/app/jobs")
        'Admin::SyncJob'
    """
    relative = Path(file_path).relative_to(base_dir).with_suffix("")
    return "::".join(camelize(part) for part in relative.parts)


def safe_filename(identifier: str) -> str:
    """Turn a unit identifier into a filesystem-safe JSON file name.

    Examples:
        >>> safe_filename("Admin::UsersController")
        'Admin__UsersController.json'
    """
    return f"{_filename_base(identifier)}.json"


def collision_safe_filename(identifier: str) -> str:
    """Like safe_filename() but suffixed with a short digest of *identifier*.

    Two identifiers that normalize to the same base name (``Foo::Bar`` and
    ``Foo__Bar``) still get distinct files.
    """
    digest = hashlib.sha256(identifier.encode("utf-8")).hexdigest()[:8]
    return f"{_filename_base(identifier)}_{digest}.json"


def _filename_base(identifier: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", identifier.replace("::", "__"))


def load_json_file(file_path: str | Path) -> Any:
    """
    Load and parse a JSON file.

    Args:
        file_path: Path to JSON file

    Returns:
        Parsed JSON document

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If file contains invalid JSON
        PermissionError: If file cannot be read
    """
    try:
        with open(file_path, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        logger.error(f"JSON file not found: {file_path}")
        raise
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in file {file_path}: {e}")
        raise
    except PermissionError:
        logger.error(f"Permission denied reading file: {file_path}")
        raise


def save_json_file(data: Any, file_path: str | Path) -> None:
    """
    Save data as JSON to file, creating parent directories.

    Args:
        data: Data to save
        file_path: Path to output file
    """
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
