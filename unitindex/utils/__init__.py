"""unitindex utilities package."""

from .constants import (
    DEFAULT_OUTPUT_DIR,
    ERROR_LOG_FILE,
    GRAPH_FILE,
    MANIFEST_FILE,
    RUNTIME_MANIFEST_FILE,
    STATE_DIR,
    TYPE_INDEX_FILE,
)
from .error_handler import handle_exceptions
from .helpers import (
    camelize,
    class_name_from_path,
    collision_safe_filename,
    compute_text_hash,
    load_json_file,
    normalize_relative_path,
    safe_filename,
    save_json_file,
    underscore,
)

__all__ = [
    "DEFAULT_OUTPUT_DIR",
    "ERROR_LOG_FILE",
    "GRAPH_FILE",
    "MANIFEST_FILE",
    "RUNTIME_MANIFEST_FILE",
    "STATE_DIR",
    "TYPE_INDEX_FILE",
    "camelize",
    "class_name_from_path",
    "collision_safe_filename",
    "compute_text_hash",
    "handle_exceptions",
    "load_json_file",
    "normalize_relative_path",
    "safe_filename",
    "save_json_file",
    "underscore",
]
