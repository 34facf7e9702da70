from .config import Settings, load_settings
from .errors import (
    ArtifactNotFoundError,
    BuildError,
    BuildTimeoutError,
    CacheCorruptionError,
    CacheError,
    DependencyResolutionError,
    FailureKind,
    GateTokenError,
    InvalidArgumentError,
    PipelineError,
    PromotionError,
    PublishError,
    StageError,
    TransientError,
)
from .fs import (
    atomic_dir_commit,
    atomic_symlink_swap,
    atomic_write_bytes,
    atomic_write_text,
    copy_or_hardlink,
    copy_tree,
    ensure_parent,
    file_size,
    make_tmp_dir_for,
    relpath_posix,
    remove_tree,
    safe_unlink,
)
from .hashing import (
    FileDigest,
    read_sha256_sum_txt,
    sha256_bytes,
    sha256_file,
    write_sha256_sum_txt,
)
from .json import atomic_write_json, read_json, stable_json_dumps
from .logging import ILogger, bind, bound, configure_logging, get_logger
from .paths import DataLayout
from .provenance import RunProvenance, Timer, new_run_id, platform_tag
from .time import monotonic_ms, utc_now_iso, utc_stamp

__all__ = [
    "ArtifactNotFoundError",
    "BuildError",
    "BuildTimeoutError",
    "CacheCorruptionError",
    "CacheError",
    "DataLayout",
    "DependencyResolutionError",
    "FailureKind",
    "FileDigest",
    "GateTokenError",
    "ILogger",
    "InvalidArgumentError",
    "PipelineError",
    "PromotionError",
    "PublishError",
    "RunProvenance",
    "Settings",
    "StageError",
    "Timer",
    "TransientError",
    "atomic_dir_commit",
    "atomic_symlink_swap",
    "atomic_write_bytes",
    "atomic_write_json",
    "atomic_write_text",
    "bind",
    "bound",
    "configure_logging",
    "copy_or_hardlink",
    "copy_tree",
    "ensure_parent",
    "file_size",
    "get_logger",
    "load_settings",
    "make_tmp_dir_for",
    "monotonic_ms",
    "new_run_id",
    "platform_tag",
    "read_json",
    "read_sha256_sum_txt",
    "relpath_posix",
    "remove_tree",
    "safe_unlink",
    "sha256_bytes",
    "sha256_file",
    "stable_json_dumps",
    "utc_now_iso",
    "utc_stamp",
    "write_sha256_sum_txt",
]
