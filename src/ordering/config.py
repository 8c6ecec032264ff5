"""Runtime settings for the Ordering domain.

Values come from environment variables so each deployment can tune bulk jobs
without code changes. Protean's own configuration overlay is selected with
``PROTEAN_ENV``.
"""

import os

DEFAULT_BULK_BATCH_SIZE = 100
DEFAULT_MAX_FAILURE_RATIO = 1.0  # 1.0 never aborts
DEFAULT_MIN_SAMPLE = 10
DEFAULT_PROGRESS_MAX_RETRIES = 3


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def bulk_batch_size() -> int:
    """Number of orders fetched per repository round trip in a bulk job."""
    return max(1, _env_int("ORDERING_BULK_BATCH_SIZE", DEFAULT_BULK_BATCH_SIZE))


def max_failure_ratio() -> float:
    """Failure ratio above which a bulk job is aborted."""
    return min(1.0, max(0.0, _env_float("ORDERING_BULK_MAX_FAILURE_RATIO", DEFAULT_MAX_FAILURE_RATIO)))


def min_failure_sample() -> int:
    """Orders that must be attempted before the failure ratio is enforced."""
    return max(1, _env_int("ORDERING_BULK_MIN_SAMPLE", DEFAULT_MIN_SAMPLE))


def progress_max_retries() -> int:
    """Attempts made to commit one progress report when versions conflict."""
    return max(1, _env_int("ORDERING_PROGRESS_MAX_RETRIES", DEFAULT_PROGRESS_MAX_RETRIES))
