"""
Error classes for rendercache.

These error types separate the two failure modes of the compiler:
- AccessError: A repository, blob store, reader or renderer call failed
- ConsistencyError: A record that an earlier phase must have written is missing

Access errors are wrapped with context (which job, template or instance
was being processed) and propagated. Consistency errors mean precompile did
not run, or ran against different release metadata; they are never transient.

Nothing in rendercache retries. Retry policy belongs to the caller.
"""


class RenderCacheError(Exception):
    """Base exception for rendercache."""
    pass


class AccessError(RenderCacheError):
    """
    A collaborator call failed.

    Examples:
    - Repository read or write failed
    - Blob upload or download failed
    - Job archive could not be read
    - Template rendering failed
    """
    pass


class BlobNotFoundError(AccessError):
    """Raised when a blob id is not present in the blob store."""
    pass


class BlobIntegrityError(AccessError):
    """Raised when blob content does not match the requested fingerprint."""
    pass


class JobReadError(AccessError):
    """Raised when a job archive cannot be read or parsed."""
    pass


class RenderError(AccessError):
    """Raised when a renderer cannot produce a rendered archive."""
    pass


class ConsistencyError(RenderCacheError):
    """
    An invariant established by an earlier phase does not hold.

    Examples:
    - Template was never mapped to a release job by precompile
    - Release job has no job source record
    - Release job has no full package list
    - Rendered archive was never compiled for (job, instance)
    """
    pass


class MalformedReleaseError(RenderCacheError):
    """Raised when release input is structurally invalid."""
    pass


class CompileCancelledError(RenderCacheError):
    """Raised when a cancel event is observed between stages."""
    pass


def wrap_error(cause: BaseException, message: str) -> RenderCacheError:
    """
    Add context to an error while keeping its classification.

    rendercache errors keep their class so a ConsistencyError raised deep
    inside compile is still a ConsistencyError at the top. Anything else
    (OSError, a repository driver error, ...) becomes an AccessError.

    Usage:
        except Exception as e:
            raise wrap_error(e, f"Reading job {name}") from e

    Args:
        cause: The error being wrapped
        message: Context describing the operation that failed

    Returns:
        A new error with message "<message>: <cause>"
    """
    error_cls = type(cause) if isinstance(cause, RenderCacheError) else AccessError
    return error_cls(f"{message}: {cause}")
