"""Staging key → final key mapping.

The export service writes objects as ``<staging>/<job_id>/<stream>/<file>``.
Final objects live flat under one date partition:
``<destination>/<YYYY/MM/DD>/<stream>-<file>``.

Flattening replaces every ``/`` with ``-``, so two staging keys that differ
only by slash versus dash (``a/b-c`` and ``a-b/c``) map to the same final
key. The mapping keeps that behavior for compatibility with existing
partitions; the move executor detects such collisions and refuses to
overwrite.
"""

__all__ = ["staging_root", "transform_key", "DEFAULT_DESTINATION_PREFIX"]

DEFAULT_DESTINATION_PREFIX = "exported-logs"


def staging_root(staging_prefix: str, job_id: str) -> str:
    """Prefix under which one job writes its objects, with trailing slash."""
    return f"{staging_prefix.rstrip('/')}/{job_id}/"


def transform_key(
    staging_key: str,
    root: str,
    date_prefix: str,
    destination_prefix: str = DEFAULT_DESTINATION_PREFIX,
) -> str:
    """Map a staging object key to its final date-partitioned key.

    Args:
        staging_key: Key as listed under the staging prefix
        root: Staging root of the job (see staging_root())
        date_prefix: ``YYYY/MM/DD`` partition of the exported day
        destination_prefix: Top-level prefix of final objects

    Returns:
        ``<destination_prefix>/<date_prefix>/<flattened remainder>``

    Raises:
        ValueError: If the key is not under ``root`` or nothing remains after it

    Example:
        >>> transform_key("temp/j1/sub/a.gz", "temp/j1/", "2024/06/14")
        'exported-logs/2024/06/14/sub-a.gz'
    """
    if not staging_key.startswith(root):
        raise ValueError(f"key {staging_key!r} is not under staging root {root!r}")

    remainder = staging_key[len(root) :]
    if not remainder:
        raise ValueError(f"key {staging_key!r} has no name below staging root {root!r}")

    flattened = remainder.replace("/", "-")
    return f"{destination_prefix}/{date_prefix}/{flattened}"
