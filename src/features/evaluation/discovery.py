"""Result file discovery over the virtual directory tree of an S3 prefix."""

import re
from collections.abc import Iterable

import structlog

from src.features.evaluation.constants import (
    CANONICAL_RESULTS_FILENAME,
    DEFAULT_MAX_DISCOVERY_LISTINGS,
    JSON_EXTENSION,
    JSONL_EXTENSION,
    METADATA_SUFFIX,
    PATH_SEPARATOR,
)
from src.features.evaluation.errors import ConfigError, FormatError
from src.features.evaluation.protocols import ObjectStoreClient


logger = structlog.get_logger()

S3_URI_PATTERN = re.compile(r"^s3://(?P<bucket>[^/\s]+)/(?P<key>.+)$")


def parse_s3_uri(uri: str) -> tuple[str, str]:
    """Split an ``s3://bucket/key`` URI.

    Args:
        uri: S3 URI with a non-empty key part.

    Returns:
        Tuple of (bucket, key).

    Raises:
        FormatError: If the URI does not have the ``s3://bucket/key`` shape.
    """
    match = S3_URI_PATTERN.match(uri.strip()) if isinstance(uri, str) else None
    if match is None:
        msg = f"Invalid S3 URI: {uri!r}"
        raise FormatError(msg)
    return match.group("bucket"), match.group("key")


def select_result_key(keys: Iterable[str]) -> str | None:
    """Pick the result file among the objects of one listing.

    Priority: the canonical results file, then the first JSON Lines file,
    then the first JSON file that is not a metadata file.
    """
    files = [k for k in keys if not k.endswith(PATH_SEPARATOR)]
    for key in files:
        if key.endswith(CANONICAL_RESULTS_FILENAME):
            return key
    for key in files:
        if key.endswith(JSONL_EXTENSION):
            return key
    for key in files:
        if key.endswith(JSON_EXTENSION) and not key.endswith(METADATA_SUFFIX):
            return key
    return None


def infer_subdirectories(keys: Iterable[str], prefix: str) -> list[str]:
    """Infer the sub-directories below ``prefix`` implied by a listing.

    A key ending in ``/`` is a directory; any other key implies the
    directory holding it. Only directories strictly deeper than the prefix
    are returned, in listing order and without duplicates.
    """
    directories: list[str] = []
    for key in keys:
        if key.endswith(PATH_SEPARATOR):
            directory = key
        elif PATH_SEPARATOR in key:
            directory = key.rsplit(PATH_SEPARATOR, 1)[0] + PATH_SEPARATOR
        else:
            continue
        if (
            len(directory) > len(prefix)
            and directory.startswith(prefix)
            and directory not in directories
        ):
            directories.append(directory)
    return directories


class ResultFileFinder:
    """Depth-first search for the result file of an evaluation job.

    Each prefix is listed at most once and the total number of listings is
    capped, so the search ends on any key layout.
    """

    def __init__(
        self,
        store: ObjectStoreClient,
        max_listings: int = DEFAULT_MAX_DISCOVERY_LISTINGS,
    ) -> None:
        if max_listings < 1:
            msg = f"Discovery listing budget must be at least 1: {max_listings}"
            raise ConfigError(msg)
        self._store = store
        self._max_listings = max_listings
        self._listed: list[str] = []
        self._log = logger.bind(component="evaluation", subcomponent="discovery")

    @property
    def listed_prefixes(self) -> list[str]:
        """Get the prefixes listed by the last search, in order."""
        return list(self._listed)

    def find(self, bucket: str, prefix: str) -> str | None:
        """Find the result file under a prefix.

        Args:
            bucket: Bucket to search.
            prefix: Key prefix to start from.

        Returns:
            Key of the result file, or None if nothing matched.

        Raises:
            TransportError: If a listing failed.
        """
        listed: list[str] = []
        key = self._search(bucket, prefix, listed)
        self._listed = listed
        if key is None:
            if len(listed) >= self._max_listings:
                self._log.warning(
                    "discovery_budget_exhausted",
                    bucket=bucket,
                    prefix=prefix,
                    max_listings=self._max_listings,
                )
            self._log.warning(
                "result_file_not_found",
                bucket=bucket,
                prefix=prefix,
                listings=len(listed),
            )
        else:
            self._log.info(
                "result_file_found",
                bucket=bucket,
                key=key,
                listings=len(listed),
            )
        return key

    def _search(self, bucket: str, prefix: str, listed: list[str]) -> str | None:
        # State is per call; the finder may be shared across threads.
        if prefix in listed or len(listed) >= self._max_listings:
            return None

        listed.append(prefix)
        keys = self._store.list_objects(bucket, prefix)
        self._log.debug("discovery_listing", prefix=prefix, keys=len(keys))

        found = select_result_key(keys)
        if found is not None:
            return found

        for directory in infer_subdirectories(keys, prefix):
            if len(listed) >= self._max_listings:
                break
            found = self._search(bucket, directory, listed)
            if found is not None:
                return found
        return None


def find_result_file(
    store: ObjectStoreClient,
    bucket: str,
    prefix: str,
    max_listings: int = DEFAULT_MAX_DISCOVERY_LISTINGS,
) -> str | None:
    """Find the result file under a prefix with a one-off finder."""
    return ResultFileFinder(store, max_listings).find(bucket, prefix)
