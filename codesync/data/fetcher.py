"""
Contest listing fetchers for third-party platforms.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional

import requests

from codesync.database.models import Contest

logger = logging.getLogger(__name__)


class ContestSource(ABC):
    """Fetches upcoming contests from a single platform."""

    platform: str = ""

    def __init__(self, timeout: float = 15.0):
        self.timeout = timeout

    @abstractmethod
    def fetch(self) -> list[Contest]:
        """
        Fetch upcoming contests.

        Returns:
            Contests normalized to the common shape

        Raises:
            requests.RequestException: On network or HTTP errors
            ValueError: If the response cannot be parsed
        """
        pass


class CodeforcesSource(ContestSource):
    """Codeforces public API."""

    platform = "Codeforces"
    API_URL = "https://codeforces.com/api/contest.list"

    def fetch(self) -> list[Contest]:
        response = requests.get(self.API_URL, timeout=self.timeout)
        response.raise_for_status()
        data = response.json()

        if data.get("status") != "OK":
            raise ValueError(f"Codeforces returned status {data.get('status')}")

        return [
            Contest(
                platform=self.platform,
                name=c["name"],
                start_time=datetime.fromtimestamp(c["startTimeSeconds"], tz=timezone.utc),
                duration=timedelta(seconds=c["durationSeconds"]),
                url=f"https://codeforces.com/contest/{c['id']}",
            )
            for c in data.get("result", [])
            if c.get("phase") == "BEFORE"
        ]


class CodeChefSource(ContestSource):
    """CodeChef contest list API."""

    platform = "CodeChef"
    API_URL = (
        "https://www.codechef.com/api/list/contests/all"
        "?sort_by=START&sorting_order=asc&offset=0&mode=all"
    )

    def fetch(self) -> list[Contest]:
        response = requests.get(self.API_URL, timeout=self.timeout)
        response.raise_for_status()
        data = response.json()

        contests = []
        for c in data.get("future_contests") or []:
            start = _parse_iso(c["contest_start_date_iso"])
            end = _parse_iso(c["contest_end_date_iso"])
            contests.append(
                Contest(
                    platform=self.platform,
                    name=c["contest_name"],
                    start_time=start,
                    duration=end - start,
                    url=f"https://www.codechef.com/{c['contest_code']}",
                )
            )
        return contests


class LeetCodeSource(ContestSource):
    """LeetCode GraphQL endpoint."""

    platform = "LeetCode"
    API_URL = "https://leetcode.com/graphql"
    QUERY = """{
        allContests {
          title
          titleSlug
          startTime
          duration
        }
      }"""

    def fetch(self) -> list[Contest]:
        response = requests.post(
            self.API_URL,
            json={"query": self.QUERY},
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()

        all_contests = ((data or {}).get("data") or {}).get("allContests") or []
        now = datetime.now(timezone.utc).timestamp()

        return [
            Contest(
                platform=self.platform,
                name=c["title"],
                start_time=datetime.fromtimestamp(c["startTime"], tz=timezone.utc),
                duration=timedelta(seconds=c["duration"]),
                url=f"https://leetcode.com/contest/{c['titleSlug']}",
            )
            for c in all_contests
            if c["startTime"] > now
        ]


SOURCES: dict[str, type[ContestSource]] = {
    "codeforces": CodeforcesSource,
    "codechef": CodeChefSource,
    "leetcode": LeetCodeSource,
}


def _parse_iso(value: str) -> datetime:
    """Parse an ISO timestamp, treating naive values as UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class ContestFetcher:
    """Aggregates contests from all configured platforms."""

    def __init__(
        self,
        platforms: Optional[list[str]] = None,
        timeout: float = 15.0,
        sources: Optional[list[ContestSource]] = None,
    ):
        """
        Initialize fetcher.

        Args:
            platforms: Platform keys from SOURCES, defaults to all of them
            timeout: Per-request timeout in seconds
            sources: Explicit source instances, overrides ``platforms``
        """
        if sources is None:
            keys = platforms if platforms is not None else list(SOURCES)
            sources = [SOURCES[key](timeout=timeout) for key in keys]
        self.sources = sources

    def fetch_all(self) -> list[Contest]:
        """
        Fetch contests from every platform.

        A failing platform is logged and skipped; this method never raises.

        Returns:
            Combined contests sorted by start time
        """
        contests: list[Contest] = []
        for source in self.sources:
            try:
                fetched = source.fetch()
            except (requests.RequestException, ValueError, KeyError, TypeError) as e:
                logger.error(f"Error fetching {source.platform}: {e}")
                continue
            logger.debug(f"Fetched {len(fetched)} contests from {source.platform}")
            contests.extend(fetched)

        contests.sort(key=lambda c: c.start_time)
        return contests
