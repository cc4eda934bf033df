from collections.abc import Callable, Iterator
from typing import Any

import requests

from src.utils.logging import get_logger
from src.utils.rate_limiter import MAX_RETRY_DELAY_SECONDS, RateLimitedError, rate_limited

logger = get_logger(__name__)

PAGE_SIZE = 50

_PAGE_INFO = """
    pageInfo {
        hasNextPage
        endCursor
    }
"""

TEAMS_QUERY = f"""
query Teams($first: Int, $after: String) {{
    teams(first: $first, after: $after) {{
        {_PAGE_INFO}
        nodes {{
            id
            name
            key
            displayName
            description
            icon
            color
            private
            parent {{ id name key }}
            children {{ nodes {{ id name key }} }}
            members {{ nodes {{ id name displayName }} }}
            createdAt
            updatedAt
        }}
    }}
}}
"""

TEAM_ISSUES_QUERY = f"""
query TeamIssues($teamId: ID!, $first: Int, $after: String) {{
    issues(
        filter: {{ team: {{ id: {{ eq: $teamId }} }} }}
        first: $first
        after: $after
        orderBy: updatedAt
    ) {{
        {_PAGE_INFO}
        nodes {{
            id
            identifier
            title
            description
            priority
            priorityLabel
            url
            dueDate
            state {{ id name color type }}
            assignee {{ id name }}
            labels {{ nodes {{ id name color }} }}
            team {{ id key name }}
            project {{ id name color }}
            createdAt
            updatedAt
        }}
    }}
}}
"""

ISSUE_COMMENTS_QUERY = f"""
query IssueComments($issueId: ID!, $first: Int, $after: String) {{
    comments(
        filter: {{ issue: {{ id: {{ eq: $issueId }} }} }}
        first: $first
        after: $after
    ) {{
        {_PAGE_INFO}
        nodes {{
            id
            body
            user {{ id name }}
            createdAt
            updatedAt
        }}
    }}
}}
"""

TEAM_PROJECTS_QUERY = f"""
query TeamProjects($teamId: ID!, $first: Int, $after: String) {{
    projects(
        filter: {{ accessibleTeams: {{ id: {{ eq: $teamId }} }} }}
        first: $first
        after: $after
    ) {{
        {_PAGE_INFO}
        nodes {{
            id
            name
            description
            status {{ id name color type }}
            lead {{ id name }}
            priority
            priorityLabel
            progress
            health
            startDate
            targetDate
            url
            teams {{ nodes {{ id name key }} }}
            members {{ nodes {{ id name }} }}
            initiatives {{ nodes {{ id name }} }}
            createdAt
            updatedAt
        }}
    }}
}}
"""

INITIATIVES_QUERY = f"""
query Initiatives($first: Int, $after: String) {{
    initiatives(first: $first, after: $after) {{
        {_PAGE_INFO}
        nodes {{
            id
            name
            description
            status
            health
            healthUpdatedAt
            targetDate
            owner {{ id name }}
            projects {{ nodes {{ id name }} }}
            subInitiatives {{ nodes {{ id name }} }}
            parentInitiative {{ id name }}
            createdAt
            updatedAt
        }}
    }}
}}
"""


class LinearClient:
    """A client for the Linear GraphQL API, used for backfill and reconcile."""

    API_URL = "https://api.linear.app/graphql"

    def __init__(self, token: str, page_size: int = PAGE_SIZE):
        if not token:
            raise ValueError("Linear token is required and cannot be empty")

        self.page_size = page_size
        self.session = requests.Session()
        self.session.headers.update(
            {
                "Authorization": token.strip(),
                "Content-Type": "application/json",
            }
        )

    def _make_request(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """Make a GraphQL request to the Linear API."""
        payload: dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        try:
            response = self.session.post(self.API_URL, json=payload)
            self._log_rate_limit_headers(response.headers)

            # Parse JSON regardless of status code; Linear reports rate limits as GraphQL errors
            try:
                data = response.json()
            except ValueError:
                if response.status_code == 429:
                    retry_after = int(response.headers.get("Retry-After", 60))
                    logger.warning(f"Linear HTTP 429 rate limit hit, retrying after {retry_after}s")
                    raise RateLimitedError(retry_after=retry_after)
                response.raise_for_status()
                return {}

            if "errors" in data:
                for error in data["errors"]:
                    extensions = error.get("extensions", {})
                    if extensions.get("code") == "RATELIMITED":
                        retry_after = self._calculate_retry_from_headers(response.headers)
                        if retry_after is None:
                            retry_after = self._calculate_retry_from_rate_limit_meta(extensions)

                        logger.warning(
                            f"Linear GraphQL rate limit hit: {error.get('message', 'Rate limited')}, "
                            f"retrying after {retry_after}s"
                        )
                        raise RateLimitedError(retry_after=retry_after)

                response.raise_for_status()
                raise ValueError(f"GraphQL errors: {data['errors']}")

            response.raise_for_status()
            return data.get("data") or {}

        except RateLimitedError:
            raise
        except requests.exceptions.HTTPError:
            logger.error(f"Linear API HTTP error: {response.status_code} - {response.text}")
            raise
        except requests.exceptions.RequestException as e:
            logger.error(f"Linear API request error: {e}")
            raise

    def _log_rate_limit_headers(self, headers: Any) -> None:
        req_limit = headers.get("X-RateLimit-Requests-Limit")
        req_remaining = headers.get("X-RateLimit-Requests-Remaining")
        if not (req_limit and req_remaining):
            return

        usage_pct = ((int(req_limit) - int(req_remaining)) / int(req_limit)) * 100
        logger.debug(f"Linear requests: {req_remaining}/{req_limit} remaining ({usage_pct:.1f}% used)")
        if usage_pct > 80:
            logger.warning(f"Linear request rate limit approaching: {usage_pct:.1f}% used")

    def _calculate_retry_from_headers(self, headers: Any, now: float | None = None) -> int | None:
        """Seconds until the earliest advertised rate limit reset, or None if no header parses."""
        import time

        now = time.time() if now is None else now
        for header in (
            "X-RateLimit-Endpoint-Requests-Reset",
            "X-RateLimit-Requests-Reset",
            "X-RateLimit-Complexity-Reset",
        ):
            reset = headers.get(header)
            if not reset:
                continue
            try:
                # Reset headers are epoch milliseconds; add a 1s buffer
                retry_after = max(1, int(int(reset) / 1000 - now) + 1)
            except (ValueError, TypeError):
                continue
            return min(retry_after, MAX_RETRY_DELAY_SECONDS)

        return None

    def _calculate_retry_from_rate_limit_meta(self, extensions: dict[str, Any]) -> int:
        """Retry delay from Linear's leaky-bucket metadata (extensions.meta.rateLimitResult)."""
        try:
            rate_limit_result = extensions.get("meta", {}).get("rateLimitResult", {})
            limit = rate_limit_result.get("limit")
            duration_ms = rate_limit_result.get("duration")

            if limit and duration_ms and limit > 0 and duration_ms > 0:
                refill_rate = limit / (duration_ms / 1000)
                tokens_to_wait = 2 if refill_rate >= 1.0 else 1
                retry_after = int(tokens_to_wait / refill_rate) + 1
                return max(1, min(retry_after, MAX_RETRY_DELAY_SECONDS))

        except (ValueError, TypeError, KeyError, AttributeError) as e:
            logger.debug(f"Failed to parse Linear rate limit metadata: {e}")

        # Standard limit is 1500 requests/hour, so a couple of refill intervals
        return 5

    def _page(self, query: str, connection: str, after: str | None, **variables: Any) -> dict[str, Any]:
        result = self._make_request(query, {**variables, "first": self.page_size, "after": after})
        return result.get(connection) or {}

    @rate_limited()
    def get_teams_page(self, after: str | None = None) -> dict[str, Any]:
        return self._page(TEAMS_QUERY, "teams", after)

    @rate_limited()
    def get_team_issues_page(self, team_id: str, after: str | None = None) -> dict[str, Any]:
        return self._page(TEAM_ISSUES_QUERY, "issues", after, teamId=team_id)

    @rate_limited()
    def get_issue_comments_page(self, issue_id: str, after: str | None = None) -> dict[str, Any]:
        return self._page(ISSUE_COMMENTS_QUERY, "comments", after, issueId=issue_id)

    @rate_limited()
    def get_team_projects_page(self, team_id: str, after: str | None = None) -> dict[str, Any]:
        return self._page(TEAM_PROJECTS_QUERY, "projects", after, teamId=team_id)

    @rate_limited()
    def get_initiatives_page(self, after: str | None = None) -> dict[str, Any]:
        return self._page(INITIATIVES_QUERY, "initiatives", after)

    def iter_pages(
        self, fetch_page: Callable[..., dict[str, Any]], *args: Any
    ) -> Iterator[list[dict[str, Any]]]:
        """Yield the node list of each page, following endCursor until hasNextPage is false."""
        after = None

        while True:
            connection = fetch_page(*args, after=after)
            nodes = [node for node in connection.get("nodes") or [] if node is not None]
            if nodes:
                yield nodes

            page_info = connection.get("pageInfo") or {}
            if not page_info.get("hasNextPage", False):
                break

            after = page_info.get("endCursor")
            if not after:
                logger.warning("Linear reported another page without an endCursor; stopping")
                break

    def iter_teams(self) -> Iterator[list[dict[str, Any]]]:
        return self.iter_pages(self.get_teams_page)

    def iter_team_issues(self, team_id: str) -> Iterator[list[dict[str, Any]]]:
        return self.iter_pages(self.get_team_issues_page, team_id)

    def iter_issue_comments(self, issue_id: str) -> Iterator[list[dict[str, Any]]]:
        return self.iter_pages(self.get_issue_comments_page, issue_id)

    def iter_team_projects(self, team_id: str) -> Iterator[list[dict[str, Any]]]:
        return self.iter_pages(self.get_team_projects_page, team_id)

    def iter_initiatives(self) -> Iterator[list[dict[str, Any]]]:
        return self.iter_pages(self.get_initiatives_page)
