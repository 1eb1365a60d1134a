"""GitHub GraphQL API client for profile, repository and contribution data."""

import logging
import os
from datetime import datetime
from typing import List, Optional, Dict, Any, Iterable

import requests

from portfolio.domain.errors import AuthFailure, NotFound, RateLimitExceeded, RemoteError, ValidationError
from portfolio.domain.models import (
    ContributionCounters,
    LanguageEdge,
    PrimaryLanguage,
    Profile,
    Repository,
    parse_timestamp,
)

logger = logging.getLogger(__name__)


PROFILE_FIELDS = """
    login
    name
    bio
    avatarUrl
    followers {
        totalCount
    }
    following {
        totalCount
    }
    repositories {
        totalCount
    }
"""

PROFILE_QUERY = """
query($username: String!) {
    user(login: $username) {
        %s
    }
}
""" % PROFILE_FIELDS

VIEWER_QUERY = """
query {
    viewer {
        %s
    }
}
""" % PROFILE_FIELDS

REPOSITORIES_QUERY = """
query($username: String!, $limit: Int!) {
    user(login: $username) {
        repositories(
            first: $limit
            orderBy: {field: STARGAZERS, direction: DESC}
            ownerAffiliations: OWNER
            privacy: PUBLIC
        ) {
            nodes {
                id
                name
                description
                stargazerCount
                forkCount
                primaryLanguage {
                    name
                    color
                }
                createdAt
                updatedAt
                url
                isPrivate
                languages(first: 10, orderBy: {field: SIZE, direction: DESC}) {
                    totalSize
                    edges {
                        size
                        node {
                            name
                        }
                    }
                }
            }
        }
    }
}
"""

CONTRIBUTIONS_QUERY = """
query($username: String!, $from: DateTime!, $to: DateTime!) {
    user(login: $username) {
        contributionsCollection(from: $from, to: $to) {
            totalCommitContributions
            totalIssueContributions
            totalPullRequestContributions
            totalPullRequestReviewContributions
            totalRepositoryContributions
        }
    }
}
"""


class GitHubGraphQLClient:
    """Stateless client for the GitHub GraphQL API.

    The bearer credential is supplied per call, so one client instance can
    serve every identity. Failed requests are never retried here.
    """

    GRAPHQL_ENDPOINT = "https://api.github.com/graphql"
    REQUEST_TIMEOUT_SECONDS = 30
    MAX_REPOSITORIES = 100
    TOP_LANGUAGES = 10

    def __init__(self, endpoint: Optional[str] = None, timeout: Optional[float] = None):
        """
        Initialize GitHub GraphQL client.

        Args:
            endpoint: GraphQL endpoint URL. If None, uses GITHUB_GRAPHQL_ENDPOINT env var
                or the public GitHub endpoint.
            timeout: Request timeout in seconds.
        """
        self.endpoint = endpoint or os.getenv("GITHUB_GRAPHQL_ENDPOINT", self.GRAPHQL_ENDPOINT)
        self.timeout = timeout if timeout is not None else self.REQUEST_TIMEOUT_SECONDS

    @staticmethod
    def _headers(credential: str) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {credential}",
        }

    def _execute_query(self, query: str, credential: Optional[str], variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Execute a GraphQL query.

        Args:
            query: GraphQL query string
            credential: Bearer token of the calling user
            variables: Query variables

        Returns:
            GraphQL response data

        Raises:
            AuthFailure: If the credential is missing or rejected
            NotFound: If GitHub reports that the requested user does not exist
            RateLimitExceeded: If rate limit is exceeded
            RemoteError: For any other failed or malformed response
        """
        if not credential:
            raise AuthFailure("GitHub access token not found")

        payload: Dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        try:
            response = requests.post(
                self.endpoint,
                json=payload,
                headers=self._headers(credential),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise RemoteError(f"GitHub request failed: {e}") from e

        if response.status_code == 401:
            raise AuthFailure("Authentication failed. Check your GitHub token.")
        if response.status_code == 403:
            if response.headers.get("X-RateLimit-Remaining") == "0":
                raise RateLimitExceeded(
                    f"Rate limit exceeded, resets at {response.headers.get('X-RateLimit-Reset', 'unknown')}"
                )
            raise RemoteError(f"Forbidden: {response.text}")
        if not 200 <= response.status_code < 300:
            raise RemoteError(f"GitHub API error: {response.status_code} {response.reason}")

        try:
            data = response.json()
        except ValueError as e:
            raise RemoteError(f"Malformed JSON from GitHub: {e}") from e
        if not isinstance(data, dict):
            raise RemoteError("Malformed GraphQL response")

        errors = data.get("errors")
        if errors:
            not_found = next(
                (err for err in errors if isinstance(err, dict) and err.get("type") == "NOT_FOUND"), None
            )
            if not_found is not None:
                raise NotFound(f"GitHub user not found: {not_found.get('message', '')}")
            error_messages = [err.get("message", "") if isinstance(err, dict) else str(err) for err in errors]
            if any("rate limit" in msg.lower() for msg in error_messages):
                raise RateLimitExceeded(f"Rate limit exceeded: {error_messages}")
            raise RemoteError(f"GraphQL errors: {error_messages}")

        result = data.get("data")
        if not isinstance(result, dict):
            raise RemoteError("GraphQL response has no data payload")
        return result

    @staticmethod
    def _user_node(data: Dict[str, Any], username: str) -> Dict[str, Any]:
        user = data.get("user")
        if user is None:
            raise NotFound(f"GitHub user not found: {username}")
        return user

    @staticmethod
    def _parse_profile(node: Dict[str, Any]) -> Profile:
        return Profile(
            login=node["login"],
            name=node.get("name"),
            bio=node.get("bio"),
            avatar_url=node.get("avatarUrl"),
            followers=node["followers"]["totalCount"],
            following=node["following"]["totalCount"],
            repository_count=node["repositories"]["totalCount"],
        )

    @staticmethod
    def _parse_repository(node: Dict[str, Any]) -> Repository:
        primary = node.get("primaryLanguage")
        edges = (node.get("languages") or {}).get("edges") or []
        created_at = node.get("createdAt")

        return Repository(
            id=node["id"],
            name=node["name"],
            description=node.get("description"),
            stars=node["stargazerCount"],
            forks=node["forkCount"],
            primary_language=PrimaryLanguage(name=primary["name"], color=primary.get("color")) if primary else None,
            updated_at=parse_timestamp(node["updatedAt"]),
            url=node["url"],
            is_private=bool(node.get("isPrivate", False)),
            created_at=parse_timestamp(created_at) if created_at else None,
            languages=tuple(
                LanguageEdge(language=edge["node"]["name"], size=edge["size"])
                for edge in edges
            ),
        )

    def fetch_profile(self, username: str, credential: Optional[str]) -> Profile:
        """
        Fetch the public profile of a GitHub user.

        Args:
            username: GitHub login
            credential: Bearer token of the calling user

        Returns:
            Parsed profile
        """
        data = self._execute_query(PROFILE_QUERY, credential, {"username": username})
        node = self._user_node(data, username)
        try:
            return self._parse_profile(node)
        except (KeyError, TypeError) as e:
            raise RemoteError(f"Malformed profile payload for {username}: {e}") from e

    def fetch_viewer(self, credential: Optional[str]) -> Profile:
        """Fetch the profile of the user owning the credential."""
        data = self._execute_query(VIEWER_QUERY, credential)
        viewer = data.get("viewer")
        if viewer is None:
            raise RemoteError("GraphQL response has no viewer")
        try:
            return self._parse_profile(viewer)
        except (KeyError, TypeError) as e:
            raise RemoteError(f"Malformed viewer payload: {e}") from e

    def fetch_repositories(self, username: str, credential: Optional[str], limit: int = 100) -> List[Repository]:
        """
        Fetch public repositories owned by a user.

        Args:
            username: GitHub login
            credential: Bearer token of the calling user
            limit: Maximum number of repositories to fetch (max 100 per query)

        Returns:
            Repositories ordered by star count, highest first
        """
        variables = {"username": username, "limit": max(1, min(limit, self.MAX_REPOSITORIES))}
        data = self._execute_query(REPOSITORIES_QUERY, credential, variables)
        node = self._user_node(data, username)

        try:
            nodes = node["repositories"]["nodes"]
            repositories = [self._parse_repository(repo) for repo in nodes if repo]
        except (KeyError, TypeError, ValidationError) as e:
            raise RemoteError(f"Malformed repositories payload for {username}: {e}") from e

        logger.info(f"Fetched {len(repositories)} repositories for {username}")
        return repositories

    def fetch_contribution_stats(
        self,
        username: str,
        credential: Optional[str],
        year_start: datetime,
        year_end: datetime,
    ) -> ContributionCounters:
        """
        Fetch contribution counters for a date window.

        Args:
            username: GitHub login
            credential: Bearer token of the calling user
            year_start: Start of the window (inclusive)
            year_end: End of the window (inclusive)
        """
        if year_end < year_start:
            raise ValidationError("Contribution window ends before it starts")

        variables = {
            "username": username,
            "from": year_start.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "to": year_end.strftime("%Y-%m-%dT%H:%M:%SZ"),
        }
        data = self._execute_query(CONTRIBUTIONS_QUERY, credential, variables)
        node = self._user_node(data, username)

        try:
            collection = node["contributionsCollection"]
            return ContributionCounters(
                commits=collection["totalCommitContributions"],
                issues=collection["totalIssueContributions"],
                pull_requests=collection["totalPullRequestContributions"],
                pull_request_reviews=collection["totalPullRequestReviewContributions"],
                repositories=collection["totalRepositoryContributions"],
            )
        except (KeyError, TypeError) as e:
            raise RemoteError(f"Malformed contributions payload for {username}: {e}") from e

    @classmethod
    def compute_language_stats(cls, repositories: Iterable[Repository]) -> Dict[str, float]:
        """
        Aggregate language byte sizes across repositories into percentages.

        Percentages are rounded to one decimal. Only the top languages are
        returned, highest share first; ties keep first-encountered order.
        """
        totals: Dict[str, int] = {}
        for repo in repositories:
            for edge in repo.languages:
                totals[edge.language] = totals.get(edge.language, 0) + edge.size

        total_size = sum(totals.values())
        if total_size == 0:
            return {}

        percentages = [
            (language, round(size / total_size * 100, 1))
            for language, size in totals.items()
        ]
        # sorted() is stable, so equal percentages stay in insertion order
        ranked = sorted(percentages, key=lambda item: item[1], reverse=True)
        return dict(ranked[:cls.TOP_LANGUAGES])
