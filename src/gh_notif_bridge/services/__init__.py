# src/gh_notif_bridge/services/__init__.py
"""GitHub and Matrix clients and the relay loop built on them."""

from .formatter import NotificationFormatter
from .github import GitHubClient, GitHubError, GitHubRateLimitError, Notification
from .links import LinkResolver, LinkRule
from .matrix import MatrixClient, MatrixError
from .worker import AccountWorker

__all__ = [
    "AccountWorker",
    "GitHubClient",
    "GitHubError",
    "GitHubRateLimitError",
    "LinkResolver",
    "LinkRule",
    "MatrixClient",
    "MatrixError",
    "Notification",
    "NotificationFormatter",
]
