"""Cross-posting to Medium.

Posts with ``crosspost_to_medium: true`` are published to Medium with a
canonical link back to the blog. A small YAML state file remembers which
posts were already sent so running the command again never duplicates them.
"""

from __future__ import annotations

import json
import logging
import os
import urllib.error
import urllib.request
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml
from markupsafe import escape

from .collections import PostCollection
from .errors import CrosspostError
from .html_utils import absolutize_html_urls, join_root_url
from .posts import Post

logger = logging.getLogger(__name__)

MEDIUM_API_URL = "https://api.medium.com/v1"
STATE_FILE = ".crosspost.yaml"
TOKEN_ENV_VAR = "MEDIUM_INTEGRATION_TOKEN"
PUBLISH_STATUSES = ("public", "draft", "unlisted")


@dataclass
class MediumSettings:
    """The ``medium`` section of chronicle.yaml."""

    integration_token: str = ""
    user_id: str = ""
    publish_status: str = "draft"
    license: str = "all-rights-reserved"

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> MediumSettings:
        section = config.get("medium") or {}
        if not isinstance(section, dict):
            raise CrosspostError("'medium' in chronicle.yaml must be a mapping")
        settings = cls(
            integration_token=os.environ.get(TOKEN_ENV_VAR)
            or str(section.get("integration_token") or ""),
            user_id=str(section.get("user_id") or ""),
            publish_status=str(section.get("publish_status") or "draft"),
            license=str(section.get("license") or "all-rights-reserved"),
        )
        if settings.publish_status not in PUBLISH_STATUSES:
            raise CrosspostError(
                f"medium.publish_status must be one of {', '.join(PUBLISH_STATUSES)}"
            )
        return settings


class CrosspostState:
    """Records which posts have been sent to Medium.

    The file maps a post's source path to the Medium URL and the time it
    was published.
    """

    def __init__(self, path: Path):
        self.path = path
        self._entries: dict[str, dict[str, Any]] = {}
        if path.exists():
            try:
                loaded = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            except yaml.YAMLError as exc:
                raise CrosspostError(f"{path}: invalid YAML ({exc})") from exc
            if not isinstance(loaded, dict):
                raise CrosspostError(f"{path}: expected a mapping of posts")
            for source, entry in loaded.items():
                if not isinstance(entry, dict):
                    raise CrosspostError(f"{path}: entry for {source} must be a mapping")
            self._entries = loaded

    def __contains__(self, post: Post) -> bool:
        return post.source in self._entries

    def url_for(self, post: Post) -> str | None:
        entry = self._entries.get(post.source)
        return entry.get("url") if entry else None

    def record(self, post: Post, url: str) -> None:
        self._entries[post.source] = {
            "url": url,
            "published_at": datetime.now().replace(microsecond=0).isoformat(),
        }
        self.save()

    def save(self) -> None:
        self.path.write_text(
            yaml.safe_dump(self._entries, sort_keys=True, allow_unicode=True),
            encoding="utf-8",
        )


def select_candidates(posts: PostCollection, state: CrosspostState) -> list[Post]:
    """Published posts flagged for Medium that have not been sent yet, oldest first."""
    flagged = posts.published().crossposted().sorted(reverse=False)
    return [post for post in flagged if post not in state]


def build_payload(post: Post, site_url: str, settings: MediumSettings) -> dict[str, Any]:
    """Build the Medium ``posts`` request body for a post.

    Relative links are made absolute against the blog URL so images and
    internal links keep working on Medium.
    """
    canonical = join_root_url(site_url, post.url)
    body = absolutize_html_urls(post.content, site_url, page_url=canonical)
    footer = (
        f'<p><em>This post was originally published at '
        f'<a href="{escape(canonical)}">{escape(canonical)}</a>.</em></p>'
    )
    return {
        "title": post.title,
        "contentFormat": "html",
        "content": f"<h1>{escape(post.title)}</h1>\n{body}\n{footer}",
        "canonicalUrl": canonical,
        "publishStatus": settings.publish_status,
        "license": settings.license,
    }


class MediumClient:
    """Minimal client for the Medium publishing API."""

    def __init__(self, token: str, base_url: str = MEDIUM_API_URL, timeout: float = 30.0):
        if not token:
            raise CrosspostError(
                f"No Medium integration token; set {TOKEN_ENV_VAR} or medium.integration_token"
            )
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _request(self, method: str, path: str, data: dict | None = None) -> dict:
        url = f"{self.base_url}{path}"
        body = json.dumps(data).encode("utf-8") if data is not None else None
        req = urllib.request.Request(
            url,
            data=body,
            method=method,
            headers={
                "Authorization": f"Bearer {self.token}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                return json.loads(resp.read().decode("utf-8"))
        except urllib.error.HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace")
            raise CrosspostError(f"Medium API {method} {path} failed: {exc.code} {detail}") from exc
        except urllib.error.URLError as exc:
            raise CrosspostError(f"Medium API unreachable: {exc.reason}") from exc

    def me(self) -> str:
        """Return the id of the user owning the token."""
        return self._request("GET", "/me")["data"]["id"]

    def create_post(self, user_id: str, payload: dict[str, Any]) -> str:
        """Publish a post and return its Medium URL."""
        response = self._request("POST", f"/users/{user_id}/posts", payload)
        return response["data"]["url"]


@dataclass
class CrosspostResult:
    post: Post
    url: str | None


def crosspost(
    project_root: Path,
    posts: PostCollection,
    config: dict[str, Any],
    dry_run: bool = False,
    client: MediumClient | None = None,
) -> list[CrosspostResult]:
    """Send every pending flagged post to Medium.

    Args:
        project_root: Project directory; the state file lives here.
        posts: Loaded posts.
        config: Site configuration (needs ``url``).
        dry_run: Only report what would be sent.
        client: Optional pre-built client.

    Returns:
        One result per candidate; ``url`` is None on a dry run.

    Raises:
        CrosspostError: On missing configuration or an API failure. Posts sent
            before the failure stay recorded in the state file.
    """
    site_url = str(config.get("url") or "").rstrip("/")
    if not site_url:
        raise CrosspostError("Set 'url' in chronicle.yaml so Medium can link back to the blog")
    settings = MediumSettings.from_config(config)
    state = CrosspostState(project_root / STATE_FILE)
    candidates = select_candidates(posts, state)
    if dry_run or not candidates:
        return [CrosspostResult(post, None) for post in candidates]

    client = client or MediumClient(settings.integration_token)
    user_id = settings.user_id or client.me()
    results = []
    for post in candidates:
        url = client.create_post(user_id, build_payload(post, site_url, settings))
        state.record(post, url)
        logger.info("Cross-posted %s to %s", post.source, url)
        results.append(CrosspostResult(post, url))
    return results
