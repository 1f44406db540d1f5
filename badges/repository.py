# GraphQL documents and the calls that use them; no orchestration logic here
import json
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from core import graphql
from core.config import Settings, settings as default_settings

from .models import AppConfig, AvailableBadge, BadgeId, MemberId, Post, TenantId, app_config_from_dict, app_config_to_dict

log = logging.getLogger("uvicorn.error").getChild("badges.repository")

NETWORK_SETTINGS_QUERY = """
query getAppNetworkSettings($appId: ID!) {
  getAppNetworkSettings(appId: $appId)
}
"""

UPDATE_NETWORK_SETTINGS_MUTATION = """
mutation updateAppNetworkSettings($appId: ID!, $settings: String!) {
  updateAppNetworkSettings(appId: $appId, settings: $settings) {
    status
  }
}
"""

NETWORK_BADGES_QUERY = """
query networkBadges {
  network {
    badges {
      id
      name
      active
      type
    }
  }
}
"""

POSTS_QUERY = """
query posts($limit: Int!, $after: String, $filterBy: [PostListFilterByInput!]) {
  posts(limit: $limit, after: $after, orderBy: publishedAt, reverse: false, filterBy: $filterBy) {
    nodes {
      id
      title
      publishedAt
      createdById
      isHidden
      isAnonymous
      status
    }
    pageInfo {
      hasNextPage
      endCursor
    }
  }
}
"""

ASSIGN_BADGE_MUTATION = """
mutation assignBadge($id: ID!, $input: AssignOrRevokeBadgeInput!) {
  assignBadge(id: $id, input: $input) {
    status
  }
}
"""

REVOKE_BADGE_MUTATION = """
mutation revokeBadge($id: ID!, $input: AssignOrRevokeBadgeInput!) {
  revokeBadge(id: $id, input: $input) {
    status
  }
}
"""

APP_INSTALLATIONS_QUERY = """
query appInstallations($appId: ID!, $limit: Int!, $after: String) {
  appInstallations(appId: $appId, limit: $limit, after: $after) {
    nodes {
      network {
        id
      }
    }
    pageInfo {
      hasNextPage
      endCursor
    }
  }
}
"""


class PlatformClient:
    """Per-network client for the community platform's GraphQL API."""

    def __init__(self, network_id: TenantId, config: Optional[Settings] = None):
        self.network_id = network_id
        self.settings = config or default_settings
        if not self.network_id or not self.settings.app_id:
            log.error("Network ID and app ID are required (network=%r)", network_id)

    def _execute(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        token = graphql.get_network_token(self.network_id)
        return graphql.execute(query, variables, token=token)

    def get_app_config(self) -> AppConfig:
        data = self._execute(NETWORK_SETTINGS_QUERY, {"appId": self.settings.app_id})
        raw = data.get("getAppNetworkSettings")
        if not raw:
            return {}
        parsed = json.loads(raw) if isinstance(raw, str) else raw
        return app_config_from_dict((parsed or {}).get("config"))

    def update_app_config(self, config: AppConfig) -> None:
        payload = json.dumps({"config": app_config_to_dict(config)})
        self._execute(
            UPDATE_NETWORK_SETTINGS_MUTATION,
            {"appId": self.settings.app_id, "settings": payload},
        )

    def get_manual_badges(self) -> List[AvailableBadge]:
        data = self._execute(NETWORK_BADGES_QUERY)
        badges = (data.get("network") or {}).get("badges") or []
        if not badges:
            log.info("No badges found for network %s", self.network_id)
        return [b for b in (AvailableBadge.from_dict(raw) for raw in badges) if b.is_manual]

    def get_posts_metadata(self, max_days: Optional[int] = None) -> List[Post]:
        """Fetch metadata of posts published in the last ``max_days`` days, oldest first."""
        max_days = max_days or self.settings.post_days_window_limit
        since = datetime.now(timezone.utc) - timedelta(days=max_days)
        filter_by = [{"key": "publishedAt", "operator": "gte", "value": json.dumps(since.isoformat())}]
        limit = self.settings.posts_fetch_limit

        posts: List[Post] = []
        after: Optional[str] = None
        requests_made = 0
        while True:
            page_size = self.settings.posts_page_size
            if limit:
                page_size = min(page_size, limit - len(posts))
            data = self._execute(POSTS_QUERY, {"limit": page_size, "after": after, "filterBy": filter_by})
            requests_made += 1
            page = data.get("posts") or {}
            for node in page.get("nodes") or []:
                if node.get("publishedAt"):
                    posts.append(Post.from_dict(node))

            page_info = page.get("pageInfo") or {}
            after = page_info.get("endCursor")
            if not page_info.get("hasNextPage") or (limit and len(posts) >= limit):
                break
            # posts queries are expensive; stay under the burst limit
            time.sleep(self.settings.posts_page_delay)

        log.info(
            "Fetched %d posts for network %s in %d requests",
            len(posts),
            self.network_id,
            requests_made,
        )
        return posts[:limit] if limit else posts

    def assign_badge(self, member_id: MemberId, badge_id: BadgeId) -> None:
        self._execute(ASSIGN_BADGE_MUTATION, {"id": badge_id, "input": {"memberId": member_id}})

    def revoke_badge(self, member_id: MemberId, badge_id: BadgeId) -> None:
        self._execute(REVOKE_BADGE_MUTATION, {"id": badge_id, "input": {"memberId": member_id}})


def list_installed_networks(config: Optional[Settings] = None, page_size: int = 100) -> List[TenantId]:
    config = config or default_settings
    networks: List[TenantId] = []
    after: Optional[str] = None
    while True:
        data = graphql.execute(APP_INSTALLATIONS_QUERY, {"appId": config.app_id, "limit": page_size, "after": after})
        page = data.get("appInstallations") or {}
        for node in page.get("nodes") or []:
            network_id = (node.get("network") or {}).get("id")
            if network_id:
                networks.append(TenantId(network_id))
        page_info = page.get("pageInfo") or {}
        if not page_info.get("hasNextPage"):
            break
        after = page_info.get("endCursor")
    return networks
