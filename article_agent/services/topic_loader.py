"""Topic configuration loader with pinned-version enforcement and caching."""

import json
import logging
import os
import threading
from typing import Any, Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError

from article_agent.config import settings
from article_agent.errors import ConfigError, NotFound
from article_agent.schemas.topic import (
    TopicConfig,
    TopicList,
    TopicSummary,
    is_pinned_version,
    is_topic_id,
    version_key,
)

logger = logging.getLogger(__name__)


def _validation_messages(exc: ValidationError) -> List[str]:
    return [
        f"{'.'.join(str(part) for part in err['loc']) or '<root>'}: {err['msg']}"
        for err in exc.errors()
    ]


def parse_topic(data: Any) -> TopicConfig:
    """Validate a raw document into a TopicConfig or raise ConfigError."""
    try:
        return TopicConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError("Invalid topic configuration: " + "; ".join(_validation_messages(e))) from e


class TopicLoader:
    """Resolves ``id@version`` to a validated, immutable TopicConfig.

    Configs are cached for the process lifetime; ``clear_cache`` lets a
    long-lived process pick up corrected files.
    """

    def __init__(
        self,
        source: Optional[str] = None,
        local_path: Optional[str] = None,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.source = source or settings.TOPIC_CONFIG_SOURCE
        self.local_path = local_path or settings.TOPIC_CONFIG_LOCAL_PATH
        self.api_url = api_url if api_url is not None else settings.TOPIC_CONFIG_API_URL
        self.api_key = api_key if api_key is not None else settings.TOPIC_CONFIG_API_KEY
        self.timeout = timeout or settings.TOPIC_CONFIG_API_TIMEOUT

        if self.source not in ("local", "api"):
            raise ConfigError(f"Unknown topic config source: {self.source}")

        self._cache: Dict[str, TopicConfig] = {}
        self._cache_lock = threading.Lock()

        logger.info(f"Topic loader initialized with source: {self.source}")

    async def load_topic(self, topic_id: str, version: str) -> TopicConfig:
        """Load and validate a pinned topic version."""
        if not is_topic_id(topic_id):
            raise ConfigError(f"Invalid topic id {topic_id!r}; use letters, digits, '-' and '_'")
        if not is_pinned_version(version):
            raise ConfigError(
                f'Version "{version}" is not allowed; specify an exact version such as 1.0.0'
            )

        key = f"{topic_id}@{version}"
        with self._cache_lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached

        logger.info(f"Loading topic: {key}")
        if self.source == "local":
            data = self._read_local(topic_id, version)
        else:
            data = await self._fetch_remote(topic_id, version)

        topic = parse_topic(data)
        if topic.id != topic_id:
            raise ConfigError(f"Topic id mismatch: requested {topic_id}, got {topic.id}")
        if topic.version != version:
            raise ConfigError(f"Version mismatch: requested {version}, got {topic.version}")
        if topic.status == "deprecated":
            logger.warning(f"Topic {key} is deprecated")

        with self._cache_lock:
            # First writer wins so every caller shares one instance
            topic = self._cache.setdefault(key, topic)

        logger.info(f"Successfully loaded topic: {key}")
        return topic

    def clear_cache(self) -> int:
        """Drop every cached topic; returns how many were dropped."""
        with self._cache_lock:
            dropped = len(self._cache)
            self._cache.clear()
        logger.info(f"Cleared {dropped} cached topics")
        return dropped

    def _candidate_paths(self, topic_id: str, version: str) -> List[str]:
        return [
            os.path.join(self.local_path, topic_id, f"{version}.json"),
            os.path.join(self.local_path, f"{topic_id}@{version}.json"),
            os.path.join(self.local_path, f"{topic_id}.json"),
        ]

    def _read_json(self, path: str) -> Any:
        try:
            with open(path, "r", encoding="utf-8") as handle:
                return json.load(handle)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Topic file {path} is not valid JSON: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read topic file {path}: {e}") from e

    def _read_local(self, topic_id: str, version: str) -> Any:
        for path in self._candidate_paths(topic_id, version):
            if os.path.isfile(path):
                return self._read_json(path)
        raise ConfigError(f"Topic not found: {topic_id}@{version}")

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        if not self.api_url:
            raise ConfigError("Topic API URL not configured")

        url = f"{self.api_url.rstrip('/')}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, headers=self._headers(), params=params)
        except httpx.HTTPError as e:
            raise ConfigError(f"Topic API request failed: {e}") from e

        if response.status_code == 404:
            raise NotFound(f"Topic API returned 404 for {path}")
        if response.status_code >= 400:
            raise ConfigError(f"Topic API request failed with status {response.status_code}")
        try:
            return response.json()
        except ValueError as e:
            raise ConfigError(f"Topic API returned invalid JSON: {e}") from e

    async def _fetch_remote(self, topic_id: str, version: str) -> Any:
        try:
            body = await self._get_json(f"/topics/{topic_id}/versions/{version}")
        except NotFound as e:
            raise ConfigError(f"Topic not found: {topic_id}@{version}") from e

        if not isinstance(body, dict) or not body.get("success") or not body.get("data"):
            error = body.get("error") if isinstance(body, dict) else None
            raise ConfigError(error or f"Failed to load topic {topic_id}@{version} from API")
        return body["data"]

    async def list_topics(self, page: Optional[int] = None, limit: Optional[int] = None) -> TopicList:
        """List available topics; invalid local files are skipped."""
        if self.source == "api":
            params = {k: v for k, v in (("page", page), ("limit", limit)) if v}
            try:
                return TopicList.model_validate(await self._get_json("/topics", params=params))
            except ValidationError as e:
                raise ConfigError("Invalid topic listing from API: " + "; ".join(_validation_messages(e))) from e

        topics: List[TopicSummary] = []
        for path in self._local_topic_files():
            try:
                topic = parse_topic(self._read_json(path))
            except ConfigError as e:
                logger.warning(f"Skipping invalid topic file {path}: {e}")
                continue
            topics.append(
                TopicSummary(
                    id=topic.id,
                    version=topic.version,
                    title=topic.title,
                    status=topic.status,
                    tags=topic.tags,
                    priority=topic.priority,
                    created_at=topic.created_at,
                    updated_at=topic.updated_at,
                )
            )

        topics.sort(key=lambda t: (t.id, version_key(t.version)))
        total = len(topics)
        if page and limit:
            start = (page - 1) * limit
            topics = topics[start:start + limit]
        return TopicList(topics=topics, total=total, page=page, limit=limit)

    async def get_topic_versions(self, topic_id: str) -> List[str]:
        """All known versions of a topic, newest first."""
        if not is_topic_id(topic_id):
            raise ConfigError(f"Invalid topic id {topic_id!r}; use letters, digits, '-' and '_'")
        if self.source == "api":
            body = await self._get_json(f"/topics/{topic_id}/versions")
            versions = body.get("versions") if isinstance(body, dict) else None
            if not isinstance(versions, list):
                raise ConfigError("Invalid API response: versions must be an array")
        else:
            versions = []
            for path in self._local_topic_files():
                try:
                    topic = parse_topic(self._read_json(path))
                except ConfigError:
                    continue
                if topic.id == topic_id:
                    versions.append(topic.version)
            if not versions:
                raise NotFound(f"Topic not found: {topic_id}")

        pinned = sorted({v for v in versions if is_pinned_version(v)}, key=version_key, reverse=True)
        return pinned

    def validate_topic_file(self, path: str) -> Tuple[bool, List[str]]:
        """Validate a topic file without caching it."""
        try:
            parse_topic(self._read_json(path))
        except ConfigError as e:
            cause = e.__cause__
            if isinstance(cause, ValidationError):
                return False, _validation_messages(cause)
            return False, [e.message]
        return True, []

    def _local_topic_files(self) -> List[str]:
        if not os.path.isdir(self.local_path):
            return []
        paths = []
        for root, _dirs, files in os.walk(self.local_path):
            for name in sorted(files):
                if name.endswith(".json"):
                    paths.append(os.path.join(root, name))
        return sorted(paths)
