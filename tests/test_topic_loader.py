"""Tests for topic config loading."""

import json

import pytest
from pydantic import ValidationError

from article_agent.errors import ConfigError, NotFound
from article_agent.schemas.run import TopicRef
from article_agent.schemas.topic import TopicConfig, is_pinned_version

from conftest import TOPIC_ID, TOPIC_VERSION, topic_document


@pytest.mark.asyncio
async def test_load_valid_topic(topic_loader, write_topic):
    write_topic()

    topic = await topic_loader.load_topic(TOPIC_ID, TOPIC_VERSION)

    assert topic.key == "ai-basics@1.0.0"
    assert topic.length_range == (800, 1200)
    assert topic.seo.density_range == (1.0, 2.0)
    assert topic.outline.required_sections == ["Introduction", "Conclusion"]


@pytest.mark.asyncio
async def test_loaded_topics_are_cached(topic_loader, write_topic):
    write_topic()

    first = await topic_loader.load_topic(TOPIC_ID, TOPIC_VERSION)
    write_topic(title="Changed on disk")
    second = await topic_loader.load_topic(TOPIC_ID, TOPIC_VERSION)

    assert second is first
    assert topic_loader.clear_cache() == 1

    reloaded = await topic_loader.load_topic(TOPIC_ID, TOPIC_VERSION)
    assert reloaded.title == "Changed on disk"


@pytest.mark.asyncio
async def test_topic_is_immutable(topic_loader, write_topic):
    write_topic()
    topic = await topic_loader.load_topic(TOPIC_ID, TOPIC_VERSION)

    with pytest.raises(Exception):
        topic.title = "mutated"


@pytest.mark.asyncio
@pytest.mark.parametrize("version", ["latest", "^1.0.0", "1.x", "1.0", ""])
async def test_unpinned_versions_rejected(topic_loader, write_topic, version):
    write_topic()

    with pytest.raises(ConfigError):
        await topic_loader.load_topic(TOPIC_ID, version)


@pytest.mark.asyncio
async def test_missing_topic(topic_loader):
    with pytest.raises(ConfigError, match="not found"):
        await topic_loader.load_topic("nope", "1.0.0")


@pytest.mark.asyncio
async def test_invalid_topic_lists_field_errors(topic_loader, write_topic):
    write_topic(seo={"keywords": []}, length="big")

    with pytest.raises(ConfigError) as exc_info:
        await topic_loader.load_topic(TOPIC_ID, TOPIC_VERSION)

    assert "seo.keywords" in exc_info.value.message
    assert "length" in exc_info.value.message


@pytest.mark.asyncio
async def test_version_mismatch(topic_loader, topics_dir):
    (topics_dir / "ai-basics@2.0.0.json").write_text(json.dumps(topic_document()), encoding="utf-8")

    with pytest.raises(ConfigError, match="mismatch"):
        await topic_loader.load_topic(TOPIC_ID, "2.0.0")


@pytest.mark.asyncio
async def test_list_topics_skips_invalid_files(topic_loader, write_topic, topics_dir):
    write_topic()
    write_topic(version="1.1.0", title="AI Basics v1.1")
    (topics_dir / "broken.json").write_text("{not json", encoding="utf-8")

    listing = await topic_loader.list_topics()

    assert listing.total == 2
    assert [t.version for t in listing.topics] == ["1.0.0", "1.1.0"]


@pytest.mark.asyncio
async def test_versions_newest_first(topic_loader, write_topic):
    write_topic(version="1.2.0")
    write_topic(version="1.10.0")
    write_topic(version="1.0.0")

    assert await topic_loader.get_topic_versions(TOPIC_ID) == ["1.10.0", "1.2.0", "1.0.0"]

    with pytest.raises(NotFound):
        await topic_loader.get_topic_versions("unknown")


def test_validate_topic_file(topic_loader, topics_dir):
    good = topics_dir / "good.json"
    good.write_text(json.dumps(topic_document()), encoding="utf-8")
    bad = topics_dir / "bad.json"
    bad.write_text(json.dumps(topic_document(version="latest")), encoding="utf-8")

    assert topic_loader.validate_topic_file(str(good)) == (True, [])
    valid, errors = topic_loader.validate_topic_file(str(bad))
    assert not valid
    assert any("version" in error for error in errors)


def test_is_pinned_version():
    assert is_pinned_version("1.0.0")
    assert is_pinned_version("10.20.30")
    assert not is_pinned_version("v1.0.0")
    assert not is_pinned_version("1.0.0-beta")


@pytest.mark.asyncio
@pytest.mark.parametrize("topic_id", ["../secrets", "ai-basics/../../etc", "/etc/passwd", ".hidden"])
async def test_topic_ids_must_be_slugs(topic_loader, write_topic, topic_id):
    write_topic()

    with pytest.raises(ConfigError, match="Invalid topic id"):
        await topic_loader.load_topic(topic_id, TOPIC_VERSION)
    with pytest.raises(ConfigError, match="Invalid topic id"):
        await topic_loader.get_topic_versions(topic_id)


def test_topic_refs_reject_path_like_ids():
    with pytest.raises(ValidationError):
        TopicRef(topic_id="../secrets", version=TOPIC_VERSION)
    with pytest.raises(ValidationError):
        TopicConfig.model_validate(topic_document(id="team/ai-basics"))

    assert TopicRef(topic_id="AI_basics-2", version=TOPIC_VERSION).topic_id == "AI_basics-2"
