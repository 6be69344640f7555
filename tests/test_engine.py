from datetime import datetime

import pytest

from promptboard.engine import (
    PromptEngine,
    filter_prompts_by_tags,
    get_all_tags,
    get_prompt_stats,
    process_prompts,
    search_prompts,
    sort_prompts,
)
from promptboard.errors import ErrorCode, PromptboardError
from promptboard.models import MAX_TIMESTAMP_MS, Prompt
from promptboard.storage import Storage
from promptboard.transfer import export_to_markdown

NOW = datetime(2026, 10, 19, 14, 5)


@pytest.fixture
def storage(tmp_path):
    return Storage(db_path=tmp_path / "test.db")


@pytest.fixture
def engine(storage):
    return PromptEngine(storage)


def _greeting(engine):
    return engine.create_prompt(
        {"title": "Greeting", "content": "Hello {{name|friend}}", "tags": ["demo"]}
    )


class TestCreate:
    def test_create_and_get(self, engine):
        created = engine.create_prompt(
            {"title": "T", "content": "C", "tags": ["a", "b"]}
        )
        fetched = engine.get_prompt(created.id)
        assert fetched.title == "T"
        assert fetched.content == "C"
        assert fetched.tags == ["a", "b"]
        assert fetched.created_at == fetched.updated_at

    def test_normalizes_tags(self, engine):
        prompt = engine.create_prompt({"title": "T", "tags": [" Work", "work", "", "EMAIL"]})
        assert prompt.tags == ["work", "email"]

    def test_content_defaults_to_empty(self, engine):
        assert engine.create_prompt({"title": "T"}).content == ""

    def test_appends_in_insertion_order(self, engine):
        for title in ("one", "two", "three"):
            engine.create_prompt({"title": title})
        assert [p.title for p in engine.list_prompts()] == ["one", "two", "three"]

    def test_unique_ids(self, engine):
        ids = {engine.create_prompt({"title": str(i)}).id for i in range(10)}
        assert len(ids) == 10

    def test_missing_title(self, engine):
        with pytest.raises(PromptboardError) as exc_info:
            engine.create_prompt({"content": "x"})
        assert exc_info.value.code == ErrorCode.VALIDATION
        assert exc_info.value.errors == ["Title is required"]
        assert engine.list_prompts() == []

    def test_persistence_failure(self, tmp_path):
        engine = PromptEngine(Storage(db_path=tmp_path / "q.db", quota_bytes=100))
        with pytest.raises(PromptboardError) as exc_info:
            engine.create_prompt({"title": "T", "content": "x" * 1000})
        assert exc_info.value.code == ErrorCode.PERSISTENCE
        assert engine.list_prompts() == []

    def test_increments_change_counter(self, engine, storage):
        engine.create_prompt({"title": "T"})
        assert storage.get_preferences().change_counter == 1


class TestUpdate:
    def test_updates_only_supplied_fields(self, engine):
        prompt = _greeting(engine)
        updated = engine.update_prompt(prompt.id, {"content": "Bye"})
        assert updated.title == "Greeting"
        assert updated.content == "Bye"
        assert updated.tags == ["demo"]

    def test_id_and_created_at_unchanged_updated_at_advances(self, engine):
        prompt = _greeting(engine)
        updated = engine.update_prompt(prompt.id, {"title": "New"})
        assert updated.id == prompt.id
        assert updated.created_at == prompt.created_at
        assert updated.updated_at > prompt.updated_at
        assert engine.get_prompt(prompt.id).title == "New"

    def test_empty_update_still_advances(self, engine):
        prompt = _greeting(engine)
        assert engine.update_prompt(prompt.id, {}).updated_at > prompt.updated_at

    def test_tags_normalized(self, engine):
        prompt = _greeting(engine)
        assert engine.update_prompt(prompt.id, {"tags": ["X", "x"]}).tags == ["x"]

    def test_invalid_title(self, engine):
        prompt = _greeting(engine)
        with pytest.raises(PromptboardError) as exc_info:
            engine.update_prompt(prompt.id, {"title": "  "})
        assert exc_info.value.code == ErrorCode.VALIDATION
        assert engine.get_prompt(prompt.id).title == "Greeting"

    def test_not_found(self, engine):
        with pytest.raises(PromptboardError) as exc_info:
            engine.update_prompt("nope", {"title": "x"})
        assert exc_info.value.code == ErrorCode.PROMPT_NOT_FOUND


class TestDelete:
    def test_delete(self, engine):
        prompt = _greeting(engine)
        engine.delete_prompt(prompt.id)
        with pytest.raises(PromptboardError) as exc_info:
            engine.get_prompt(prompt.id)
        assert exc_info.value.code == ErrorCode.PROMPT_NOT_FOUND

    def test_delete_nonexistent(self, engine, storage):
        with pytest.raises(PromptboardError) as exc_info:
            engine.delete_prompt("nope")
        assert exc_info.value.code == ErrorCode.PROMPT_NOT_FOUND
        assert storage.get_preferences().change_counter == 0

    def test_cached_values_survive_delete(self, engine, storage):
        prompt = _greeting(engine)
        storage.set_prompt_variables(prompt.id, {"name": "Ada"})
        engine.delete_prompt(prompt.id)
        assert storage.get_prompt_variables(prompt.id) == {"name": "Ada"}


class TestDuplicate:
    def test_duplicate(self, engine):
        prompt = _greeting(engine)
        copy = engine.duplicate_prompt(prompt.id)
        assert copy.id != prompt.id
        assert copy.title == "Greeting (Copy)"
        assert copy.content == prompt.content
        assert copy.tags == prompt.tags
        assert len(engine.list_prompts()) == 2

    def test_long_title_stays_valid(self, engine):
        prompt = engine.create_prompt({"title": "x" * 200})
        copy = engine.duplicate_prompt(prompt.id)
        assert len(copy.title) == 200
        assert copy.title.endswith(" (Copy)")


class TestSearchAndFilter:
    def test_scenario(self, engine):
        prompt = _greeting(engine)
        prompts = engine.list_prompts()
        assert search_prompts(prompts, "greet") == [prompt]
        assert filter_prompts_by_tags(prompts, ["demo"]) == [prompt]
        assert filter_prompts_by_tags(prompts, ["other"]) == []

    def test_search_content_and_tags(self):
        a = Prompt(title="A", content="Summarize this", tags=["work"])
        b = Prompt(title="B", content="Translate", tags=["Lang"])
        assert search_prompts([a, b], "SUMMAR") == [a]
        assert search_prompts([a, b], "lang") == [b]

    def test_search_is_literal(self):
        a = Prompt(title="What? (v2)", content="")
        b = Prompt(title="What v2", content="")
        assert search_prompts([a, b], "? (v2") == [a]
        assert search_prompts([a, b], ".*") == []

    def test_blank_query_returns_input(self):
        prompts = [Prompt(title="a"), Prompt(title="b")]
        assert search_prompts(prompts, "") is prompts
        assert search_prompts(prompts, "   ") is prompts
        assert search_prompts(prompts, None) is prompts

    def test_filter_and_semantics_case_insensitive(self):
        a = Prompt(title="a", tags=["x", "y"])
        b = Prompt(title="b", tags=["x"])
        assert filter_prompts_by_tags([a, b], ["X", "y"]) == [a]
        assert filter_prompts_by_tags([a, b], ["x"]) == [a, b]

    def test_filter_empty_selection(self):
        prompts = [Prompt(title="a")]
        assert filter_prompts_by_tags(prompts, []) is prompts


class TestSort:
    def test_newest_first(self):
        old = Prompt(title="old", created_at=1, updated_at=10)
        new = Prompt(title="new", created_at=1, updated_at=20)
        assert sort_prompts([old, new]) == [new, old]

    def test_ties_keep_original_order(self):
        a = Prompt(title="a", created_at=1, updated_at=5)
        b = Prompt(title="b", created_at=1, updated_at=5)
        c = Prompt(title="c", created_at=1, updated_at=9)
        assert [p.title for p in sort_prompts([a, b, c])] == ["c", "a", "b"]

    def test_process_prompts(self):
        a = Prompt(title="alpha", tags=["t"], created_at=1, updated_at=1)
        b = Prompt(title="alpha two", tags=["t"], created_at=1, updated_at=2)
        c = Prompt(title="beta", tags=["t"], created_at=1, updated_at=3)
        assert process_prompts([a, b, c], "alpha", ["t"]) == [b, a]


class TestBatchCreate:
    def test_merge_skips_duplicates_within_batch(self, engine):
        items = [
            {"title": "Same", "content": "Body"},
            {"title": "Same", "content": "Body"},
        ]
        result = engine.batch_create(items, "merge")
        assert result.created == 1
        assert result.skipped == 1
        assert len(engine.list_prompts()) == 1

    def test_merge_twice_keeps_one(self, engine):
        engine.batch_create([{"title": "T", "content": "C"}])
        result = engine.batch_create([{"title": "T", "content": "C"}])
        assert result.created == 0
        assert result.skipped == 1
        assert len(engine.list_prompts()) == 1

    def test_replace(self, engine):
        _greeting(engine)
        items = [{"title": "T", "content": "C"}, {"title": "U"}]
        result = engine.batch_create(items, "replace")
        assert result.created == 2
        assert [p.title for p in engine.list_prompts()] == ["T", "U"]

    def test_replace_twice_keeps_final_import(self, engine):
        engine.batch_create([{"title": "T", "content": "C"}], "replace")
        engine.batch_create([{"title": "T", "content": "C"}], "replace")
        assert len(engine.list_prompts()) == 1

    def test_invalid_items_reported(self, engine):
        items = [{"title": "ok"}, {"content": "no title"}, "junk", {"title": "x" * 201}]
        result = engine.batch_create(items)
        assert result.created == 1
        assert result.skipped == 3
        assert result.errors[0] == "Prompt 2: Title is required"
        assert result.errors[1] == "Prompt 3: Invalid prompt object"
        assert result.errors[2].startswith("Prompt 4: ")

    def test_fresh_ids_and_timestamps(self, engine):
        result = engine.batch_create(
            [{"id": "keep-me", "title": "T", "createdAt": 1000, "updatedAt": 2000}]
        )
        assert result.created == 1
        prompt = engine.list_prompts()[0]
        assert prompt.id != "keep-me"
        assert prompt.created_at == 1000
        assert prompt.updated_at > 2000

    @pytest.mark.parametrize("created_at", [1e300, float("inf"), float("nan"), -1])
    def test_out_of_range_created_at_falls_back_to_now(self, engine, created_at):
        engine.batch_create([{"title": "T", "createdAt": created_at}])
        prompt = engine.list_prompts()[0]
        assert 0 < prompt.created_at <= MAX_TIMESTAMP_MS
        assert prompt.updated_at >= prompt.created_at
        assert "## T" in export_to_markdown(engine.storage.load())

    def test_no_write_when_nothing_created(self, engine, storage):
        engine.batch_create([{"content": "x"}])
        assert storage.get_item("promptboard:v1") is None
        assert storage.get_preferences().change_counter == 0

    def test_counter_incremented_once(self, engine, storage):
        engine.batch_create([{"title": "a"}, {"title": "b"}, {"title": "c"}])
        assert storage.get_preferences().change_counter == 1

    def test_unknown_mode(self, engine):
        with pytest.raises(PromptboardError) as exc_info:
            engine.batch_create([], "upsert")
        assert exc_info.value.code == ErrorCode.VALIDATION


class TestTemplateValues:
    def test_variables_with_auto(self, engine, storage):
        prompt = _greeting(engine)
        storage.set_prompt_variables(prompt.id, {"name": "Ada", "today": "stale"})
        values = engine.get_variables_with_auto(prompt.id, now=NOW)
        assert values == {"name": "Ada", "today": "2026-10-19", "now": "2026-10-19 14:05"}

    def test_insert_and_copy_caches_values(self, engine, storage):
        prompt = engine.create_prompt({"title": "T", "content": "Hi {{name}} on {{today}}"})
        copied = []

        def copy(text):
            copied.append(text)
            return True

        result = engine.insert_and_copy(
            prompt.id, {"name": "Ada", "today": "ignored"}, copy, now=NOW
        )
        assert result.text == "Hi Ada on 2026-10-19"
        assert copied == ["Hi Ada on 2026-10-19"]
        assert storage.get_prompt_variables(prompt.id) == {"name": "Ada"}

    def test_insert_merges_with_previous_cache(self, engine, storage):
        prompt = engine.create_prompt({"title": "T", "content": "{{a}} {{b}}"})
        storage.set_prompt_variables(prompt.id, {"a": "1", "b": "2"})
        engine.insert_and_copy(prompt.id, {"a": "9"}, lambda text: True)
        assert storage.get_prompt_variables(prompt.id) == {"a": "9", "b": "2"}

    def test_copy_failure_does_not_cache(self, engine, storage):
        prompt = engine.create_prompt({"title": "T", "content": "{{a}}"})
        with pytest.raises(PromptboardError) as exc_info:
            engine.insert_and_copy(prompt.id, {"a": "1"}, lambda text: False)
        assert exc_info.value.code == ErrorCode.COPY_FAILED
        assert storage.get_prompt_variables(prompt.id) == {}

    def test_detect_placeholders(self, engine):
        prompt = _greeting(engine)
        placeholders = engine.detect_placeholders(prompt.id)
        assert [p.name for p in placeholders] == ["name"]
        assert placeholders[0].default_value == "friend"

    def test_clear_all_variables(self, engine, storage):
        storage.set_prompt_variables("a", {"x": "1"})
        assert engine.clear_all_variables() == 1


class TestTagsAndStats:
    def test_all_tags(self):
        prompts = [
            Prompt(title="a", tags=["x", "y"]),
            Prompt(title="b", tags=["y"]),
            Prompt(title="c", tags=["w"]),
        ]
        assert get_all_tags(prompts) == [("y", 2), ("w", 1), ("x", 1)]

    def test_stats(self):
        prompts = [
            Prompt(title="a", tags=["x", "y"], created_at=10, updated_at=30),
            Prompt(title="b", tags=["y"], created_at=5, updated_at=50),
        ]
        stats = get_prompt_stats(prompts)
        assert stats["total_prompts"] == 2
        assert stats["total_tags"] == 2
        assert stats["average_tags_per_prompt"] == 1.5
        assert stats["oldest_prompt"] == 5
        assert stats["newest_prompt"] == 50

    def test_stats_empty(self):
        stats = get_prompt_stats([])
        assert stats["total_prompts"] == 0
        assert stats["oldest_prompt"] is None
