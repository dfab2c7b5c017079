import json
import threading

import pytest

import tubespark.app.services.library as library
from tubespark.app.services.records import EnrichedVideoRecord


@pytest.fixture
def library_file(tmp_path, monkeypatch):
    path = tmp_path / "library.json"
    monkeypatch.setattr(library, "LIBRARY_FILE", path)
    library.load_library()
    yield path
    library._reset()


def test_keywords_persist_across_reload(library_file):
    assert library.list_favorite_keywords() == []
    library.add_favorite_keyword(" lofi ")
    library.add_favorite_keyword("lofi")
    library.add_favorite_keyword("cats")

    library.load_library()
    assert library.list_favorite_keywords() == ["lofi", "cats"]

    assert library.remove_favorite_keyword("lofi") is True
    assert library.remove_favorite_keyword("lofi") is False
    library.load_library()
    assert library.list_favorite_keywords() == ["cats"]


def test_empty_keyword_rejected(library_file):
    with pytest.raises(ValueError):
        library.add_favorite_keyword("   ")


def test_bookmarks_are_independent_of_keywords(library_file):
    record = EnrichedVideoRecord(id="A", title="Video A", view_count=10, subscriber_count=5, virality_ratio=200.0)
    entry = library.add_bookmark(record)
    assert entry["viralityRatio"] == 200.0
    library.add_favorite_keyword("lofi")

    library.load_library()
    assert [b["id"] for b in library.list_bookmarks()] == ["A"]
    assert library.list_favorite_keywords() == ["lofi"]

    stored = json.loads(library_file.read_text(encoding="utf-8"))
    assert set(stored) == {library.FAVORITE_KEYWORDS_KEY, library.BOOKMARKED_VIDEOS_KEY}

    assert library.remove_bookmark("A") is True
    assert library.remove_bookmark("A") is False
    library.load_library()
    assert library.list_bookmarks() == []
    assert library.list_favorite_keywords() == ["lofi"]


def test_unreadable_file_loads_empty(library_file):
    library_file.write_text("{not json", encoding="utf-8")
    library.load_library()
    assert library.list_favorite_keywords() == []
    assert library.list_bookmarks() == []


def test_writes_happen_under_lock_and_replace_the_file(library_file, monkeypatch):
    held = []
    snapshot = library._snapshot

    def recording_snapshot():
        held.append(library.LIBRARY_LOCK.locked())
        return snapshot()

    monkeypatch.setattr(library, "_snapshot", recording_snapshot)
    library.add_favorite_keyword("lofi")
    library.add_bookmark(EnrichedVideoRecord(id="A"))
    library.remove_favorite_keyword("lofi")
    library.persist_library()

    assert held == [True, True, True, True]
    assert [p.name for p in library_file.parent.iterdir()] == ["library.json"]


def test_concurrent_adds_all_reach_the_file(library_file):
    keywords = [f"kw{i}" for i in range(40)]
    threads = [threading.Thread(target=library.add_favorite_keyword, args=(kw,)) for kw in keywords]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    stored = json.loads(library_file.read_text(encoding="utf-8"))
    assert sorted(stored[library.FAVORITE_KEYWORDS_KEY]) == sorted(keywords)
