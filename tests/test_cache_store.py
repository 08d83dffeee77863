import os

from storage.cache_store import CacheStore

from models import CacheEntry

SIG = "a" * 64
OTHER_SIG = "b" * 64


def _entry(signature: str = SIG) -> CacheEntry:
    return CacheEntry(
        signature=signature,
        path=["NAME", "character_names", "name1"],
        names=["Alaric"],
        localisation={"HUM_CHARACTER_NAMES_NAME1_ALARIC": "Alaric"},
    )


def test_store_then_lookup(tmp_path):
    cache = CacheStore(str(tmp_path / "cache"))
    assert cache.lookup(SIG) is None

    assert cache.store(SIG, _entry()) is True

    entry = cache.lookup(SIG)
    assert entry is not None
    assert entry.names == ["Alaric"]
    assert entry.created_at > 0
    assert SIG in cache
    assert len(cache) == 1


def test_existing_entry_is_not_overwritten(tmp_path):
    cache = CacheStore(str(tmp_path))
    cache.store(SIG, _entry())
    replacement = CacheEntry(
        signature=SIG, path=["X"], names=["Other"], localisation={"K_OTHER": "Other"}
    )

    assert cache.store(SIG, replacement) is True
    assert cache.lookup(SIG).names == ["Alaric"]


def test_corrupted_entry_is_a_miss_and_can_be_replaced(tmp_path):
    cache = CacheStore(str(tmp_path))
    with open(tmp_path / f"{SIG}.json", "w", encoding="utf-8") as f:
        f.write('{"signature": "aaa", "names": [')
    cache.store(OTHER_SIG, _entry(OTHER_SIG))

    assert cache.lookup(SIG) is None
    assert cache.lookup(OTHER_SIG) is not None

    assert cache.store(SIG, _entry()) is True
    assert cache.lookup(SIG).names == ["Alaric"]


def test_entry_filed_under_wrong_signature_is_a_miss(tmp_path):
    cache = CacheStore(str(tmp_path))
    cache.store(OTHER_SIG, _entry(OTHER_SIG))
    os.replace(tmp_path / f"{OTHER_SIG}.json", tmp_path / f"{SIG}.json")

    assert cache.lookup(SIG) is None


def test_failed_publish_leaves_no_entry(tmp_path, monkeypatch):
    cache = CacheStore(str(tmp_path))

    def boom(*_a, **_k):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", boom)

    assert cache.store(SIG, _entry()) is False
    monkeypatch.undo()
    assert cache.lookup(SIG) is None
    assert os.listdir(tmp_path) == []


def test_clear_removes_everything(tmp_path):
    cache_dir = tmp_path / "cache"
    cache = CacheStore(str(cache_dir))
    cache.store(SIG, _entry())
    cache.clear()

    assert len(cache) == 0
    assert cache_dir.is_dir()


def test_clear_keeps_unrelated_files(tmp_path):
    cache = CacheStore(str(tmp_path))
    cache.store(SIG, _entry())
    (tmp_path / "file_structure.txt").write_text("N = { a = { } }", encoding="utf-8")
    (tmp_path / "notes.json").write_text("{}", encoding="utf-8")
    (tmp_path / f".{SIG[:12]}.x1y2.tmp").write_text("partial", encoding="utf-8")

    cache.clear()

    assert sorted(os.listdir(tmp_path)) == ["file_structure.txt", "notes.json"]
