import pytest

from clipstash.actions import ClipboardActions
from clipstash.history import HistoryCache
from clipstash.models import PasteboardFormat
from clipstash.monitor import ClipboardMonitor


@pytest.fixture
def cache(storage):
    c = HistoryCache(storage, page_size=10)
    yield c
    c.close()


@pytest.fixture
def monitor(storage, pasteboard, executor):
    return ClipboardMonitor(storage, pasteboard, writer=pasteboard, executor=executor)


@pytest.fixture
def actions(storage, monitor, cache):
    return ClipboardActions(storage, monitor, cache)


def stored(storage, record):
    return record.with_updates(id=storage.insert(record))


class TestCopy:
    def test_copy_writes_and_promotes(self, actions, storage, cache, pasteboard, monitor, make_record):
        old = stored(storage, make_record("old", timestamp=100))
        stored(storage, make_record("new", timestamp=200))
        cache.reset_default()

        promoted = actions.copy(old)
        assert promoted.id == old.id
        assert promoted.timestamp > 200
        assert pasteboard.written == [(b"old", PasteboardFormat.STRING.value)]
        assert cache.rows[0].id == old.id
        assert storage.query()[0].id == old.id
        # The write is not captured as a new record
        assert monitor.check_clipboard() is False
        assert storage.total_count() == 2

    def test_copy_unsaved_record(self, actions, make_record, pasteboard):
        assert actions.copy(make_record("never stored")) is None
        assert pasteboard.written == []

    def test_copy_without_writer(self, storage, pasteboard, executor, cache, make_record):
        actions = ClipboardActions(storage, ClipboardMonitor(storage, pasteboard, executor=executor), cache)
        record = stored(storage, make_record("x", timestamp=100))
        assert actions.copy(record) is None
        assert storage.get(record.id).timestamp == 100


class TestDelete:
    def test_unassigned_record_deleted(self, actions, storage, cache, make_record):
        record = stored(storage, make_record("bye"))
        cache.reset_default()
        actions.delete(record)
        assert storage.get(record.id) is None
        assert cache.rows == ()

    def test_filed_record_only_unfiled(self, actions, storage, cache, make_record):
        record = stored(storage, make_record("keep", group=3))
        cache.reset_default()
        actions.delete(record)
        assert storage.get(record.id).group == -1
        assert cache.rows[0].group == -1
