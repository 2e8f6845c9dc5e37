"""Tests for dossier numbering."""

import re
import threading
from datetime import date
from unittest.mock import patch

import pytest

from contracts import ConflictError, Dossier, DuplicateRecordError
from lifecycle import SequenceAllocator
from store import Collections, MemoryStore, prepare_store, to_document


DAY = date(2025, 1, 15)


@pytest.fixture
def store():
    return prepare_store(MemoryStore())


@pytest.fixture
def allocator(store):
    return SequenceAllocator(store, prefix="DOS", max_attempts=3)


def stored(store, number):
    store.insert(Collections.DOSSIERS, to_document(Dossier(number=number)))


class TestAllocate:
    """Test number allocation."""

    def test_sequential_numbers_per_day(self, allocator):
        assert allocator.allocate(DAY) == "DOS-20250115-0001"
        assert allocator.allocate(DAY) == "DOS-20250115-0002"

    def test_new_day_restarts(self, allocator):
        allocator.allocate(DAY)
        assert allocator.allocate(date(2025, 1, 16)) == "DOS-20250116-0001"

    def test_counter_seeded_from_existing_numbers(self, store, allocator):
        stored(store, "DOS-20250115-0007")
        stored(store, "DOS-20250114-0042")
        assert allocator.allocate(DAY) == "DOS-20250115-0008"

    def test_highest_sequence_ignores_other_prefixes(self, store, allocator):
        stored(store, "CAB-20250115-0009")
        stored(store, "DOS-20250115-0003")
        assert allocator.highest_sequence(DAY) == 3

    def test_fallback_number_shape(self, allocator):
        assert re.match(r"^DOS-\d{13}[0-9a-f]{4}$", allocator.fallback_number())


class TestInsertWithNumber:
    """Test inserting dossiers under allocated numbers."""

    def test_assigns_distinct_numbers(self, store, allocator):
        first = allocator.insert_with_number(Dossier(title="A"), DAY)
        second = allocator.insert_with_number(Dossier(title="B"), DAY)
        assert first.number == "DOS-20250115-0001"
        assert second.number == "DOS-20250115-0002"
        assert store.get(Collections.DOSSIERS, first.id)["number"] == first.number

    def test_retries_on_collision(self, store, allocator):
        stored(store, "DOS-20250115-0001")
        with patch.object(store, "increment_counter", side_effect=[1, 2]):
            dossier = allocator.insert_with_number(Dossier(title="A"), DAY)
        assert dossier.number == "DOS-20250115-0002"

    def test_falls_back_after_exhaustion(self, store, allocator):
        stored(store, "DOS-20250115-0001")
        with patch.object(store, "increment_counter", return_value=1) as counter:
            dossier = allocator.insert_with_number(Dossier(title="A"), DAY)
        assert counter.call_count == 3
        assert re.match(r"^DOS-\d{13}[0-9a-f]{4}$", dossier.number)
        assert store.count(Collections.DOSSIERS) == 2

    def test_conflict_when_fallback_collides(self, store, allocator):
        stored(store, "DOS-20250115-0001")
        with patch.object(store, "increment_counter", return_value=1):
            with patch.object(allocator, "fallback_number", return_value="DOS-20250115-0001"):
                with pytest.raises(ConflictError):
                    allocator.insert_with_number(Dossier(title="A"), DAY)

    def test_preset_number_collision(self, store, allocator):
        stored(store, "DOS-20250115-0001")
        with pytest.raises(ConflictError, match="already in use"):
            allocator.insert_with_number(Dossier(number="DOS-20250115-0001"), DAY)

    def test_other_duplicates_are_not_retried(self, store, allocator):
        existing = allocator.insert_with_number(Dossier(title="A"), DAY)
        with pytest.raises(DuplicateRecordError) as exc:
            allocator.insert_with_number(Dossier(id=existing.id, title="B"), DAY)
        assert exc.value.field == "id"

    def test_concurrent_inserts_get_unique_numbers(self, store, allocator):
        numbers = []
        lock = threading.Lock()

        def create(i):
            dossier = allocator.insert_with_number(Dossier(title=f"D{i}"), DAY)
            with lock:
                numbers.append(dossier.number)

        threads = [threading.Thread(target=create, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(numbers) == [f"DOS-20250115-{i:04d}" for i in range(1, 21)]
