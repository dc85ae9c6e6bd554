"""Tests for MemoryConsolidator retention, merging and ceilings."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from mindloop.consolidation import MemoryConsolidator
from mindloop.types import (
    CognitiveLogEntry,
    ConceptNode,
    ConceptRelation,
    EpisodicMemory,
    utc_now,
)

NOW = utc_now()


def days_ago(n):
    return NOW - timedelta(days=n)


@pytest.fixture
def consolidator(storage):
    return MemoryConsolidator(storage, now_fn=lambda: NOW)


class TestRun:
    @pytest.mark.asyncio
    async def test_retention_windows(self, storage, consolidator):
        storage.save_log_entry(CognitiveLogEntry("note", "old", created_at=days_ago(8)))
        storage.save_log_entry(CognitiveLogEntry("note", "fresh", created_at=days_ago(6)))
        storage.save_episode(EpisodicMemory("ancient", created_at=days_ago(31)))
        storage.save_episode(EpisodicMemory("recent", created_at=days_ago(29)))

        report = await consolidator.run()

        assert report.ok
        assert report.logs_deleted == 1
        assert report.episodes_deleted == 1
        assert [e.description for e in storage.get_recent_log_entries()] == ["fresh"]

    @pytest.mark.asyncio
    async def test_weak_relations_removed(self, storage, consolidator):
        a = ConceptNode(name="a")
        b = ConceptNode(name="b")
        storage.save_concept(a)
        storage.save_concept(b)
        storage.save_relation(ConceptRelation(a.id, b.id, "weak", strength=2))
        storage.save_relation(ConceptRelation(a.id, b.id, "floor", strength=3))

        report = await consolidator.run()

        assert report.relations_deleted == 1
        assert [r.relation_type for r in storage.get_relations()] == ["floor"]

    @pytest.mark.asyncio
    async def test_duplicate_concepts_merged(self, storage, consolidator):
        weak = ConceptNode(name="Entropy", confidence=4, encounter_count=2)
        strong = ConceptNode(name=" entropy ", confidence=8, encounter_count=3)
        other = ConceptNode(name="order")
        for c in (weak, strong, other):
            storage.save_concept(c)
        storage.save_relation(ConceptRelation(weak.id, other.id, "opposes", strength=6))

        report = await consolidator.run()

        assert report.concepts_merged == 1
        concepts = {c.id: c for c in storage.get_all_concepts()}
        assert weak.id not in concepts
        assert concepts[strong.id].encounter_count == 5
        relation = storage.get_relations()[0]
        assert relation.from_id == strong.id

    @pytest.mark.asyncio
    async def test_merge_drops_self_loops_and_parallel_edges(self, storage, consolidator):
        weak = ConceptNode(name="Entropy", confidence=4)
        strong = ConceptNode(name=" entropy ", confidence=8)
        other = ConceptNode(name="order")
        for c in (weak, strong, other):
            storage.save_concept(c)
        storage.save_relation(ConceptRelation(weak.id, strong.id, "related_to"))
        storage.save_relation(ConceptRelation(weak.id, other.id, "opposes", strength=6))
        storage.save_relation(ConceptRelation(strong.id, other.id, "opposes", strength=8))

        report = await consolidator.run()

        assert report.concepts_merged == 1
        relations = storage.get_relations()
        assert all(r.from_id != r.to_id for r in relations)
        assert len(relations) == 1
        assert relations[0].from_id == strong.id
        assert relations[0].to_id == other.id
        assert relations[0].strength == 8

    @pytest.mark.asyncio
    async def test_second_run_deletes_nothing(self, storage, consolidator):
        storage.save_log_entry(CognitiveLogEntry("note", "old", created_at=days_ago(10)))
        storage.save_concept(ConceptNode(name="x"))
        storage.save_concept(ConceptNode(name="X"))
        await consolidator.run()
        report = await consolidator.run()
        assert report.to_dict()["logs_deleted"] == 0
        assert report.concepts_merged == 0

    @pytest.mark.asyncio
    async def test_failing_step_does_not_block_others(self, storage):
        storage.save_episode(EpisodicMemory("ancient", created_at=days_ago(40)))
        storage.delete_logs_before = MagicMock(side_effect=RuntimeError("locked"))
        report = await MemoryConsolidator(storage, now_fn=lambda: NOW).run()
        assert not report.ok
        assert "logs" in report.errors
        assert report.episodes_deleted == 1


class TestEnforceLimits:
    @pytest.mark.asyncio
    async def test_trims_to_ceiling_oldest_first(self, storage):
        for i in range(5):
            storage.save_log_entry(
                CognitiveLogEntry("note", f"entry {i}", created_at=days_ago(5 - i))
            )
        consolidator = MemoryConsolidator(storage, max_logs=3, now_fn=lambda: NOW)

        deleted = await consolidator.enforce_limits()

        assert deleted["cognitive_log"] == 2
        remaining = {e.description for e in storage.get_recent_log_entries()}
        assert remaining == {"entry 2", "entry 3", "entry 4"}
        assert (await consolidator.enforce_limits())["cognitive_log"] == 0

    @pytest.mark.asyncio
    async def test_concept_eviction_drops_dangling_relations(self, storage):
        stale = ConceptNode(name="stale", last_reinforced=days_ago(3))
        fresh = ConceptNode(name="fresh", last_reinforced=days_ago(1))
        storage.save_concept(stale)
        storage.save_concept(fresh)
        storage.save_relation(ConceptRelation(stale.id, fresh.id, "leads_to"))
        consolidator = MemoryConsolidator(storage, max_concepts=1, now_fn=lambda: NOW)

        deleted = await consolidator.enforce_limits()

        assert deleted["concepts"] == 1
        assert deleted["orphan_relations"] == 1
        assert storage.get_concept_by_name("fresh") is not None
        assert storage.get_relations() == []

    @pytest.mark.asyncio
    async def test_weakest_relations_evicted_first(self, storage):
        a, b = ConceptNode(name="a"), ConceptNode(name="b")
        storage.save_concept(a)
        storage.save_concept(b)
        for strength in (9, 4, 7):
            storage.save_relation(ConceptRelation(a.id, b.id, f"s{strength}", strength=strength))
        consolidator = MemoryConsolidator(storage, max_relations=2, now_fn=lambda: NOW)
        await consolidator.enforce_limits()
        assert sorted(r.strength for r in storage.get_relations()) == [7, 9]

    @pytest.mark.asyncio
    async def test_stats(self, storage):
        storage.save_concept(ConceptNode(name="only"))
        stats = await MemoryConsolidator(storage, max_concepts=4).stats()
        assert stats["concepts"] == {"count": 1, "limit": 4, "utilization": 0.25}
