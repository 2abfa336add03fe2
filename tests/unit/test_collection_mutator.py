"""Unit tests for optimistic entity insert/remove."""

import asyncio
from typing import Any

import pytest

from eventforms.cache.store import DocumentCache
from eventforms.models.entities import Person
from eventforms.remote.memory import InMemoryRemoteStore
from eventforms.sync.collection import CollectionMutator
from eventforms.sync.field import FieldState
from eventforms.sync.registry import FieldSyncRegistry


def ids(cache: DocumentCache, section_id: str) -> list[str]:
    return [entry["id"] for entry in cache.require("evt-1").document.section(section_id)]


NEW_PERSON = {"name": "Riley Chen", "role": "witness"}


class TestInsert:
    @pytest.mark.asyncio
    async def test_provisional_entity_is_replaced_in_place(
        self, cache: DocumentCache, slow_remote: InMemoryRemoteStore, seeded: Any
    ) -> None:
        slow_remote.seed(seeded)
        mutator = CollectionMutator(cache, slow_remote, provisional_prefix="tmp-")

        task = asyncio.create_task(mutator.insert("evt-1", "persons", NEW_PERSON))
        await asyncio.sleep(0.01)

        pending = ids(cache, "persons")
        assert pending[0] == "p-1"
        assert pending[1].startswith("tmp-")
        assert mutator.is_provisional(pending[1])

        result = await task

        assert result.ok is True
        assert result.entity is not None
        assert result.entity["id"].startswith("persons-")
        assert ids(cache, "persons") == ["p-1", result.entity["id"]]
        assert cache.get_entity("evt-1", "persons", result.entity["id"]) == {
            "id": result.entity["id"],
            **NEW_PERSON,
        }

    @pytest.mark.asyncio
    async def test_client_supplied_id_is_not_sent(
        self, cache: DocumentCache, remote: InMemoryRemoteStore, seeded: Any
    ) -> None:
        mutator = CollectionMutator(cache, remote)

        await mutator.insert("evt-1", "persons", {"id": "mine", **NEW_PERSON})

        _, _, (section_id, payload) = remote.calls_for("create_entity")[0]
        assert section_id == "persons"
        assert payload == NEW_PERSON

    @pytest.mark.asyncio
    async def test_model_payload(
        self, cache: DocumentCache, remote: InMemoryRemoteStore, seeded: Any
    ) -> None:
        mutator = CollectionMutator(cache, remote)

        result = await mutator.insert(
            "evt-1", "persons", Person(id="draft", name="Alex Park", role="employee")
        )

        assert result.ok is True
        stored = remote.stored("evt-1").section("persons")  # type: ignore[union-attr]
        assert stored[-1]["name"] == "Alex Park"
        assert stored[-1]["role"] == "employee"

    @pytest.mark.asyncio
    async def test_failed_create_removes_provisional_entity(
        self, cache: DocumentCache, remote: InMemoryRemoteStore, seeded: Any
    ) -> None:
        mutator = CollectionMutator(cache, remote)
        remote.fail_next("create_entity")

        result = await mutator.insert("evt-1", "persons", NEW_PERSON)

        assert result.ok is False
        assert result.error == "Failed to add to persons: create_entity failed with HTTP 503"
        assert ids(cache, "persons") == ["p-1"]
        assert mutator.section_error("evt-1", "persons") == result.error
        assert mutator.section_error("evt-1", "products") is None

    @pytest.mark.asyncio
    async def test_insert_into_uncached_document(
        self, cache: DocumentCache, remote: InMemoryRemoteStore
    ) -> None:
        mutator = CollectionMutator(cache, remote)
        result = await mutator.insert("evt-1", "persons", NEW_PERSON)
        assert result.error == "Event not found"
        assert remote.calls_for("create_entity") == []

    @pytest.mark.asyncio
    async def test_success_clears_previous_section_error(
        self, cache: DocumentCache, remote: InMemoryRemoteStore, seeded: Any
    ) -> None:
        mutator = CollectionMutator(cache, remote)
        remote.fail_next("create_entity")
        await mutator.insert("evt-1", "persons", NEW_PERSON)

        result = await mutator.insert("evt-1", "persons", NEW_PERSON)

        assert result.ok is True
        assert mutator.section_error("evt-1", "persons") is None


class TestRemove:
    @pytest.mark.asyncio
    async def test_remove(
        self, cache: DocumentCache, remote: InMemoryRemoteStore, seeded: Any
    ) -> None:
        mutator = CollectionMutator(cache, remote)

        result = await mutator.remove("evt-1", "products", "pr-1")

        assert result.ok is True
        assert result.entity is not None and result.entity["id"] == "pr-1"
        assert ids(cache, "products") == []
        assert remote.stored("evt-1").section("products") == []  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_failed_remove_restores_entity_at_its_index(
        self, cache: DocumentCache, remote: InMemoryRemoteStore, seeded: Any
    ) -> None:
        cache.insert_entity("evt-1", "persons", {"id": "p-2", "name": "Second", "role": "victim"})
        mutator = CollectionMutator(cache, remote)
        remote.fail_next("delete_entity")

        result = await mutator.remove("evt-1", "persons", "p-1")

        assert result.ok is False
        assert result.error == "Failed to remove from persons: delete_entity failed with HTTP 503"
        assert ids(cache, "persons") == ["p-1", "p-2"]
        assert cache.get_entity("evt-1", "persons", "p-1") == seeded.section("persons")[0]

    @pytest.mark.asyncio
    async def test_entity_already_gone_remotely_counts_as_removed(
        self, cache: DocumentCache, remote: InMemoryRemoteStore, seeded: Any
    ) -> None:
        cache.insert_entity("evt-1", "persons", {"id": "p-local", "name": "Local", "role": "victim"})
        mutator = CollectionMutator(cache, remote)

        result = await mutator.remove("evt-1", "persons", "p-local")

        assert result.ok is True
        assert ids(cache, "persons") == ["p-1"]

    @pytest.mark.asyncio
    async def test_unknown_entity(
        self, cache: DocumentCache, remote: InMemoryRemoteStore, seeded: Any
    ) -> None:
        mutator = CollectionMutator(cache, remote)
        result = await mutator.remove("evt-1", "persons", "ghost")
        assert result.error == "Item not found"
        assert remote.calls_for("delete_entity") == []

    @pytest.mark.asyncio
    async def test_remove_cancels_pending_field_writes(
        self, cache: DocumentCache, remote: InMemoryRemoteStore, seeded: Any
    ) -> None:
        registry = FieldSyncRegistry(cache, remote, debounce_ms=20)
        mutator = CollectionMutator(cache, remote, registry=registry)
        name = registry.get("evt-1", "sections.persons.p-1.name")
        name.update_value("Edited then removed")

        result = await mutator.remove("evt-1", "persons", "p-1")
        await asyncio.sleep(0.06)

        assert result.ok is True
        assert name.has_pending_timer is False
        assert remote.calls_for("update_entity") == []

    @pytest.mark.asyncio
    async def test_cannot_remove_while_create_is_in_flight(
        self, cache: DocumentCache, slow_remote: InMemoryRemoteStore, seeded: Any
    ) -> None:
        slow_remote.seed(seeded)
        mutator = CollectionMutator(cache, slow_remote, provisional_prefix="tmp-")

        task = asyncio.create_task(mutator.insert("evt-1", "persons", NEW_PERSON))
        await asyncio.sleep(0.01)
        provisional_id = ids(cache, "persons")[1]

        refused = await mutator.remove("evt-1", "persons", provisional_id)
        created = await task

        assert refused.error == "This item is still being created"
        assert created.ok is True
        assert len(ids(cache, "persons")) == 2
        assert slow_remote.calls_for("delete_entity") == []

    @pytest.mark.asyncio
    async def test_failed_remove_reports_discarded_edit(
        self, cache: DocumentCache, remote: InMemoryRemoteStore, seeded: Any
    ) -> None:
        registry = FieldSyncRegistry(cache, remote, debounce_ms=10_000)
        mutator = CollectionMutator(cache, remote, registry=registry)
        name = registry.get("evt-1", "sections.persons.p-1.name")
        name.update_value("Jordan Leigh")
        remote.fail_next("delete_entity")

        result = await mutator.remove("evt-1", "persons", "p-1")

        assert result.ok is False
        assert name.state == FieldState.IDLE
        assert name.error == "Unsaved changes to this item were discarded"
        assert cache.get_entity("evt-1", "persons", "p-1")["name"] == "Jordan Lee"  # type: ignore[index]
        assert remote.calls_for("update_entity") == []

    @pytest.mark.asyncio
    async def test_successful_remove_does_not_report_discarded_edit(
        self, cache: DocumentCache, remote: InMemoryRemoteStore, seeded: Any
    ) -> None:
        registry = FieldSyncRegistry(cache, remote, debounce_ms=10_000)
        mutator = CollectionMutator(cache, remote, registry=registry)
        name = registry.get("evt-1", "sections.persons.p-1.name")
        name.update_value("Jordan Leigh")

        result = await mutator.remove("evt-1", "persons", "p-1")

        assert result.ok is True
        assert name.error is None


class TestSectionIsolation:
    @pytest.mark.asyncio
    async def test_person_removal_leaves_products_untouched(
        self, cache: DocumentCache, remote: InMemoryRemoteStore, seeded: Any
    ) -> None:
        cache.insert_entity("evt-1", "persons", {"id": "p-2", "name": "Second", "role": "victim"})
        mutator = CollectionMutator(cache, remote)
        remote.fail_next("create_entity")
        await mutator.insert("evt-1", "products", {"name": "Wallet", "sku": "WL-1", "quantity": 1})
        products_error = mutator.section_error("evt-1", "products")
        products = cache.require("evt-1").document.section("products")
        assert products_error is not None

        removed = await mutator.remove("evt-1", "persons", "p-1")
        remote.fail_next("delete_entity")
        refused = await mutator.remove("evt-1", "persons", "p-2")

        assert removed.ok is True
        assert refused.ok is False
        assert mutator.section_error("evt-1", "persons") == refused.error
        assert mutator.section_error("evt-1", "products") == products_error
        assert cache.require("evt-1").document.section("products") == products


class TestEditsDuringCreate:
    @pytest.mark.asyncio
    async def test_edit_to_provisional_entity_reaches_server(
        self, cache: DocumentCache, slow_remote: InMemoryRemoteStore, seeded: Any
    ) -> None:
        slow_remote.seed(seeded)
        registry = FieldSyncRegistry(cache, slow_remote, debounce_ms=20)
        mutator = CollectionMutator(cache, slow_remote, registry=registry, provisional_prefix="tmp-")

        task = asyncio.create_task(
            mutator.insert("evt-1", "persons", {"name": "Jane", "role": "witness"})
        )
        await asyncio.sleep(0.01)
        provisional_id = ids(cache, "persons")[1]
        name = registry.get("evt-1", f"sections.persons.{provisional_id}.name")
        name.update_value("Janet")

        created = await task
        await name.wait_idle()

        assert created.ok is True and created.entity is not None
        entity_id = created.entity["id"]
        assert name.error is None
        assert name.path.entity_id == entity_id
        assert cache.get_entity("evt-1", "persons", entity_id)["name"] == "Janet"  # type: ignore[index]
        stored = slow_remote.stored("evt-1").section("persons")  # type: ignore[union-attr]
        assert stored[-1] == {"id": entity_id, "name": "Janet", "role": "witness"}

    @pytest.mark.asyncio
    async def test_edit_to_provisional_entity_fails_visibly_when_create_fails(
        self, cache: DocumentCache, slow_remote: InMemoryRemoteStore, seeded: Any
    ) -> None:
        slow_remote.seed(seeded)
        registry = FieldSyncRegistry(cache, slow_remote, debounce_ms=20)
        mutator = CollectionMutator(cache, slow_remote, registry=registry, provisional_prefix="tmp-")
        slow_remote.fail_next("create_entity")

        task = asyncio.create_task(
            mutator.insert("evt-1", "persons", {"name": "Jane", "role": "witness"})
        )
        await asyncio.sleep(0.01)
        name = registry.get("evt-1", f"sections.persons.{ids(cache, 'persons')[1]}.name")
        name.update_value("Janet")

        created = await task
        await name.wait_idle()

        assert created.ok is False
        assert name.error == "This item could not be created"
        assert ids(cache, "persons") == ["p-1"]
        assert slow_remote.calls_for("update_entity") == []

    @pytest.mark.asyncio
    async def test_remove_by_provisional_id_after_create(
        self, cache: DocumentCache, remote: InMemoryRemoteStore, seeded: Any
    ) -> None:
        mutator = CollectionMutator(cache, remote, provisional_prefix="tmp-")
        seen: list[str] = []

        def record_ids(snapshot: Any) -> None:
            seen.extend(entry["id"] for entry in snapshot.document.section("persons"))

        cache.subscribe("evt-1", record_ids)

        created = await mutator.insert("evt-1", "persons", NEW_PERSON)
        provisional_id = next(i for i in seen if i.startswith("tmp-"))
        result = await mutator.remove("evt-1", "persons", provisional_id)

        assert created.ok is True
        assert result.ok is True
        assert ids(cache, "persons") == ["p-1"]
