"""
Tests for the draft store contract.

The `store` fixture is parametrized over the JSON file and SQL backends.
"""

import asyncio
import json

import pytest

from trailkeeper.core.clock import MS_PER_DAY, compute_expiry
from trailkeeper.core.db.engine import check_database_connection, create_engine_for
from trailkeeper.core.exceptions import ConflictError, StorageFailureError, StorageTimeoutError
from trailkeeper.modules.draft_trails import (
    DraftStatus,
    DraftTrail,
    JsonFileDraftStore,
    LookupOutcome,
)
from tests.conftest import TTL_SECONDS
from tests.credentials import T0_MS


def make_draft(code="REF-001", email="alice@example.com", owner="U1", created_at=T0_MS, **fields) -> DraftTrail:
    return DraftTrail(
        reference_code=code,
        owner_id=owner,
        owner_email=email,
        payload=fields.pop("payload", {"step": 1}),
        created_at=created_at,
        expires_at=compute_expiry(created_at, TTL_SECONDS),
        **fields,
    )


EXPIRES_AT = T0_MS + 7 * MS_PER_DAY


class TestKeyedOperations:

    @pytest.mark.asyncio
    async def test_create_then_get(self, store):
        created = await store.create(make_draft(payload={"nested": {"a": [1, 2]}}))

        lookup = await store.get("REF-001")

        assert created.days_remaining == 7
        assert lookup.outcome == LookupOutcome.FOUND
        assert lookup.record.payload == {"nested": {"a": [1, 2]}}
        assert lookup.record.status == DraftStatus.DRAFT
        assert lookup.record.is_paid is False
        assert lookup.record.paid_at is None
        assert lookup.record.expires_at == EXPIRES_AT

    @pytest.mark.asyncio
    async def test_unknown_code(self, store):
        assert (await store.get("NOPE")).outcome == LookupOutcome.NOT_FOUND

    @pytest.mark.asyncio
    async def test_create_replaces_same_code(self, store, clock):
        await store.create(make_draft(payload={"v": 1}))
        clock.advance(days=1)
        await store.create(make_draft(payload={"v": 2}, created_at=clock.now_ms()))

        lookup = await store.get("REF-001")

        assert await store.count() == 1
        assert lookup.record.payload == {"v": 2}
        assert lookup.record.expires_at == EXPIRES_AT + MS_PER_DAY
        assert lookup.record.version == 2

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, store):
        await store.create(make_draft())

        assert await store.delete("REF-001") is True
        assert await store.delete("REF-001") is False
        assert (await store.get("REF-001")).outcome == LookupOutcome.NOT_FOUND


class TestExpiry:

    @pytest.mark.asyncio
    async def test_live_until_expiry_instant(self, store, clock):
        await store.create(make_draft())

        clock.set(EXPIRES_AT - 1)
        before = await store.get("REF-001")
        clock.set(EXPIRES_AT)
        at = await store.get("REF-001")

        assert before.outcome == LookupOutcome.FOUND
        assert before.record.days_remaining == 1
        assert at.outcome == LookupOutcome.FOUND
        assert at.record.days_remaining == 0

    @pytest.mark.asyncio
    async def test_expired_lookup_is_gone_then_not_found(self, store, clock):
        await store.create(make_draft())
        clock.set(EXPIRES_AT + 1)

        first = await store.get("REF-001")
        second = await store.get("REF-001")

        assert first.outcome == LookupOutcome.GONE
        assert first.record.expires_at == EXPIRES_AT
        assert second.outcome == LookupOutcome.NOT_FOUND
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_listings_sweep_expired(self, store, clock):
        await store.create(make_draft("OLD"))
        clock.advance(days=3)
        await store.create(make_draft("NEW", created_at=clock.now_ms()))
        clock.set(EXPIRES_AT + 1)

        listed = await store.list_all()

        assert [d.reference_code for d in listed] == ["NEW"]
        assert listed[0].days_remaining == 3
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_sweep_expired_reports_removed(self, store, clock):
        await store.create(make_draft("A"))
        await store.create(make_draft("B"))
        clock.advance(days=1)
        await store.create(make_draft("C", created_at=clock.now_ms()))
        clock.set(EXPIRES_AT + 1)

        assert await store.sweep_expired() == 2
        assert await store.sweep_expired() == 0
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_conditional_purge_spares_recreated_draft(self, store, clock):
        await store.create(make_draft(payload={"v": 1}))
        clock.set(EXPIRES_AT + 1)
        await store.create(make_draft(payload={"v": 2}, created_at=clock.now_ms()))

        assert await store._remove_if_expired("REF-001", clock.now_ms()) is False
        assert (await store.get("REF-001")).record.payload == {"v": 2}

    @pytest.mark.asyncio
    async def test_update_of_expired_draft_is_gone(self, store, clock):
        await store.create(make_draft())
        clock.set(EXPIRES_AT + 1)

        lookup = await store.update_status("REF-001", DraftStatus.PAYMENT_PENDING)

        assert lookup.outcome == LookupOutcome.GONE
        assert await store.count() == 0


class TestListings:

    @pytest.mark.asyncio
    async def test_list_by_owner(self, store, clock):
        await store.create(make_draft("A1"))
        clock.advance(ms=1)
        await store.create(make_draft("B1", email="bob@example.com", owner="U2", created_at=clock.now_ms()))
        clock.advance(ms=1)
        await store.create(make_draft("A2", created_at=clock.now_ms()))

        mine = await store.list_by_owner("alice@example.com")

        assert [d.reference_code for d in mine] == ["A1", "A2"]
        assert await store.list_by_owner("nobody@example.com") == []
        assert len(await store.list_all()) == 3


class TestUpdates:

    @pytest.mark.asyncio
    async def test_update_status_touches_only_status(self, store):
        await store.create(make_draft())

        lookup = await store.update_status("REF-001", DraftStatus.PAYMENT_COMPLETED)

        assert lookup.outcome == LookupOutcome.FOUND
        assert lookup.record.status == DraftStatus.PAYMENT_COMPLETED
        assert lookup.record.payload == {"step": 1}
        assert lookup.record.expires_at == EXPIRES_AT
        assert lookup.record.version == 2

    @pytest.mark.asyncio
    async def test_update_paid_stamps_paid_at(self, store, clock):
        await store.create(make_draft())
        clock.advance(seconds=30)

        paid = await store.update_paid("REF-001", True)
        unpaid = await store.update_paid("REF-001", False)

        assert paid.record.is_paid is True
        assert paid.record.paid_at == T0_MS + 30_000
        assert unpaid.record.is_paid is False
        assert unpaid.record.paid_at is None

    @pytest.mark.asyncio
    async def test_update_payload(self, store):
        await store.create(make_draft())

        lookup = await store.update_payload("REF-001", ["replaced"])

        assert (await store.get("REF-001")).record.payload == ["replaced"]
        assert lookup.record.status == DraftStatus.DRAFT

    @pytest.mark.asyncio
    async def test_update_unknown_code(self, store):
        lookup = await store.update_paid("NOPE", True)

        assert lookup.outcome == LookupOutcome.NOT_FOUND
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_stale_version_is_rejected(self, store):
        await store.create(make_draft())
        await store.update_payload("REF-001", {"step": 2})

        with pytest.raises(ConflictError):
            await store._apply("REF-001", {"is_paid": True}, expected_version=1)

        assert (await store.get("REF-001")).record.is_paid is False


class TestJsonFileLayout:

    @pytest.mark.asyncio
    async def test_versioned_document(self, file_store, data_file):
        await file_store.create(make_draft())

        doc = json.loads(data_file.read_text(encoding="utf-8"))

        assert doc["schemaVersion"] == 1
        assert doc["draftTrails"][0]["referenceCode"] == "REF-001"
        assert doc["draftTrails"][0]["trailData"] == {"step": 1}
        assert "daysRemaining" not in doc["draftTrails"][0]
        assert not data_file.with_name(data_file.name + ".tmp").exists()

    @pytest.mark.asyncio
    async def test_legacy_list_is_read_and_upgraded(self, file_store, data_file):
        data_file.parent.mkdir(parents=True)
        legacy = make_draft().to_document()
        legacy.pop("version")
        data_file.write_text(json.dumps([legacy]), encoding="utf-8")

        lookup = await file_store.get("REF-001")
        await file_store.update_paid("REF-001", True)

        assert lookup.outcome == LookupOutcome.FOUND
        assert lookup.record.version == 1
        assert json.loads(data_file.read_text(encoding="utf-8"))["schemaVersion"] == 1

    @pytest.mark.asyncio
    async def test_missing_file_is_empty(self, file_store, data_file):
        assert await file_store.list_all() == []
        assert not data_file.exists()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "content",
        ["{not json", '{"schemaVersion": 99, "draftTrails": []}', '[{"referenceCode": "X"}]'],
    )
    async def test_unreadable_file_is_storage_failure(self, file_store, data_file, content):
        data_file.parent.mkdir(parents=True)
        data_file.write_text(content, encoding="utf-8")

        with pytest.raises(StorageFailureError):
            await file_store.get("REF-001")

    @pytest.mark.asyncio
    async def test_unwritable_location_is_storage_failure(self, tmp_path, clock):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory", encoding="utf-8")
        store = JsonFileDraftStore(str(blocker / "draftTrails.json"), clock)

        with pytest.raises(StorageFailureError):
            await store.create(make_draft())

    @pytest.mark.asyncio
    async def test_shared_file_between_instances(self, data_file, clock):
        writer = JsonFileDraftStore(str(data_file), clock)
        reader = JsonFileDraftStore(str(data_file), clock)

        await writer.create(make_draft())

        assert (await reader.get("REF-001")).outcome == LookupOutcome.FOUND


class SlowStore(JsonFileDraftStore):
    async def _fetch(self, code):
        await asyncio.sleep(1)
        return await super()._fetch(code)


@pytest.mark.asyncio
async def test_slow_backend_times_out(data_file, clock):
    store = SlowStore(str(data_file), clock, timeout_seconds=0.05)

    with pytest.raises(StorageTimeoutError) as exc_info:
        await store.get("REF-001")

    assert exc_info.value.status_code == 503
    assert exc_info.value.kind == "storage_timeout"


@pytest.mark.asyncio
async def test_concurrent_writes_keep_every_record(file_store):
    await asyncio.gather(*(file_store.create(make_draft(f"REF-{i}")) for i in range(20)))

    assert await file_store.count() == 20


@pytest.mark.asyncio
async def test_database_connection_check():
    engine = create_engine_for("sqlite+aiosqlite:///:memory:")

    assert await check_database_connection(engine) is True

    await engine.dispose()


class PausedFetchStore(JsonFileDraftStore):
    """Holds every read until `release` is set."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fetched = asyncio.Event()
        self.release = asyncio.Event()

    async def _fetch(self, code):
        record = await super()._fetch(code)
        self.fetched.set()
        await self.release.wait()
        return record


@pytest.mark.asyncio
async def test_lookup_of_expired_draft_does_not_purge_concurrent_recreate(data_file, clock):
    store = PausedFetchStore(str(data_file), clock)
    await store.create(make_draft(payload={"v": 1}))
    clock.set(EXPIRES_AT + 1)

    lookup_task = asyncio.create_task(store.get("REF-001"))
    await store.fetched.wait()
    await store.create(make_draft(payload={"v": 2}, created_at=clock.now_ms()))
    store.release.set()
    stale = await lookup_task

    assert stale.outcome == LookupOutcome.GONE
    fresh = await store.get("REF-001")
    assert fresh.outcome == LookupOutcome.FOUND
    assert fresh.record.payload == {"v": 2}
