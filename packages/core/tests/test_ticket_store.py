"""FileTicketStore 测试

覆盖列表过滤/排序、坏文件跳过、创建 ID 分配与冲突重试、部分更新语义、删除。
"""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from ticketflow.core.models import (
    Priority,
    SortField,
    SortOrder,
    TicketCreate,
    TicketQuery,
    TicketStatus,
    TicketUpdate,
)
from ticketflow.core.store import (
    FileTicketStore,
    TicketNotFoundError,
    TicketStoreError,
)


def _ids(tickets) -> list[str]:
    return [t.id for t in tickets]


class TestListTickets:
    async def test_lists_all_in_id_order(self, seeded_store: FileTicketStore):
        tickets = await seeded_store.list_tickets()
        assert _ids(tickets) == ["TICK-001", "TICK-002", "TICK-003"]

    async def test_filter_by_status(self, seeded_store: FileTicketStore):
        tickets = await seeded_store.list_tickets(TicketQuery(status=TicketStatus.BACKLOG))
        assert _ids(tickets) == ["TICK-002"]

    async def test_filters_are_conjunctive(self, seeded_store: FileTicketStore):
        tickets = await seeded_store.list_tickets(
            TicketQuery(project="Platform", assignee="bob")
        )
        assert _ids(tickets) == ["TICK-003"]

        tickets = await seeded_store.list_tickets(
            TicketQuery(project="Platform", priority=Priority.LOW)
        )
        assert tickets == []

    async def test_sort_by_priority(self, seeded_store: FileTicketStore):
        asc = await seeded_store.list_tickets(TicketQuery(sort=SortField.PRIORITY))
        assert [t.priority for t in asc] == [Priority.HIGH, Priority.MEDIUM, Priority.LOW]

        desc = await seeded_store.list_tickets(
            TicketQuery(sort=SortField.PRIORITY, order=SortOrder.DESC)
        )
        assert [t.priority for t in desc] == [Priority.LOW, Priority.MEDIUM, Priority.HIGH]

    async def test_sort_by_created_at_desc(self, seeded_store: FileTicketStore):
        tickets = await seeded_store.list_tickets(
            TicketQuery(sort=SortField.CREATED_AT, order=SortOrder.DESC)
        )
        assert _ids(tickets) == ["TICK-003", "TICK-002", "TICK-001"]

    async def test_sort_by_id_is_numeric(self, store: FileTicketStore, write_ticket):
        write_ticket("TICK-1000")
        write_ticket("TICK-999")
        write_ticket("TICK-002")
        tickets = await store.list_tickets()
        assert _ids(tickets) == ["TICK-002", "TICK-999", "TICK-1000"]

    async def test_sort_is_stable_for_ties(self, store: FileTicketStore, write_ticket):
        for ticket_id in ("TICK-001", "TICK-002", "TICK-003"):
            write_ticket(ticket_id, priority="medium")
        write_ticket("TICK-004", priority="high")

        tickets = await store.list_tickets(TicketQuery(sort=SortField.PRIORITY))
        assert _ids(tickets) == ["TICK-004", "TICK-001", "TICK-002", "TICK-003"]

    async def test_skips_unparseable_and_foreign_files(
        self, seeded_store: FileTicketStore, tickets_dir
    ):
        (tickets_dir / "TICK-004.md").write_text("no frontmatter here\n", encoding="utf-8")
        (tickets_dir / "README.md").write_text("# readme\n", encoding="utf-8")
        (tickets_dir / "TICK-005.md.swp").write_text("swap", encoding="utf-8")

        tickets = await seeded_store.list_tickets()
        assert _ids(tickets) == ["TICK-001", "TICK-002", "TICK-003"]


class TestGetTicket:
    async def test_get_existing(self, seeded_store: FileTicketStore):
        ticket = await seeded_store.get_ticket("TICK-001")
        assert ticket.title == "Wire up auth"
        assert ticket.assignee == "alice"

    async def test_get_missing_raises_not_found(self, store: FileTicketStore):
        with pytest.raises(TicketNotFoundError) as exc_info:
            await store.get_ticket("TICK-404")
        assert exc_info.value.ticket_id == "TICK-404"


class TestCreateTicket:
    async def test_create_then_get(self, store: FileTicketStore):
        created = await store.create_ticket(
            TicketCreate(
                title="New work",
                status=TicketStatus.TODO,
                priority=Priority.HIGH,
                project="Core",
                body="Details",
            )
        )
        fetched = await store.get_ticket(created.id)

        assert created.id == "TICK-001"
        assert fetched.title == "New work"
        assert fetched.status == TicketStatus.TODO
        assert fetched.priority == Priority.HIGH
        assert fetched.body == "Details"
        assert fetched.created_at == fetched.updated_at

    async def test_create_applies_defaults(self, store: FileTicketStore):
        ticket = await store.create_ticket(TicketCreate(title="Defaults"))
        assert ticket.status == TicketStatus.BACKLOG
        assert ticket.priority == Priority.MEDIUM
        assert ticket.project == "Uncategorized"
        assert ticket.body == ""
        assert ticket.enrichment is None

    async def test_id_follows_max_existing(self, seeded_store: FileTicketStore, write_ticket):
        write_ticket("TICK-010")
        ticket = await seeded_store.create_ticket(TicketCreate(title="After gap"))
        assert ticket.id == "TICK-011"

    async def test_concurrent_creates_get_unique_ids(self, store: FileTicketStore):
        tickets = await asyncio.gather(
            *(store.create_ticket(TicketCreate(title=f"Parallel {i}")) for i in range(5))
        )
        assert sorted(_ids(tickets)) == [f"TICK-00{i}" for i in range(1, 6)]

    async def test_retries_when_another_writer_takes_the_id(
        self, store: FileTicketStore, write_ticket, monkeypatch
    ):
        """列目录后、写入前文件被其他写者占用：重新计算 ID"""
        write_ticket("TICK-001")
        real_list = store.list_ticket_files
        calls = 0

        async def stale_then_real():
            nonlocal calls
            calls += 1
            if calls == 1:
                return []
            return await real_list()

        monkeypatch.setattr(store, "list_ticket_files", stale_then_real)

        ticket = await store.create_ticket(TicketCreate(title="Raced"))
        assert ticket.id == "TICK-002"
        # 原有文件未被覆盖
        assert (await store.get_ticket("TICK-001")).title == "Sample ticket"

    async def test_gives_up_after_bounded_retries(
        self, store: FileTicketStore, write_ticket, monkeypatch
    ):
        write_ticket("TICK-001")

        async def always_stale():
            return []

        monkeypatch.setattr(store, "list_ticket_files", always_stale)

        with pytest.raises(TicketStoreError):
            await store.create_ticket(TicketCreate(title="Never"))


class TestUpdateTicket:
    async def test_merges_fields_and_keeps_id(self, seeded_store: FileTicketStore):
        before = await seeded_store.get_ticket("TICK-002")
        updated = await seeded_store.update_ticket(
            "TICK-002",
            TicketUpdate(status=TicketStatus.TODO, estimate=5),
        )
        fetched = await seeded_store.get_ticket("TICK-002")

        assert fetched.id == "TICK-002"
        assert fetched.status == TicketStatus.TODO
        assert fetched.estimate == 5
        assert fetched.title == before.title
        assert fetched.updated_at > before.updated_at
        assert updated.updated_at == fetched.updated_at

    async def test_explicit_null_clears_optional_field(self, seeded_store: FileTicketStore):
        await seeded_store.update_ticket(
            "TICK-001", TicketUpdate.model_validate({"assignee": None})
        )
        assert (await seeded_store.get_ticket("TICK-001")).assignee is None

    async def test_null_for_required_field_is_ignored(self, seeded_store: FileTicketStore):
        await seeded_store.update_ticket(
            "TICK-001", TicketUpdate.model_validate({"title": None, "project": None})
        )
        fetched = await seeded_store.get_ticket("TICK-001")
        assert fetched.title == "Wire up auth"
        assert fetched.project == "Platform"

    async def test_updated_at_strictly_increases_even_with_future_timestamp(
        self, store: FileTicketStore, write_ticket
    ):
        future = datetime.now(UTC) + timedelta(days=365)
        write_ticket(
            "TICK-001",
            created_at="2026-01-01T00:00:00Z",
            updated_at=future.isoformat(),
        )
        updated = await store.update_ticket("TICK-001", TicketUpdate())
        assert updated.updated_at > future

    async def test_reads_during_writes_never_see_partial_file(
        self, store: FileTicketStore, write_ticket
    ):
        write_ticket("TICK-001")
        body = "## Tasks\n" + "- step\n" * 2000
        writing = True

        async def writer():
            nonlocal writing
            try:
                for i in range(30):
                    await store.update_ticket(
                        "TICK-001", TicketUpdate(title=f"Rev {i}", body=body)
                    )
            finally:
                writing = False

        async def reader() -> int:
            reads = 0
            while writing:
                # TicketParseError / TicketNotFoundError 均会使测试失败
                ticket = await store.get_ticket("TICK-001")
                assert ticket.id == "TICK-001"
                reads += 1
            return reads

        _, *reads = await asyncio.gather(writer(), reader(), reader())

        assert sum(reads) > 0
        assert (await store.get_ticket("TICK-001")).title == "Rev 29"

    async def test_writes_leave_no_temporary_files(
        self, store: FileTicketStore, write_ticket, tickets_dir
    ):
        write_ticket("TICK-001")
        await store.update_ticket("TICK-001", TicketUpdate(title="Renamed"))
        await store.create_ticket(TicketCreate(title="New"))

        assert sorted(p.name for p in tickets_dir.iterdir()) == ["TICK-001.md", "TICK-002.md"]

    async def test_update_keeps_file_permissions(
        self, store: FileTicketStore, write_ticket
    ):
        path = write_ticket("TICK-001")
        path.chmod(0o664)

        await store.update_ticket("TICK-001", TicketUpdate(title="Renamed"))

        assert path.stat().st_mode & 0o777 == 0o664

    async def test_update_missing_raises_not_found(self, store: FileTicketStore):
        with pytest.raises(TicketNotFoundError):
            await store.update_ticket("TICK-404", TicketUpdate(title="Nope"))


class TestDeleteTicket:
    async def test_delete_removes_file(self, seeded_store: FileTicketStore, tickets_dir):
        await seeded_store.delete_ticket("TICK-002")
        assert not (tickets_dir / "TICK-002.md").exists()
        with pytest.raises(TicketNotFoundError):
            await seeded_store.get_ticket("TICK-002")

    async def test_delete_missing_raises_not_found(self, store: FileTicketStore):
        with pytest.raises(TicketNotFoundError):
            await store.delete_ticket("TICK-404")


class TestHealthCheck:
    async def test_reports_ticket_count(self, seeded_store: FileTicketStore, tickets_dir):
        health = await seeded_store.health_check()
        assert health == {"tickets_dir": str(tickets_dir), "ticket_count": 3}

    async def test_missing_directory_raises(self, tmp_path):
        store = FileTicketStore(tmp_path / "missing")
        with pytest.raises(TicketStoreError):
            await store.health_check()
