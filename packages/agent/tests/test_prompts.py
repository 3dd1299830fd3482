"""Enrichment 任务描述构建测试"""

from pathlib import Path

from ticketflow.agent import build_enrichment_task


class TestBuildEnrichmentTask:
    def test_label_and_ticket_info(self, sample_ticket):
        task = build_enrichment_task(sample_ticket, Path("/srv/tickets"))

        assert task.label == "groom-TICK-012"
        assert 'TICK-012: "Add export button"' in task.task
        assert "/srv/tickets/TICK-012.md" in task.task
        assert "- Project: Dashboard" in task.task
        assert "- Status: backlog" in task.task
        assert "- Priority: high" in task.task
        assert f"- Current content length: {len(sample_ticket.body)} chars" in task.task

    def test_prefers_ticket_file_path(self, sample_ticket):
        ticket = sample_ticket.model_copy(update={"file_path": Path("/data/TICK-012.md")})
        task = build_enrichment_task(ticket, Path("/elsewhere"))
        assert "/data/TICK-012.md" in task.task
        assert "/elsewhere" not in task.task
