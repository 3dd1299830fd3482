"""Enrichment 任务描述构建"""

from pathlib import Path

from ticketflow.core.models import Ticket

from .models import AgentTask

_TASK_TEMPLATE = """Groom ticket {ticket_id}: "{title}"

The ticket file lives at: {file_path}

This ticket was just created and looks under-specified. Please:
1. Read the current ticket content
2. Load the relevant project context
3. Expand the ticket with:
   - Technical implementation details (phased approach)
   - Testable acceptance criteria
   - Dependencies on other tickets or systems
   - A story point estimate (1, 2, 3, 5, 8, 13) in the `estimate` field
   - Success metrics
   - Edge cases worth considering
4. Write the expanded content back to the ticket file
5. Set enrichment.status to 'complete' and add enrichment.completedAt

Current ticket info:
- Project: {project}
- Status: {status}
- Priority: {priority}
- Current content length: {body_length} chars

Be thorough but practical: add real value, not filler."""


def build_enrichment_task(ticket: Ticket, tickets_dir: Path | None = None) -> AgentTask:
    """根据 ticket 构建 agent 任务（标题、ID、项目、状态、优先级、正文长度）"""
    file_path = ticket.file_path
    if file_path is None and tickets_dir is not None:
        file_path = tickets_dir / f"{ticket.id}.md"

    return AgentTask(
        label=f"groom-{ticket.id}",
        task=_TASK_TEMPLATE.format(
            ticket_id=ticket.id,
            title=ticket.title,
            file_path=file_path or f"{ticket.id}.md",
            project=ticket.project,
            status=ticket.status.value,
            priority=ticket.priority.value,
            body_length=len(ticket.body),
        ),
    )
