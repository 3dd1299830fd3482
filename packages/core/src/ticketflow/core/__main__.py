"""CLI 入口模块 -- python -m ticketflow.core <command>

支持的命令：
  list     列出 tickets 目录中的全部 ticket（跳过无法解析的文件）
  check    检查 tickets 目录，报告无法解析的文件
"""

import asyncio
import sys

from .config import get_tickets_dir


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print("用法: python -m ticketflow.core <command>")
        print("命令:")
        print("  list     列出全部 ticket")
        print("  check    检查无法解析的 ticket 文件")
        sys.exit(1)

    command = sys.argv[1]

    if command == "list":
        asyncio.run(list_tickets())
    elif command == "check":
        sys.exit(asyncio.run(check_tickets()))
    else:
        print(f"未知命令: {command}")
        print("可用命令: list, check")
        sys.exit(1)


async def list_tickets() -> None:
    """打印 ticket 概要"""
    from .store import create_ticket_store

    store = create_ticket_store(get_tickets_dir())
    tickets = await store.list_tickets()
    for t in tickets:
        enrichment = t.enrichment.status if t.enrichment else "-"
        print(f"{t.id}\t{t.status}\t{t.priority}\t{enrichment}\t{t.title}")
    print(f"共 {len(tickets)} 个 ticket（目录: {store.tickets_dir}）")


async def check_tickets() -> int:
    """逐个解析文件，返回失败文件数作为退出码"""
    from .parser import TicketParseError, parse_ticket
    from .store import create_ticket_store

    store = create_ticket_store(get_tickets_dir())
    failures = 0
    for path in await store.list_ticket_files():
        try:
            parse_ticket(path, await asyncio.to_thread(path.read_bytes))
        except TicketParseError as e:
            failures += 1
            print(f"[无效] {path.name}: {e.reason}")
    print(f"检查完成: {failures} 个文件无法解析")
    return min(failures, 1)


if __name__ == "__main__":
    main()
