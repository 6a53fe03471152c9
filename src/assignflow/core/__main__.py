"""CLI 入口模块 -- python -m assignflow.core <command>

支持的命令：
  init-db          创建数据库与表结构
  sweep-deadlines  执行一次截止提醒扫描
"""

import asyncio
import sys

from .config import get_db_path


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print("用法: python -m assignflow.core <command>")
        print("命令:")
        print("  init-db          创建数据库与表结构")
        print("  sweep-deadlines  执行一次截止提醒扫描")
        sys.exit(1)

    command = sys.argv[1]

    if command == "init-db":
        asyncio.run(init_database())
    elif command == "sweep-deadlines":
        asyncio.run(sweep_deadlines())
    else:
        print(f"未知命令: {command}")
        print("可用命令: init-db, sweep-deadlines")
        sys.exit(1)


async def init_database() -> None:
    """创建数据库（init_db 幂等）"""
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")

    store_group = await create_store_group(db_path)
    await store_group.close()
    print("初始化完成")


async def sweep_deadlines() -> None:
    """执行一次截止提醒扫描"""
    from .config import load_delivery_config
    from .store import create_store_group
    from .workflow.deadlines import DeadlineSweeper
    from .workflow.notify import NotificationFanout, build_deliverer

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")
    print("开始扫描截止提醒...")

    store_group = await create_store_group(db_path)
    delivery_config = load_delivery_config()
    fanout = NotificationFanout(
        store_group,
        deliverer=build_deliverer(delivery_config),
        timeout_s=delivery_config.timeout_s,
    )

    try:
        sent = await DeadlineSweeper(store_group, fanout).run_once()
        await fanout.drain()
        print(f"扫描完成，发送 {sent} 条提醒")
    finally:
        await store_group.close()


if __name__ == "__main__":
    main()
