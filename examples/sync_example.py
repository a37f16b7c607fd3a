# examples/sync_example.py
"""
Example demonstrating local storage and sync with PomeoCore.

This script shows how to:
1. Open a tiered storage manager in a temporary directory.
2. Create and update tasks through an entity repository.
3. Reconcile the local collection against a remote snapshot, where the
   remote holds a newer edit of one task and a task created elsewhere.
4. Inspect storage usage and close everything cleanly.

To run this example:
- Ensure you have pomeocore installed (`pip install .` from the project root).
- Run `python examples/sync_example.py`.
"""

import asyncio
import logging
import tempfile
from datetime import timedelta

from pomeocore import (
    EntityKind,
    PomeoCoreError,
    Task,
    TaskPriority,
    create_repositories,
    create_storage_manager,
    load_config,
)
from pomeocore.sync import SyncService

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


class SnapshotRemote:
    """A stand-in remote that serves fixed collections."""

    def __init__(self, collections):
        self.collections = collections

    async def fetch_all(self, kind):
        return self.collections.get(kind, [])


async def main():
    """Runs the storage and sync walkthrough."""
    with tempfile.TemporaryDirectory() as workdir:
        config = load_config(config_dict={
            "storage": {
                "fast": {"db_path": f"{workdir}/fast.db"},
                "file": {"path": f"{workdir}/files"},
            },
            "sync": {"kinds": ["task"]},
        })

        try:
            async with create_storage_manager(config) as storage:
                tasks = create_repositories(storage)[EntityKind.TASK]

                # --- Local edits ---
                report = await tasks.create(Task(title="Write report", priority=TaskPriority.HIGH))
                groceries = await tasks.create(Task(title="Buy groceries"))
                report = await tasks.update(report.model_copy(update={"notes": "Draft in docs/"}))
                logger.info(f"Local task '{report.title}' is at version {report.version}")

                # --- Remote snapshot: a newer edit of the report, a new task, no groceries ---
                remote_report = report.model_copy(update={
                    "title": "Write quarterly report",
                    "updated_at": report.updated_at + timedelta(minutes=5),
                })
                remote = SnapshotRemote({
                    EntityKind.TASK: [remote_report, Task(title="Call the bank")],
                })

                service = SyncService(create_repositories(storage), remote, config.sync)
                results = await service.start_sync()
                logger.info(f"Sync result: {results[EntityKind.TASK].to_dict()}")

                for task in await tasks.read_all():
                    logger.info(f"  v{task.version} {task.title}")
                logger.info(f"'{groceries.title}' still stored: {await tasks.exists(groceries.id)}")

                info = await storage.get_storage_info()
                logger.info(
                    f"Storage: {info.fast_key_count} fast keys, {info.slow_key_count} slow keys, "
                    f"{info.usage.total_bytes} bytes"
                )
        except PomeoCoreError as e:
            logger.error(f"PomeoCore error: {e}")


if __name__ == "__main__":
    asyncio.run(main())
