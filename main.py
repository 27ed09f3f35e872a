import asyncio
import sys

from loguru import logger

from src.core.config import ConfigManager
from src.core.logging import setup_logging
from src.foldersync.adapter import FoldersAdapter
from src.foldersync.app import build_folder_sync
from src.foldersync.reconciler import FolderChildrenReconciler
from src.foldersync.roots import RootFolderList


def render(listing: FolderChildrenReconciler):
    names = [f"{item.name}[{item.state.value}]" for item in listing.items]
    print(f"[{listing.parent_id or 'root'}] loading={listing.loading} {names}")


async def async_main(config_path: str):
    print("--- 1. Initialize Core ---")
    config = ConfigManager(config_path)
    setup_logging(config.data.general.debug_mode, config.data.general.log_dir, config.data.general.log_to_file)
    locator = build_folder_sync(config)
    await locator.start_all()
    adapter = locator.get_system(FoldersAdapter)

    print("--- 2. Two views on the root folder ---")
    roots = RootFolderList(adapter)
    await roots.mount()
    async with FolderChildrenReconciler(adapter, parent_id=None) as listing:
        listing.on_changed.connect(render)

        print("--- 3. Optimistic create ---")
        work = await listing.create_folder("Work")
        await listing.create_folder("archive")
        await asyncio.sleep(0.1)

        print("--- 4. Rename / delete through the adapter ---")
        await adapter.rename(work.id, "Work Notes")
        await asyncio.sleep(0.1)
        await adapter.remove(work.id)
        await asyncio.sleep(0.1)

        print(f"Root folders: {[f.name for f in roots.folders]}")
        print(f"Move targets: {[f.name for f in await adapter.get_valid_move_targets()]}")
        print(f"Version: {adapter.version}")

    roots.unmount()
    await locator.stop_all()


def main():
    config_path = sys.argv[1] if len(sys.argv) > 1 else "config.json"
    try:
        asyncio.run(async_main(config_path))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
