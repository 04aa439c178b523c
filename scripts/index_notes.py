"""CLI for indexing a folder of markdown notes into the local vector store"""

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger

from notemind.config import settings
from notemind.factory import build_rag_system
from notemind.ingestion.note_loader import load_notes


async def main(in_folder: str, vector_store_path: str) -> None:
    folder = Path(in_folder)
    rag_system = build_rag_system(settings.model_copy(update={"vector_store_path": vector_store_path}))

    try:
        notes = load_notes(folder)
        result = await rag_system.update_notes(notes)

        current_note_ids = {note.id for note in notes}
        deleted_note_ids = rag_system.pipeline.vector_store.get_indexed_note_ids() - current_note_ids
        if deleted_note_ids:
            logger.info(f"Deleting {len(deleted_note_ids)} removed notes...")
            await rag_system.delete_notes(sorted(deleted_note_ids))

        logger.info("Indexing complete:")
        logger.info(f"  - Total files: {len(notes)}")
        logger.info(f"  - Indexed: {len(result.indexed)} ({result.chunks} chunks)")
        logger.info(f"  - Unchanged: {len(result.skipped)}")
        logger.info(f"  - Deleted: {len(deleted_note_ids)}")
        for note_id, error in result.failed.items():
            logger.warning(f"  - Failed {note_id}: {error}")
    finally:
        await rag_system.destroy()


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--in-folder", type=str, required=True, help="Folder containing markdown files"
    )
    parser.add_argument(
        "--vector-store",
        type=str,
        required=False,
        help="Local vector store file",
        default=settings.vector_store_path,
    )

    args = parser.parse_args()

    logger.configure(handlers=[{"sink": sys.stderr, "level": settings.log_level}])
    asyncio.run(main(in_folder=args.in_folder, vector_store_path=args.vector_store))
