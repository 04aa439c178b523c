"""Reads a folder of markdown files as notes."""

from datetime import datetime, timezone
from hashlib import md5
from pathlib import Path

from loguru import logger

from notemind.domain.note import Note


def generate_note_id(file: Path, folder: Path) -> str:
    """Note IDs are stable across runs as long as the file does not move."""
    return md5(str(file.relative_to(folder)).encode()).hexdigest()


def load_note(file: Path, folder: Path) -> Note:
    logger.debug(f"Loading {file}")

    with open(file, "r", encoding="utf-8") as f:
        content = f.read()

    title = file.stem
    if content.startswith("#"):
        title = content.split("\n")[0].lstrip("#").strip() or file.stem

    relative_path = file.relative_to(folder)
    notebook = str(relative_path.parent) if relative_path.parent != Path(".") else None

    return Note(
        id=generate_note_id(file, folder),
        title=title,
        content=content,
        notebook=notebook,
        updated_at=datetime.fromtimestamp(file.stat().st_mtime, tz=timezone.utc),
    )


def load_notes(folder: Path) -> list[Note]:
    """Load every markdown file below a folder, skipping hidden directories."""
    files = sorted(
        f
        for f in folder.rglob("*.md")
        if not any(part.startswith(".") for part in f.relative_to(folder).parts)
    )
    logger.info(f"Found {len(files)} markdown files in {folder}")
    return [load_note(file, folder) for file in files]
