"""
Utility functions for file system operations, CSV handling and string sanitization.

This module provides helper functions for:
- Sanitizing user-provided filenames for response headers
- Ensuring directory creation
- Scoped temporary files that are always removed
- Parsing uploaded CSV data and building header-only CSV templates
"""

from __future__ import annotations

import base64
import csv
import io
import re
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Dict, Iterable, List
from uuid import uuid4

import anyio

# Pattern to match characters that are not safe for filenames
# Allows: alphanumeric characters, dots, underscores, and hyphens
SANITIZE_PATTERN = re.compile(r"[^a-zA-Z0-9._-]+")


def sanitize_filename(name: str, fallback: str = "document") -> str:
    """
    Generate a header-safe filename stem from user input.

    Example:
        >>> sanitize_filename("My Invitation!")
        "My-Invitation"
        >>> sanitize_filename('"; rm', "document")
        "rm"
    """
    cleaned = SANITIZE_PATTERN.sub("-", name.strip()).strip("-_.")
    return cleaned or fallback


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

    Args:
        path: The directory path to create

    Returns:
        The same path object for chaining
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def encode_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def decode_base64(data: str) -> bytes:
    return base64.b64decode(data)


@asynccontextmanager
async def scoped_temp_file(directory: Path, prefix: str, suffix: str, data: bytes) -> AsyncIterator[Path]:
    """
    Write ``data`` to a fresh file under ``directory`` and yield its path.

    The file is removed when the block exits, whether it exits normally or
    by raising.
    """
    ensure_directory(directory)
    path = anyio.Path(directory) / f"{prefix}_{uuid4().hex}{suffix}"
    await path.write_bytes(data)
    try:
        yield Path(path)
    finally:
        await path.unlink(missing_ok=True)


def parse_csv_rows(data: bytes) -> List[Dict[str, str]]:
    """
    Parse uploaded CSV bytes into one mapping per data row.

    The first line is the header. A leading UTF-8 byte order mark is dropped
    so spreadsheet exports keep their first column name intact.
    """
    text = data.decode("utf-8-sig")
    reader = csv.DictReader(io.StringIO(text))
    rows: List[Dict[str, str]] = []
    for row in reader:
        # Short rows fill with None; extra cells land under the None key.
        rows.append({key: (value or "") for key, value in row.items() if key is not None})
    return rows


def split_template_variables(tags: str) -> List[str]:
    return [name.strip() for name in tags.split(",") if name.strip()]


def build_header_csv(columns: Iterable[str]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(list(columns))
    return buffer.getvalue()
