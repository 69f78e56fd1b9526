# portal_core/services/storage.py
"""
Blob storage for result artifacts, backed by Django's default storage.
"""
from __future__ import annotations

import os
from typing import Tuple

from django.conf import settings
from django.core.files.storage import default_storage
from django.utils import timezone
from django.utils.text import get_valid_filename


def allowed_extensions() -> set[str]:
    return {e.strip().lower().lstrip(".") for e in settings.PORTAL_RESULT_FILE_TYPES if e.strip()}


def file_extension(name: str) -> str:
    return os.path.splitext(name or "")[1].lower().lstrip(".")


def put(project_id: int, uploaded_file) -> Tuple[str, str]:
    """
    Store the file under project-results/<project_id>/ and return
    (storage path, public url). Storage errors propagate as OSError.
    """
    stamp = int(timezone.now().timestamp() * 1000)
    safe_name = get_valid_filename(os.path.basename(uploaded_file.name))
    path = f"{settings.PORTAL_RESULT_PREFIX}/{project_id}/{stamp}_{safe_name}"

    saved_path = default_storage.save(path, uploaded_file)
    return saved_path, default_storage.url(saved_path)


def delete(path: str) -> None:
    if path and default_storage.exists(path):
        default_storage.delete(path)
