import logging
import os
import uuid
from pathlib import Path
from typing import Optional, Union

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)


def stage_upload(file: Optional[FileStorage], tmp_dir: Union[str, Path]) -> Optional[Path]:
    """Write an uploaded file to a request-scoped temp path (None if no file)"""
    if file is None or not file.filename:
        return None
    tmp_dir = Path(tmp_dir)
    tmp_dir.mkdir(parents=True, exist_ok=True)
    filename = secure_filename(file.filename) or "upload"
    path = tmp_dir / f"{uuid.uuid4().hex}_{filename}"
    file.save(path)
    return path


def remove_temp_file(path: Optional[Union[str, Path]]) -> None:
    """Delete a staged upload; missing files are fine"""
    if not path:
        return
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error("Could not remove temp file %s: %s", path, e)
