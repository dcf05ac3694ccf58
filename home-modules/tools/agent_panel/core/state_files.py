"""JSON state files under the data directory.

Focus history, saved window frames and Chrome tab snapshots all live here as
small versioned JSON documents. Reads map every failure to stateLoadFailed
and writes go through a temp file + rename so a crash never leaves a
half-written file behind.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

from ..errors import ApError, ErrorCode


def read_json(path: Path, what: str) -> Optional[Any]:
    """Read a JSON document.

    Returns:
        The decoded document, or None if the file does not exist

    Raises:
        ApError: stateLoadFailed on read or JSON errors
    """
    if not path.exists():
        return None

    try:
        with open(path, "r") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ApError(
            code=ErrorCode.STATE_LOAD_FAILED,
            message=f"Failed to read {what}: {e}",
            context={"path": str(path)}
        ) from e


def malformed(path: Path, what: str, detail: str) -> ApError:
    """stateLoadFailed for a document that parsed but has the wrong shape."""
    return ApError(
        code=ErrorCode.STATE_LOAD_FAILED,
        message=f"Malformed {what}: {detail}",
        suggestion=f"Delete {path} to start fresh",
        context={"path": str(path)}
    )


def write_json_atomic(path: Path, data: Any, what: str) -> None:
    """Write `data` as JSON via temp file + fsync + rename.

    Raises:
        ApError: stateSaveFailed
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix=f".{path.stem}-",
            suffix=".json",
        )
    except OSError as e:
        raise ApError(
            code=ErrorCode.STATE_SAVE_FAILED,
            message=f"Failed to create {what} file: {e}",
            context={"path": str(path)}
        ) from e

    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())

        os.replace(temp_path, path)
    except OSError as e:
        if Path(temp_path).exists():
            os.unlink(temp_path)
        raise ApError(
            code=ErrorCode.STATE_SAVE_FAILED,
            message=f"Failed to write {what}: {e}",
            context={"path": str(path)}
        ) from e


def remove_file(path: Path, what: str) -> None:
    """Delete a state file; a missing file is fine.

    Raises:
        ApError: stateSaveFailed
    """
    try:
        path.unlink()
    except FileNotFoundError:
        return
    except OSError as e:
        raise ApError(
            code=ErrorCode.STATE_SAVE_FAILED,
            message=f"Failed to remove {what}: {e}",
            context={"path": str(path)}
        ) from e
