"""
Structured document persistence for profile directories.

Small JSON documents (client ID, creation time) are written wholesale with
an atomic temp-file-and-rename and read back tolerantly: anything missing,
unparsable or of the wrong shape is reported as ``DocumentError`` so callers
can treat it as absent.
"""

import contextlib
import json
import logging
import re
import tempfile
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import ValidationError
from pydantic import field_validator

from .errors import DocumentError

logger = logging.getLogger(__name__)

# Paths are relative to the profile directory.
CLIENT_ID_FILE_PATH = "datareporting/state.json"
LEGACY_CLIENT_ID_FILE_PATH = "healthreport/state.json"
TIMES_FILE_PATH = "times.json"

_CLIENT_ID_PATTERN = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE)

ModelT = TypeVar("ModelT", bound=BaseModel)


def is_client_id_valid(client_id: str | None) -> bool:
    """Check that a client ID has the 8-4-4-4-12 hex layout (case-insensitive)."""
    if not client_id:
        return False
    return _CLIENT_ID_PATTERN.fullmatch(client_id) is not None


class ClientIdDocument(BaseModel):
    """``{"clientID": "<uuid>"}``"""

    model_config = ConfigDict(populate_by_name=True)

    client_id: str = Field(..., alias="clientID")

    @field_validator("client_id")
    @classmethod
    def _check_format(cls, value: str) -> str:
        if not is_client_id_valid(value):
            raise ValueError("client ID does not match the expected format")
        return value


class TimesDocument(BaseModel):
    """``{"created": <epoch millis>}``"""

    created: int = Field(..., description="Profile creation time in epoch milliseconds")


class DocumentStore:
    """
    Reads and writes JSON documents relative to a base directory.

    Contract:
    - Inputs: document paths relative to ``base_dir``
    - Outputs: dicts or validated pydantic models
    - Side Effects: filesystem writes under ``base_dir``
    - Errors: DocumentError for anything unreadable, OSError for write failures
    """

    def __init__(self, base_dir: Path):
        self.base_dir = base_dir

    def path_for(self, name: str) -> Path:
        return self.base_dir / name

    def read(self, name: str) -> dict:
        """Read a JSON object document.

        Raises:
            DocumentError: If the file is missing, unreadable or not a JSON object
        """
        path = self.path_for(name)
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            # Don't include the path; it identifies the profile.
            raise DocumentError(f"Could not access {name}") from e
        except json.JSONDecodeError as e:
            raise DocumentError(f"Could not parse JSON in {name}") from e

        if not isinstance(data, dict):
            raise DocumentError(f"Expected a JSON object in {name}")
        return data

    def read_model(self, name: str, model: type[ModelT]) -> ModelT:
        """Read a document and validate it against ``model``.

        Raises:
            DocumentError: If the document is absent or fails validation
        """
        data = self.read(name)
        try:
            return model.model_validate(data)
        except ValidationError as e:
            # Deliberately not logging the document contents.
            raise DocumentError(f"{name} is missing required values ({e.error_count()} errors)") from e

    def write(self, name: str, data: dict) -> None:
        """Overwrite a document atomically, creating parent directories.

        Raises:
            OSError: If the document could not be written
        """
        path = self.path_for(name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise OSError(f"Could not create parent directories for {name}: {e}") from e

        # Write to temp file first (atomic write pattern)
        with tempfile.NamedTemporaryFile(
            mode="w", dir=path.parent, prefix=f"{path.stem}_", suffix=".tmp", delete=False, encoding="utf-8"
        ) as tmp_file:
            temp_path = Path(tmp_file.name)
            try:
                json.dump(data, tmp_file)
                tmp_file.write("\n")
                tmp_file.flush()

                # Atomic rename
                temp_path.replace(path)

            except Exception as e:
                # Clean up temp file on failure
                with contextlib.suppress(Exception):
                    temp_path.unlink()
                raise OSError(f"Failed to write {name}: {e}") from e

        logger.debug(f"Wrote document {name}")

    def write_model(self, name: str, document: BaseModel) -> None:
        self.write(name, document.model_dump(by_alias=True))

    def exists(self, name: str) -> bool:
        return self.path_for(name).is_file()


__all__ = [
    "CLIENT_ID_FILE_PATH",
    "LEGACY_CLIENT_ID_FILE_PATH",
    "TIMES_FILE_PATH",
    "ClientIdDocument",
    "DocumentStore",
    "TimesDocument",
    "is_client_id_valid",
]
