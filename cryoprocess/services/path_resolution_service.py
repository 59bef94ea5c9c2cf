# cryoprocess/services/path_resolution_service.py
from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, List, Mapping, Any, Optional, Union

PathLike = Union[str, Path]

_JOB_ID = re.compile(r"Job(\d+)", re.IGNORECASE)


class PathResolutionService:
    """
    Maps form references onto the project tree and back.

    - Absolute references are kept as given.
    - Relative references are taken relative to the project root, which
      is made absolute against the working directory at construction.
    - No filesystem access; existence checks belong to the builders.
    """

    def __init__(self, project_path: PathLike):
        self.project_path = Path(project_path).absolute()

    def resolve(self, ref: Optional[PathLike]) -> Optional[Path]:
        if ref is None or str(ref).strip() == "":
            return None
        path = Path(str(ref).strip())
        if path.is_absolute():
            return path
        return self.project_path / path

    def relativize(self, path: Optional[PathLike]) -> str:
        """Project-relative text for `path`; paths outside the project stay absolute."""
        if path is None or str(path) == "":
            return ""
        path = Path(path)
        if not path.is_absolute():
            return path.as_posix()
        try:
            return path.relative_to(self.project_path).as_posix()
        except ValueError:
            return path.as_posix()

    def to_command_path(self, ref: Optional[PathLike]) -> str:
        """resolve() then relativize(): the form a reference takes inside a command."""
        return self.relativize(self.resolve(ref))

    def directory_token(self, directory: PathLike) -> str:
        """Relative directory with the trailing separator RELION expects for --o."""
        relative = self.relativize(self.resolve(directory)) or "."
        return relative.rstrip("/") + "/"


def extract_job_ids(data: Mapping[str, Any], fields: Iterable[str]) -> List[str]:
    """Upstream job names ("Job002") referenced by the given input fields, in field order."""
    job_ids: List[str] = []
    for name in fields:
        value = data.get(name)
        if not isinstance(value, str):
            continue
        match = _JOB_ID.search(value)
        if match:
            job_id = f"Job{int(match.group(1)):03d}"
            if job_id not in job_ids:
                job_ids.append(job_id)
    return job_ids
