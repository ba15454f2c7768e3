from __future__ import annotations

from pathlib import Path
from typing import List


class ExportError(Exception):
    """Raised when neither the output directory nor the fallback location accepted the files."""

    def __init__(self, message: str, attempted: List[Path]):
        super().__init__(message)
        self.attempted = list(attempted)
