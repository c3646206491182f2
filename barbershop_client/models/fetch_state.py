"""Fetch state dataclass."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class FetchState:
    # A coordinator starts out loading; nothing has been fetched yet.
    data: Any = None
    loading: bool = True
    error: Exception | None = None
