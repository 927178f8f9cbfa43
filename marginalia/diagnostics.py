from __future__ import annotations

import logging
from typing import Optional, Protocol


class Diagnostics(Protocol):
    def warn(self, message: str) -> None: ...

    def info(self, message: str) -> None: ...


class LoggerDiagnostics:
    """Forward ingestion diagnostics to a standard logger."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger("marginalia.ingest")

    def warn(self, message: str) -> None:
        self.logger.warning(message)

    def info(self, message: str) -> None:
        self.logger.info(message)


class RecordingDiagnostics:
    """Keep diagnostics in memory, optionally forwarding them to another sink."""

    def __init__(self, forward: Optional[Diagnostics] = None) -> None:
        self.forward = forward
        self.warnings: list[str] = []
        self.infos: list[str] = []

    def warn(self, message: str) -> None:
        self.warnings.append(message)
        if self.forward is not None:
            self.forward.warn(message)

    def info(self, message: str) -> None:
        self.infos.append(message)
        if self.forward is not None:
            self.forward.info(message)
