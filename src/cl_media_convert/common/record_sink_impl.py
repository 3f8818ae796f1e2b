import threading
from os import PathLike
from pathlib import Path

from loguru import logger

from .record_sink import ConversionRecordSink
from .schema_batch import ConversionRecord


class JsonlConversionRecordSink(ConversionRecordSink):
    """Appends each record as one JSON line to a file."""

    def __init__(self, path: str | PathLike[str]):
        self.path: Path = Path(path).expanduser()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock: threading.Lock = threading.Lock()

    def append(self, record: ConversionRecord) -> None:
        line = record.model_dump_json()
        with self._lock:
            with open(self.path, "a", encoding="utf-8") as f:
                _ = f.write(line + "\n")
        logger.debug(f"Recorded batch {record.summary.batch_id} to {self.path}")

    def read_all(self) -> list[ConversionRecord]:
        if not self.path.exists():
            return []
        with self._lock:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        return [ConversionRecord.model_validate_json(line) for line in lines if line.strip()]
