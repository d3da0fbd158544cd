"""Key-value persistence gateway.

Collections are stored as JSON values under fixed string keys. The key names
are shared with earlier browser-based versions of the workbench, so backups
and stored data stay interchangeable.
"""

import json
import os
import tempfile
from copy import deepcopy
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, TypeVar

from ..utils.config import get_config
from ..utils.exceptions import ConfigurationError, StorageReadError, StorageWriteError
from ..utils.logger import get_storage_logger, get_error_logger
from ..utils.time_utils import utcnow

INVOICES_KEY = "bill_generator_invoices"
PRODUCTS_KEY = "bill_generator_products"
SETTINGS_KEY = "bill_generator_settings"
INVENTORY_TRANSACTIONS_KEY = "bill_generator_inventory_transactions"
STOCK_ALERTS_KEY = "bill_generator_stock_alerts"

T = TypeVar("T")


class KeyValueStore:
    """Base store: get/set by string key, JSON-serializable values."""

    def __init__(self):
        self.logger = get_storage_logger()
        self.error_logger = get_error_logger()

    def _read_all(self) -> Dict[str, Any]:
        raise NotImplementedError

    def _write_all(self, data: Dict[str, Any]) -> None:
        raise NotImplementedError

    def _load(self) -> Dict[str, Any]:
        """Read the whole state; unreadable state counts as empty."""
        try:
            return self._read_all()
        except StorageReadError as e:
            self.logger.error(f"Error loading store: {e.message}")
            return {}

    def _load_for_write(self) -> Dict[str, Any]:
        """Read the state a write builds on; unreadable state is set aside first."""
        try:
            return self._read_all()
        except StorageReadError as e:
            self._set_aside(e)
            return {}

    def _set_aside(self, error: StorageReadError) -> None:
        raise StorageWriteError(
            f"Refusing to overwrite unreadable store: {error.message}",
            details=error.details
        )

    def get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.set_many({key: value})

    def set_many(self, values: Mapping[str, Any]) -> None:
        """
        Write several keys in one step.

        Either every key is written or, on failure, ``StorageWriteError`` is
        raised and the previous state is left in place.
        """
        try:
            data = self._load_for_write()
            data.update(values)
            self._write_all(data)
        except StorageWriteError as e:
            self.error_logger.error(f"Store write failed for {', '.join(values)}: {e.message}")
            raise
        self.logger.debug(f"Stored keys: {', '.join(values)}")

    def delete(self, key: str) -> None:
        data = self._load_for_write()
        if key in data:
            del data[key]
            self._write_all(data)

    def keys(self) -> List[str]:
        return list(self._load())

    def close(self):
        """Release resources held by the store."""
        pass

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


class MemoryStore(KeyValueStore):
    """In-process store. Values are deep-copied in and out."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        super().__init__()
        self._data: Dict[str, Any] = deepcopy(initial or {})

    def _read_all(self) -> Dict[str, Any]:
        return deepcopy(self._data)

    def _write_all(self, data: Dict[str, Any]) -> None:
        try:
            # Same serializability guarantee as the file store
            self._data = json.loads(json.dumps(data))
        except (TypeError, ValueError) as e:
            raise StorageWriteError(f"Value is not JSON-serializable: {str(e)}")


class JsonFileStore(KeyValueStore):
    """
    Whole-state JSON document on disk.

    Writes go to a temporary file in the same directory which then replaces
    the document, so a reader never sees a half-written file.
    """

    def __init__(self, path: Path, indent: Optional[int] = 2):
        super().__init__()
        self.path = Path(path)
        self.indent = indent

    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StorageReadError(
                f"Cannot read {self.path}: {str(e)}",
                details={"path": str(self.path)}
            )

        if not isinstance(data, dict):
            raise StorageReadError(
                f"Unexpected document type in {self.path}: {type(data).__name__}",
                details={"path": str(self.path)}
            )
        return data

    def _set_aside(self, error: StorageReadError) -> None:
        """Move an unreadable document out of the way so a write cannot destroy it."""
        stamp = utcnow().strftime("%Y%m%dT%H%M%S%f")
        target = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
        try:
            os.replace(self.path, target)
        except OSError as e:
            raise StorageWriteError(
                f"Cannot set aside unreadable {self.path}: {str(e)}",
                details={"path": str(self.path)}
            )
        self.error_logger.error(f"Unreadable store moved to {target}: {error.message}")

    def _write_all(self, data: Dict[str, Any]) -> None:
        try:
            payload = json.dumps(data, indent=self.indent)
        except (TypeError, ValueError) as e:
            raise StorageWriteError(f"Value is not JSON-serializable: {str(e)}")

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            raise StorageWriteError(
                f"Cannot write {self.path}: {str(e)}",
                details={"path": str(self.path)}
            )


def get_store() -> KeyValueStore:
    """Build the store selected in configuration."""
    config = get_config()
    backend = config.storage.backend.lower()

    if backend == "json":
        return JsonFileStore(config.data_file, indent=config.storage.indent)
    if backend == "memory":
        return MemoryStore()

    raise ConfigurationError(
        f"Unknown storage backend: {config.storage.backend}",
        details={"backend": config.storage.backend}
    )


def load_collection(
    store: KeyValueStore,
    key: str,
    parser: Callable[[Dict[str, Any]], T],
    logger,
) -> List[T]:
    """
    Load and parse a stored list.

    A value that is not a list yields an empty collection; records that fail
    to parse are skipped. Both cases are logged, never raised. Writers go
    through ``dump_collection`` so skipped records stay in the store.
    """
    raw = store.get(key, [])
    if raw is None:
        return []
    if not isinstance(raw, list):
        logger.error(f"Error loading {key}: expected a list, got {type(raw).__name__}")
        return []

    items = []
    for record in raw:
        try:
            items.append(parser(record))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            record_id = record.get("id") if isinstance(record, dict) else None
            logger.warning(f"Skipping unreadable record {record_id!r} in {key}: {str(e)}")
    return items


def _record_id(record: Any) -> Any:
    return record.get("id") if isinstance(record, dict) else None


def dump_collection(
    store: KeyValueStore,
    key: str,
    parser: Callable[[Dict[str, Any]], Any],
    items: Sequence[Any],
) -> List[Any]:
    """
    Serialize ``items`` for writing back under ``key``.

    Stored records that ``parser`` cannot read are carried over unchanged and
    in their stored position. An item whose id matches a stored record takes
    that record's place; the remaining items follow in order.
    """
    pending = {item.id: item for item in items}
    raw = store.get(key, [])
    if not isinstance(raw, list):
        raw = []

    records = []
    for record in raw:
        record_id = _record_id(record)
        if record_id in pending:
            records.append(pending.pop(record_id).to_dict())
            continue
        try:
            parser(record)
        except (KeyError, TypeError, ValueError, AttributeError):
            records.append(record)

    records.extend(item.to_dict() for item in items if item.id in pending)
    return records
