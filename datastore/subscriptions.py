from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Iterable, List

from pydantic import TypeAdapter
from pydantic import ValidationError as SchemaError

from app.schemas import SubscriptionSpec
from services.subscription import Subscription
from settings import get_settings

logger = logging.getLogger(__name__)

_SPEC_LIST = TypeAdapter(List[SubscriptionSpec])


class SubscriptionStore:
    """Subscription definitions read from JSON files in a set of directories.

    Every regular file in a directory holds a JSON array of definitions.
    Directories that do not exist are skipped.
    """

    def __init__(self, paths: Iterable[Path]) -> None:
        self.paths = tuple(paths)
        self._items: List[Subscription] = []
        self._lock = Lock()

    def load(self) -> List[Subscription]:
        """Re-read all definition files and replace the stored subscriptions."""
        loaded: List[Subscription] = []
        for directory in self.paths:
            if not directory.is_dir():
                logger.info("No subscriptions found", extra={"path": directory})
                continue
            for path in sorted(directory.iterdir()):
                if not path.is_file():
                    continue
                specs = read_subscription_file(path)
                loaded.extend(Subscription.from_spec(spec) for spec in specs)

        with self._lock:
            self._items = loaded
        return list(loaded)

    def list(self) -> List[Subscription]:
        with self._lock:
            return list(self._items)

    def specs(self) -> List[SubscriptionSpec]:
        return [subscription.to_spec() for subscription in self.list()]


def read_subscription_file(path: Path) -> List[SubscriptionSpec]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Cannot read subscription file {path}: {exc}") from exc
    if not raw.strip():
        return []

    try:
        specs = _SPEC_LIST.validate_python(json.loads(raw))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Subscription file {path} is not valid JSON: {exc}") from exc
    except SchemaError as exc:
        raise ValueError(f"Invalid subscription definition in {path}: {exc}") from exc

    logger.info("Read %d subscriptions", len(specs), extra={"path": path})
    return specs


@lru_cache
def build_default_store() -> SubscriptionStore:
    return SubscriptionStore(get_settings().subscription_paths)
