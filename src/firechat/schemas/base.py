"""
Base Record Class

Records are stored in the backend as camelCase JSON objects. Subclasses
implement `_from_data` and `to_dict`; the shared helpers here handle
snapshots and JSON strings.
"""

import json
from typing import Any, Dict, Optional, TypeVar

T = TypeVar("T", bound="BaseRecord")


class BaseRecord:
    """
    Base class for records read from and written to the store.
    """

    @classmethod
    def from_dict(
        cls: type[T], data: Optional[Dict[str, Any]], key: Optional[str] = None
    ) -> T:
        """
        Create instance from a stored dictionary.

        Args:
            data: Stored value (None is treated as an empty record)
            key: Store key of the record, used when the value has no id

        Returns:
            Instance of the record class.
        """
        return cls._from_data(data or {}, key)

    @classmethod
    def from_snapshot(cls: type[T], snapshot) -> T:
        """Create instance from a store snapshot."""
        return cls.from_dict(snapshot.value, snapshot.key)

    @classmethod
    def from_json(cls: type[T], json_str: str) -> T:
        """Create instance from JSON string."""
        return cls.from_dict(json.loads(json_str))

    @classmethod
    def _from_data(cls: type[T], data: Dict[str, Any], key: Optional[str]) -> T:
        raise NotImplementedError("Subclasses must implement _from_data")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the stored camelCase dictionary."""
        raise NotImplementedError("Subclasses must implement to_dict")

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict())
