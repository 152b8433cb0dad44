"""Key-value store protocol used by the context store."""

from typing import Protocol


class KeyValueStore(Protocol):
    """Minimal async key-value interface with per-key expiry."""

    name: str

    async def get(self, key: str) -> str | None:
        """Get value for key.

        Args:
            key: Storage key

        Returns:
            Stored string or None if absent or expired
        """
        ...

    async def set(self, key: str, value: str, ex: int) -> None:
        """Set value for key with expiry.

        Args:
            key: Storage key
            value: Serialized value
            ex: Time-to-live in seconds
        """
        ...

    async def delete(self, *keys: str) -> int:
        """Delete keys.

        Returns:
            Number of keys removed
        """
        ...
