"""API-key backed ``UserDirectory``.

Account management lives outside this service; the directory only maps a
presented API key to the owner id it was issued for.
"""

from collections.abc import Mapping

from shortlink.exceptions import AuthenticationError

__all__ = ["ApiKeyDirectory"]


class ApiKeyDirectory:
    def __init__(self, api_keys: Mapping[str, str]):
        self._owners = dict(api_keys)

    def resolve_owner_id(self, identity: str) -> str:
        owner_id = self._owners.get(identity)
        if owner_id is None:
            raise AuthenticationError("Unknown API key")
        return owner_id
