"""Mapping between base names, environment display names and file names."""

from __future__ import annotations

import re
from typing import List, Optional

from .config import Environment, EnvironmentSettings
from .errors import ConfigError

UNKNOWN_ENVIRONMENT = "unknown"

_UNSAFE_FILE_CHARS = re.compile(r"[^A-Za-z0-9\s_-]")
_WHITESPACE_RUN = re.compile(r"\s+")
_NON_ALNUM_RUN = re.compile(r"[^a-z0-9]+")


class NameCodec:
    """Translate between base names and environment-qualified display names.

    Two distinct base names can normalize to the same file name (for example
    ``"Order Sync"`` and ``"order_sync"``); the later export overwrites the
    earlier one. Collisions are not detected.
    """

    def __init__(self, settings: EnvironmentSettings) -> None:
        self._suffixes = dict(settings.suffixes)
        self._default_dev = settings.on_unmatched_suffix == "default_dev"
        # longest first so reverse lookup prefers the most specific suffix
        self._by_length = sorted(
            self._suffixes.items(), key=lambda item: len(item[1]), reverse=True
        )

    @property
    def environments(self) -> List[Environment]:
        return list(self._suffixes)

    def suffix_for(self, environment: Environment | str) -> str:
        try:
            env = Environment(environment)
        except ValueError:
            raise ConfigError(f"Unknown environment: {environment}") from None
        if env not in self._suffixes:
            raise ConfigError(f"No suffix configured for environment: {env.value}")
        return self._suffixes[env]

    def display_name(self, base_name: str, environment: Environment | str) -> str:
        return base_name + self.suffix_for(environment)

    def _match(self, display_name: str) -> Optional[tuple[Environment, str]]:
        for env, suffix in self._by_length:
            if display_name.endswith(suffix):
                return env, suffix
        return None

    def base_name(self, display_name: str) -> str:
        """Strip the environment suffix; unmanaged names are returned unchanged."""
        match = self._match(display_name)
        if match is None:
            return display_name
        return display_name[: -len(match[1])]

    def environment_of(self, display_name: str) -> Optional[Environment]:
        """Return the environment encoded in ``display_name``.

        ``None`` stands for an unknown environment, unless the codec was
        configured with ``on_unmatched_suffix: default_dev``.
        """
        match = self._match(display_name)
        if match is not None:
            return match[0]
        return Environment.DEV if self._default_dev else None

    def environment_label(self, display_name: str) -> str:
        env = self.environment_of(display_name)
        return env.value if env is not None else UNKNOWN_ENVIRONMENT

    def file_name(self, display_name: str) -> str:
        base = self.base_name(display_name)
        cleaned = _UNSAFE_FILE_CHARS.sub("", base)
        return _WHITESPACE_RUN.sub("_", cleaned).lower() + ".json"


def git_safe_name(name: str) -> str:
    """Lowercase ``name`` and collapse every non-alphanumeric run into ``-``."""
    return _NON_ALNUM_RUN.sub("-", name.lower()).strip("-")
