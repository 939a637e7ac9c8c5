# Where per-slug provider configuration comes from.
from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Union

from pydantic import ValidationError

from accounts_oidc.app.core.config import load_providers_yaml
from accounts_oidc.app.core.errors import ConfigError
from accounts_oidc.app.models import ProviderConfig

ConfigLike = Union[ProviderConfig, Mapping[str, Any]]
ChangeListener = Callable[[str, Optional[ProviderConfig], Optional[ProviderConfig]], None]


class ConfigStore(Protocol):
    def get_config(self, slug: str) -> ProviderConfig: ...


def parse_provider_config(slug: str, raw: ConfigLike) -> ProviderConfig:
    if isinstance(raw, ProviderConfig):
        return raw
    try:
        return ProviderConfig.model_validate(dict(raw))
    except ValidationError as ex:
        raise ConfigError(f"invalid configuration for service {slug!r}: {ex}") from ex


class InMemoryConfigStore:
    """
    slug -> ProviderConfig table, validated on write.

    Listeners are told (slug, old, new) on every change; the context uses
    that to drop discovery documents for a base URL that changed.
    """

    def __init__(self, providers: Optional[Mapping[str, ConfigLike]] = None):
        self._configs: Dict[str, ProviderConfig] = {}
        self._listeners: List[ChangeListener] = []
        for slug, raw in (providers or {}).items():
            self._configs[slug] = parse_provider_config(slug, raw)

    def __contains__(self, slug: str) -> bool:
        return slug in self._configs

    def slugs(self) -> List[str]:
        return list(self._configs)

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def get_config(self, slug: str) -> ProviderConfig:
        config = self._configs.get(slug)
        if config is None:
            raise ConfigError(f"service {slug!r} is not configured")
        return config

    def upsert(self, slug: str, raw: ConfigLike) -> ProviderConfig:
        new = parse_provider_config(slug, raw)
        old = self._configs.get(slug)
        self._configs[slug] = new
        self._notify(slug, old, new)
        return new

    def remove(self, slug: str) -> None:
        old = self._configs.pop(slug, None)
        if old is not None:
            self._notify(slug, old, None)

    def _notify(self, slug: str, old: Optional[ProviderConfig], new: Optional[ProviderConfig]) -> None:
        for listener in self._listeners:
            listener(slug, old, new)


class YamlConfigStore(InMemoryConfigStore):
    """Loads the `providers:` mapping of a YAML file (see core.config.load_providers_yaml)."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        super().__init__(load_providers_yaml(self.path))

    def reload(self) -> None:
        fresh = {slug: parse_provider_config(slug, raw) for slug, raw in load_providers_yaml(self.path).items()}
        for slug in [s for s in self.slugs() if s not in fresh]:
            self.remove(slug)
        for slug, config in fresh.items():
            if self._configs.get(slug) != config:
                self.upsert(slug, config)
