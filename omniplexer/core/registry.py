"""Upstream registry: the validated, ordered set of ServerConfig values.

The INI file has one section per upstream:

    [node-a]
    url = http://10.0.0.5:9100
    prefix = node_a

    [billing]
    url = https://billing.internal/
    username = scraper
    password = s3cret

Section order is preserved; aggregate responses iterate it.
"""

from __future__ import annotations

import configparser
import logging
from collections.abc import Iterator, Mapping
from pathlib import Path

from omniplexer.models.server import ServerConfig

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Upstream configuration is unusable; the service must not start."""


def _value(section: Mapping[str, str], key: str) -> str | None:
    raw = section.get(key)
    if raw is None:
        return None
    # configparser keeps quotes that INI writers commonly add
    value = str(raw).strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        value = value[1:-1]
    return value


class ServerRegistry:
    """Read-only after load; safe to share across concurrent requests."""

    def __init__(self, servers: list[ServerConfig] | None = None) -> None:
        self._servers: dict[str, ServerConfig] = {}
        for server in servers or []:
            if server.name in self._servers:
                raise ConfigError(f"Duplicate server name {server.name!r}")
            self._servers[server.name] = server

    @classmethod
    def load(cls, raw_sections: Mapping[str, Mapping[str, str]]) -> ServerRegistry:
        servers: list[ServerConfig] = []
        for name, section in raw_sections.items():
            url = _value(section, "url")
            if not url:
                raise ConfigError(f"Server {name!r} is missing required 'url' parameter.")
            servers.append(
                ServerConfig.new(
                    name=name,
                    url=url,
                    prefix=_value(section, "prefix"),
                    username=_value(section, "username"),
                    password=_value(section, "password"),
                    bearer=_value(section, "bearer"),
                )
            )

        registry = cls(servers)
        registry._warn_on_overlapping_prefixes()
        return registry

    def _warn_on_overlapping_prefixes(self) -> None:
        # Multi-match routing strips the first match's prefix for every
        # matched server, which is only right when the prefixes are equal.
        prefixes = sorted({s.prefix for s in self._servers.values() if s.prefix})
        for short in prefixes:
            for long in prefixes:
                if long != short and long.startswith(short):
                    logger.warning(
                        "Prefix %r is a leading substring of prefix %r; "
                        "paths under /%s will match both",
                        short,
                        long,
                        long,
                    )

    def __iter__(self) -> Iterator[ServerConfig]:
        return iter(self._servers.values())

    def __len__(self) -> int:
        return len(self._servers)

    def __getitem__(self, name: str) -> ServerConfig:
        return self._servers[name]

    def __contains__(self, name: object) -> bool:
        return name in self._servers

    def names(self) -> list[str]:
        return list(self._servers)

    def match_prefix(self, path: str) -> list[ServerConfig]:
        """Servers whose prefix starts the path, in registry order."""
        return [
            s for s in self._servers.values() if s.prefix and path.startswith("/" + s.prefix)
        ]


def load_config_file(path: str | Path) -> ServerRegistry:
    config_path = Path(path)
    if not config_path.is_file():
        raise ConfigError(f"Config file not found: {config_path}")

    # No interpolation: passwords and tokens may contain '%'
    parser = configparser.ConfigParser(interpolation=None)
    try:
        parser.read(config_path, encoding="utf-8")
    except (configparser.Error, OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Config file {config_path} could not be parsed: {exc}") from exc

    registry = ServerRegistry.load({name: parser[name] for name in parser.sections()})
    logger.info("Loaded %d upstream server(s) from %s", len(registry), config_path)
    return registry
