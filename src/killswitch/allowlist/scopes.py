"""Scopes: named groups of VPN servers, and their DNS naming conventions.

AirVPN publishes every scope (the whole world, continents, countries, single
servers) under several DNS names. Scopes that already look like hostnames
are queried literally.

See https://airvpn.org/faq/api/ for the conventions.
"""

from __future__ import annotations

from dataclasses import dataclass

# Suffix templates for non-literal scopes, in lookup order.
_CONVENTIONS: tuple[str, ...] = (
    "{scope}.airservers.org",
    "{scope}.all.vpn.airdns.org",
    "{scope}2.all.vpn.airdns.org",
)


@dataclass(frozen=True)
class Scope:
    """A named group of VPN endpoints to resolve to IP addresses."""

    name: str

    def __post_init__(self) -> None:
        if not self.name or "/" in self.name or self.name.startswith("."):
            raise ValueError(f"Invalid scope name: {self.name!r}")

    @property
    def is_literal(self) -> bool:
        """Scopes with dots are taken literally, e.g. ``server.airservers.org``."""
        return "." in self.name


def candidate_hostnames(scope: Scope) -> tuple[str, ...]:
    """Return the ordered hostnames to query for a scope."""
    if scope.is_literal:
        return (scope.name,)
    return tuple(template.format(scope=scope.name) for template in _CONVENTIONS)


def unique_scopes(names: list[str] | tuple[str, ...]) -> list[Scope]:
    """Build scopes from names, dropping duplicates but keeping the order."""
    seen: set[str] = set()
    scopes: list[Scope] = []
    for name in names:
        name = name.strip().lower()
        if not name or name in seen:
            continue
        seen.add(name)
        scopes.append(Scope(name))
    return scopes
