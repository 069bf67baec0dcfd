"""Activity and orchestrator registry.

Registration happens once at startup on a mutable ``Registry``;
``freeze()`` turns it into an immutable ``Registrations`` snapshot that the
worker and every runner share by reference. There is no module-level
singleton: two workers in one process can carry two independent sets.

ARCHITECTURE
────────────
::

    Registry (startup, mutable)
      ├── .add_activity(fn, name)                       ─ store activity
      ├── .add_orchestrator(fn, name, version, latest)  ─ store orchestrator
      ├── @activity(name) / @orchestrator(name, ...)    ─ decorator forms
      └── .freeze()  ──►  Registrations (read-only)
                            ├── .get_activity(name)
                            └── .get_orchestrator(name, version)

BEST PRACTICES
──────────────
- Build the registry in the process entry point and pass the frozen
  ``Registrations`` to ``TaskHubWorker``.
- In tests, build a fresh ``Registry`` per test.

Tags:
    taskhub, execution, registry, lookup
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from taskhub.core.errors import (
    ActivityNotFoundError,
    OrchestratorNotFoundError,
    RegistrationError,
    VersionNotRegisteredError,
)

ActivityFn = Callable[..., Any]
OrchestratorFn = Callable[..., Any]


@dataclass(frozen=True)
class OrchestratorEntry:
    """All registered implementations of one orchestrator name.

    ``default`` is the unversioned implementation; ``versions`` maps version
    names to implementations and ``latest`` names the version used when the
    history does not request one.
    """

    name: str
    default: OrchestratorFn | None = None
    versions: Mapping[str, OrchestratorFn] = field(default_factory=dict)
    latest: str | None = None

    def resolve(self, version: str | None) -> tuple[str | None, OrchestratorFn]:
        """Pick the implementation for a requested version.

        Raises:
            VersionNotRegisteredError: If ``version`` is given but unknown, or
                nothing matches an unversioned request.
        """
        if version:
            fn = self.versions.get(version)
            if fn is None:
                raise VersionNotRegisteredError(self.name, version)
            return version, fn
        if self.latest is not None:
            return self.latest, self.versions[self.latest]
        if self.default is not None:
            return None, self.default
        raise VersionNotRegisteredError(self.name, "<unversioned>")


@dataclass(frozen=True)
class Registrations:
    """Immutable name → implementation lookup shared by all runners."""

    activities: Mapping[str, ActivityFn] = field(default_factory=dict)
    orchestrators: Mapping[str, OrchestratorEntry] = field(default_factory=dict)

    def get_activity(self, name: str) -> ActivityFn:
        """Get an activity implementation.

        Raises:
            ActivityNotFoundError: If nothing is registered under ``name``.
        """
        fn = self.activities.get(name)
        if fn is None:
            raise ActivityNotFoundError(name)
        return fn

    def get_orchestrator(self, name: str, version: str | None = None) -> tuple[str | None, OrchestratorFn]:
        """Get an orchestrator implementation and the version name it runs as.

        Raises:
            OrchestratorNotFoundError: If nothing is registered under ``name``.
            VersionNotRegisteredError: If the requested version is unknown.
        """
        entry = self.orchestrators.get(name)
        if entry is None:
            raise OrchestratorNotFoundError(name)
        return entry.resolve(version)

    def has_activity(self, name: str) -> bool:
        return name in self.activities

    def has_orchestrator(self, name: str) -> bool:
        return name in self.orchestrators


class Registry:
    """Mutable builder for ``Registrations``.

    Example:
        >>> registry = Registry()
        >>>
        >>> @registry.activity("echo")
        ... def echo(ctx, value):
        ...     return value
        >>>
        >>> registrations = registry.freeze()
        >>> registrations.get_activity("echo") is echo
        True
    """

    def __init__(self):
        self._activities: dict[str, ActivityFn] = {}
        self._orchestrators: dict[str, dict[str, Any]] = {}

    def add_activity(self, fn: ActivityFn, name: str | None = None) -> str:
        """Register an activity. ``name`` defaults to the function name.

        Raises:
            RegistrationError: If the name is empty or already taken.
        """
        key = name or getattr(fn, "__name__", "")
        if not key:
            raise RegistrationError("An activity name is required")
        if key in self._activities:
            raise RegistrationError(f"An activity named '{key}' is already registered")
        self._activities[key] = fn
        return key

    def add_orchestrator(
        self,
        fn: OrchestratorFn,
        name: str | None = None,
        *,
        version: str | None = None,
        is_latest: bool = False,
    ) -> str:
        """Register an orchestrator, optionally as one version of a name.

        Raises:
            RegistrationError: On duplicates, or on ``is_latest`` without a
                version, or on a second latest version.
        """
        key = name or getattr(fn, "__name__", "")
        if not key:
            raise RegistrationError("An orchestrator name is required")
        if is_latest and not version:
            raise RegistrationError(f"Orchestrator '{key}' cannot be latest without a version")

        slot = self._orchestrators.setdefault(key, {"default": None, "versions": {}, "latest": None})
        if version:
            if version in slot["versions"]:
                raise RegistrationError(f"Version '{version}' of orchestrator '{key}' is already registered")
            if is_latest and slot["latest"] is not None:
                raise RegistrationError(
                    f"Orchestrator '{key}' already has latest version '{slot['latest']}'"
                )
            slot["versions"][version] = fn
            if is_latest:
                slot["latest"] = version
        else:
            if slot["default"] is not None:
                raise RegistrationError(f"An orchestrator named '{key}' is already registered")
            slot["default"] = fn
        return key

    def activity(self, name: str | None = None) -> Callable[[ActivityFn], ActivityFn]:
        """Decorator form of ``add_activity``."""

        def decorator(fn: ActivityFn) -> ActivityFn:
            self.add_activity(fn, name)
            return fn

        return decorator

    def orchestrator(
        self,
        name: str | None = None,
        *,
        version: str | None = None,
        is_latest: bool = False,
    ) -> Callable[[OrchestratorFn], OrchestratorFn]:
        """Decorator form of ``add_orchestrator``."""

        def decorator(fn: OrchestratorFn) -> OrchestratorFn:
            self.add_orchestrator(fn, name, version=version, is_latest=is_latest)
            return fn

        return decorator

    def freeze(self) -> Registrations:
        """Snapshot the current registrations into an immutable value."""
        orchestrators = {
            key: OrchestratorEntry(
                name=key,
                default=slot["default"],
                versions=MappingProxyType(dict(slot["versions"])),
                latest=slot["latest"],
            )
            for key, slot in self._orchestrators.items()
        }
        return Registrations(
            activities=MappingProxyType(dict(self._activities)),
            orchestrators=MappingProxyType(orchestrators),
        )
