"""
Runtime configuration for the sync layer.

All settings come from environment variables prefixed ``INVOICE_SYNC_``
(plus ``LOG_LEVEL``). ``SyncSettings.from_env()`` reads them once; the
resulting frozen dataclass is passed explicitly to the components that need
it, so tests build settings directly instead of patching the environment.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Mapping

from invoice_sync.lib import paths

_PREFIX = "INVOICE_SYNC_"
_TRUTHY = {"1", "true", "yes"}


class EmptyResultPolicy(str, Enum):
    """
    How a loader treats an empty remote collection.

    KEEP: an empty result carries no new information; the persisted
        snapshot stays in place and the loaded flag is not set.
    AUTHORITATIVE: an empty result is the truth; memory and snapshot are
        cleared and the loaded flag is set.
    """

    KEEP = "keep"
    AUTHORITATIVE = "authoritative"


@dataclass(frozen=True)
class SyncSettings:
    """
    Settings for the sync layer.

    Attributes:
        backend: Remote backend kind, ``demo`` or ``impl``.
        remote_url: Base URL of the hosted store.
        api_key: Public API key for the hosted store.
        storage_dir: Directory of the persisted snapshot store.
        initial_load_delay: Seconds between first paint and the first remote pass.
        debounce: Debounce window in seconds per resource name.
        retry_base: First subscription retry delay in seconds.
        retry_max: Cap for the subscription retry delay in seconds.
        storage_poll_interval: Seconds between cross-process storage polls.
        connectivity_interval: Seconds between reachability checks of the
            remote store; 0 disables them.
        empty_result_policy: Treatment of empty remote collections.
        request_timeout: HTTP timeout in seconds.
        port: Port of the status and notification server.
        log_level: Log level name.
    """

    backend: str = "demo"
    remote_url: str = ""
    api_key: str = ""
    storage_dir: Path = field(default_factory=paths.default_storage_dir)
    initial_load_delay: float = 1.0
    debounce: Mapping[str, float] = field(
        default_factory=lambda: {
            "documents": 2.0,
            "customers": 2.0,
            "payment_methods": 0.3,
            "company_info": 1.0,
            "template_preferences": 1.0,
        }
    )
    retry_base: float = 1.0
    retry_max: float = 30.0
    storage_poll_interval: float = 1.0
    connectivity_interval: float = 30.0
    empty_result_policy: EmptyResultPolicy = EmptyResultPolicy.KEEP
    request_timeout: float = 10.0
    port: int = 8000
    log_level: str = "INFO"

    def debounce_for(self, resource: str) -> float:
        """Return the debounce window for a resource, defaulting to one second."""
        return float(self.debounce.get(resource, 1.0))

    @property
    def live(self) -> bool:
        """True when configured for the hosted store rather than the demo backend."""
        return self.backend == "impl"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "SyncSettings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ``.

        Returns:
            Populated SyncSettings.

        Raises:
            ValueError: If a numeric variable cannot be parsed, or the empty
                result policy is unknown.
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        def text(name: str, default: str) -> str:
            return env.get(_PREFIX + name, default).strip()

        def number(name: str, default: float) -> float:
            raw = env.get(_PREFIX + name)
            if raw is None or not raw.strip():
                return default
            try:
                return float(raw)
            except ValueError as exc:
                raise ValueError(f"{_PREFIX}{name} must be a number, got {raw!r}") from exc

        debounce = dict(defaults.debounce)
        for resource in ("documents", "customers", "payment_methods"):
            debounce[resource] = number(f"{resource.upper()}_DEBOUNCE", debounce[resource])
        settings_window = number("SETTINGS_DEBOUNCE", debounce["company_info"])
        debounce["company_info"] = settings_window
        debounce["template_preferences"] = settings_window

        policy = text("EMPTY_POLICY", defaults.empty_result_policy.value).lower()
        try:
            empty_result_policy = EmptyResultPolicy(policy)
        except ValueError as exc:
            raise ValueError(f"{_PREFIX}EMPTY_POLICY must be 'keep' or 'authoritative'") from exc

        storage_dir = text("STORAGE_DIR", "")
        return cls(
            backend=text("BACKEND", defaults.backend).lower(),
            remote_url=text("REMOTE_URL", ""),
            api_key=text("API_KEY", ""),
            storage_dir=Path(storage_dir) if storage_dir else defaults.storage_dir,
            initial_load_delay=number("INITIAL_LOAD_DELAY", defaults.initial_load_delay),
            debounce=debounce,
            retry_base=number("RETRY_BASE", defaults.retry_base),
            retry_max=number("RETRY_MAX", defaults.retry_max),
            storage_poll_interval=number("STORAGE_POLL", defaults.storage_poll_interval),
            connectivity_interval=number(
                "CONNECTIVITY_INTERVAL", defaults.connectivity_interval
            ),
            empty_result_policy=empty_result_policy,
            request_timeout=number("REQUEST_TIMEOUT", defaults.request_timeout),
            port=int(number("PORT", defaults.port)),
            log_level=env.get("LOG_LEVEL", defaults.log_level).upper(),
        )


def flag(name: str, default: bool = False, environ: Mapping[str, str] | None = None) -> bool:
    """Read a boolean ``INVOICE_SYNC_`` variable using the 1/true/yes convention."""
    env = os.environ if environ is None else environ
    raw = env.get(_PREFIX + name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY
