"""Ebay - Immutable client holding the settings shared by a family of requests.

A client is configured once and branched into any number of independent
requests. Setting a global returns a new client; setting a verb or a field
returns a ``Request`` seeded with the client's globals.
"""

from __future__ import annotations

import copy
import functools
import logging
import warnings
from pathlib import Path
from typing import Any, Mapping

from ebay_fluent.definitions import get_definitions, load_settings, settings_from_env
from ebay_fluent.errors import NoVerbError
from ebay_fluent.models import DEFAULT_GLOBALS, DefinitionTables, RequestState
from ebay_fluent.request import Request
from ebay_fluent.transport import Transport, default_transport

logger = logging.getLogger(__name__)


class Ebay:
    """Entry point for building Trading API calls.

    Usage:
        ebay = Ebay.create({"authToken": token, "sandbox": True})
        orders = await ebay.GetOrders().NumberOfDays(3).run()

    Or with credentials from the environment:
        ebay = Ebay.from_env()

    Verb, field and global names from the definition tables are available as
    attributes, as are endpoint service names (``ebay.Shopping()`` switches
    the service).
    """

    __slots__ = ("_globals", "_transport", "_definitions")

    Request = Request

    def __init__(
        self,
        settings: Mapping[str, Any] | None = None,
        *,
        transport: Transport | None = None,
        definitions: DefinitionTables | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: Global settings, merged over DEFAULT_GLOBALS.
            transport: Transport for every request built from this client;
                       the process-wide one if None.
            definitions: Definition tables; the process-wide ones if None.
        """
        self._globals: dict[str, Any] = copy.deepcopy({**DEFAULT_GLOBALS, **(settings or {})})
        self._transport = transport
        self._definitions = definitions

    @classmethod
    def create(
        cls,
        settings: Mapping[str, Any] | None = None,
        *,
        transport: Transport | None = None,
        definitions: DefinitionTables | None = None,
    ) -> Ebay:
        return cls(settings, transport=transport, definitions=definitions)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        transport: Transport | None = None,
        definitions: DefinitionTables | None = None,
    ) -> Ebay:
        """Build a client from EBAY_TOKEN, EBAY_CERT, EBAY_APP_ID, EBAY_DEV_ID and EBAY_SANDBOX.

        Raises:
            MissingCredentialError: naming the first unset credential variable.
        """
        return cls(settings_from_env(environ), transport=transport, definitions=definitions)

    @classmethod
    def from_config(
        cls,
        config_path: Path | str,
        *,
        transport: Transport | None = None,
        definitions: DefinitionTables | None = None,
    ) -> Ebay:
        """Build a client from a YAML settings file.

        A ``rate_limit`` section configures the limiter of the transport the
        client sends through (the process-wide one unless *transport* is given).
        Only the first configuration of a transport takes effect; loading the
        same or another file again never resets the quota already used.

        Raises:
            ConfigError: If the file is missing, invalid, or references an
                unset environment variable.
        """
        settings = load_settings(Path(config_path))
        if settings.rate_limit is not None:
            target = transport or default_transport()
            logger.debug("Rate limit section in %s", config_path)
            target.configure_rate_limit(
                settings.rate_limit.max_requests, settings.rate_limit.period
            )
        return cls(settings.globals, transport=transport, definitions=definitions)

    @property
    def globals(self) -> dict[str, Any]:
        return copy.deepcopy(self._globals)

    @property
    def definitions(self) -> DefinitionTables:
        return self._definitions if self._definitions is not None else get_definitions()

    def with_global(self, name: str, value: Any) -> Ebay:
        """Return a new client with global *name* set to *value*."""
        settings = self.globals
        settings[name] = value
        return type(self)(settings, transport=self._transport, definitions=self._definitions)

    def with_service(self, service_name: str) -> Ebay:
        """Return a new client talking to *service_name*."""
        return self.with_global("serviceName", service_name)

    def request(self) -> Request:
        """An empty request seeded with this client's globals."""
        return Request(
            RequestState(globals=self.globals),
            transport=self._transport,
            definitions=self._definitions,
        )

    def with_verb(self, name: str) -> Request:
        return self.request().with_verb(name)

    def with_field(self, name: str, value: Any) -> Request:
        return self.request().with_field(name, value)

    async def run(self) -> Any:
        """A client alone is not a call; always raises NoVerbError."""
        raise NoVerbError("Cannot run an empty Request, please define an eBay verb or field")

    def invoke(self) -> Any:
        """Deprecated alias of ``run``."""
        warnings.warn(
            "Ebay.invoke() is deprecated, use Ebay.run()",
            DeprecationWarning,
            stacklevel=2,
        )
        return self.run()

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        kind = self.definitions.kind_of(name)
        if kind == "global":
            return functools.partial(self.with_global, name)
        if kind == "verb":
            return functools.partial(self.with_verb, name)
        if kind == "field":
            return functools.partial(self.with_field, name)
        if kind == "service":
            return functools.partial(self.with_service, name)
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    def __dir__(self) -> list[str]:
        return sorted({*object.__dir__(self), *self.definitions.names()})

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Ebay):
            return NotImplemented
        return self._globals == other._globals

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Ebay(serviceName={self._globals.get('serviceName')!r}, sandbox={self._globals.get('sandbox')!r})"
