"""Request - Immutable builder for a single Trading API call.

Every setter returns a new ``Request``; the receiver is never modified, so a
partially built request can be shared and branched freely:

    base = ebay.GetMyeBaySelling()
    active = base.ActiveList({"Include": True})
    sold = base.SoldList({"Include": True})
"""

from __future__ import annotations

import asyncio
import copy
import functools
import logging
import warnings
from typing import Any

from ebay_fluent.definitions import get_definitions, parse_bool
from ebay_fluent.errors import (
    InvalidEndpointError,
    NoAuthTokenError,
    NoVerbError,
    SettingError,
)
from ebay_fluent.models import DefinitionTables, RequestState
from ebay_fluent.pagination import page_count, paginate
from ebay_fluent.parser import normalize
from ebay_fluent.transport import Transport, default_transport
from ebay_fluent.xml_body import build_envelope, xml_to_tree

logger = logging.getLogger(__name__)


SANDBOX = "sandbox"
PRODUCTION = "production"
COMPATIBILITY_LEVEL = "775"
DEFAULT_APP_NAME = "python::ebay-fluent"

# A field whose name contains LIST_MARKER (but not LISTING_MARKER, e.g.
# ListingType) is the collection the call pages through.
LIST_MARKER = "List"
LISTING_MARKER = "Listing"


class Request:
    """One Trading API call: a verb, its fields and the client's globals.

    Usage:
        request = Ebay.from_env().GetItem().ItemID("110043671232")
        item = await request.run()

    Verb, field and global names from the definition tables are available as
    attributes (``request.GetItem()``, ``request.ItemID(...)``). Globals can
    only be set on the ``Ebay`` client; setting one here raises SettingError.
    """

    __slots__ = ("_state", "_transport", "_definitions")

    def __init__(
        self,
        state: RequestState | None = None,
        *,
        transport: Transport | None = None,
        definitions: DefinitionTables | None = None,
    ) -> None:
        """Initialize the request.

        Args:
            state: Starting state; an empty one if None.
            transport: Transport to send through; the process-wide one if None.
            definitions: Definition tables; the process-wide ones if None.
        """
        self._state = state if state is not None else RequestState()
        self._transport = transport
        self._definitions = definitions

    # -------------------------------------------------------------------------
    # State accessors (copies, never live references)
    # -------------------------------------------------------------------------

    @property
    def state(self) -> RequestState:
        return self._state.model_copy(deep=True)

    @property
    def verb(self) -> str | None:
        return self._state.verb

    @property
    def fields(self) -> dict[str, Any]:
        return copy.deepcopy(self._state.fields)

    @property
    def globals(self) -> dict[str, Any]:
        return copy.deepcopy(self._state.globals)

    @property
    def definitions(self) -> DefinitionTables:
        return self._definitions if self._definitions is not None else get_definitions()

    # -------------------------------------------------------------------------
    # Setters
    # -------------------------------------------------------------------------

    def _derive(self, **changes: Any) -> Request:
        return type(self)(
            self._state.replace(**changes),
            transport=self._transport,
            definitions=self._definitions,
        )

    def with_verb(self, name: str) -> Request:
        """Return a copy calling *name*."""
        return self._derive(verb=name)

    def with_field(self, name: str, value: Any) -> Request:
        """Return a copy with field *name* set to *value*."""
        fields = self.fields
        fields[name] = copy.deepcopy(value)
        return self._derive(fields=fields)

    def with_global(self, name: str, value: Any) -> Request:
        """Always raises: globals belong to the Ebay client."""
        raise SettingError(name)

    # -------------------------------------------------------------------------
    # Wire format
    # -------------------------------------------------------------------------

    def endpoint(self) -> str:
        """Resolve the URL for the configured service and environment.

        Raises:
            InvalidEndpointError: If the service is unknown or has no URL for
                the selected environment.
        """
        service_name = self._state.globals.get("serviceName")
        environment = SANDBOX if parse_bool(self._state.globals.get("sandbox")) else PRODUCTION
        url = self.definitions.endpoints.get(service_name, {}).get(environment)
        if not url:
            raise InvalidEndpointError(service_name, environment)
        return url

    def headers(self) -> dict[str, str]:
        """HTTP headers identifying the call and the application."""
        g = self._state.globals
        headers = {
            "X-EBAY-API-CALL-NAME": self.verb,
            "X-EBAY-API-COMPATIBILITY-LEVEL": COMPATIBILITY_LEVEL,
            "X-EBAY-API-CERT-NAME": g.get("cert"),
            "X-EBAY-API-SITEID": g.get("site") or 0,
            "X-EBAY-API-APP-NAME": g.get("app") or DEFAULT_APP_NAME,
        }
        return {key: str(value) for key, value in headers.items() if value is not None}

    def list_field_key(self) -> str | None:
        """Name of the field the call pages through, or None.

        Fields are scanned last-set first; the first name containing "List"
        but not "Listing" wins.
        """
        for key in reversed(list(self._state.fields)):
            if LIST_MARKER in key and LISTING_MARKER not in key:
                return key
        return None

    def pagination(self, page: int = 1) -> dict[str, Any]:
        return {
            "Pagination": {
                "PageNumber": page,
                "EntriesPerPage": self._state.globals.get("perPage"),
            }
        }

    def payload(self, page: int = 1) -> dict[str, Any]:
        """Fields to serialize, with pagination injected into the list field."""
        fields = self.fields
        list_key = self.list_field_key()
        if list_key is not None:
            current = fields[list_key]
            base = current if isinstance(current, dict) else {}
            fields[list_key] = {**base, **self.pagination(page)}
        return fields

    def to_wire_document(self, page: int = 1) -> str:
        """Serialize the request as a ``<Verb>Request`` XML document."""
        body = {
            "RequesterCredentials": {"eBayAuthToken": self._state.globals.get("authToken")},
            **self.payload(page),
        }
        return build_envelope(f"{self.verb}Request", body)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def run(self) -> dict[str, Any] | str:
        """Send the call and return its normalized result.

        Listing calls announcing more than one page are followed page by page
        and merged into one ``results`` list. With the ``raw`` global set, the
        response body of the first page is returned untouched.

        Raises:
            NoAuthTokenError: If no auth token is configured.
            NoVerbError: If no verb is set.
            InvalidEndpointError: If the endpoint cannot be resolved.
            ApiError: If the remote API reports a failure on any page.
            NoResponseWrapperError: If a response lacks ``<Verb>Response``.
        """
        if not self._state.globals.get("authToken"):
            raise NoAuthTokenError()
        if not self.verb:
            raise NoVerbError()

        transport = self._transport or default_transport()
        endpoint = self.endpoint()
        headers = self.headers()

        if parse_bool(self._state.globals.get("raw")):
            return await transport.send(endpoint, headers, self.to_wire_document())

        verb = self.verb
        tables = self.definitions

        async def fetch_page(page: int) -> dict[str, Any]:
            body = await transport.send(endpoint, headers, self.to_wire_document(page))
            return normalize(xml_to_tree(body), verb, tables)

        first = await fetch_page(1)
        if self.list_field_key() is None:
            # Without a list field the page number has nowhere to go.
            if page_count(first) > 1:
                logger.debug("%s reports %d pages; no list field to page", verb, page_count(first))
            return first
        return await paginate(first, fetch_page)

    def run_sync(self) -> dict[str, Any] | str:
        """Blocking variant of ``run`` for code without an event loop."""
        return asyncio.run(self.run())

    def invoke(self) -> Any:
        """Deprecated alias of ``run``."""
        warnings.warn(
            "Request.invoke() is deprecated, use Request.run()",
            DeprecationWarning,
            stacklevel=2,
        )
        return self.run()

    # -------------------------------------------------------------------------
    # Dynamic names and value semantics
    # -------------------------------------------------------------------------

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        kind = self.definitions.kind_of(name)
        if kind == "verb":
            return functools.partial(self.with_verb, name)
        if kind == "field":
            return functools.partial(self.with_field, name)
        if kind == "global":
            return functools.partial(self.with_global, name)
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    def __dir__(self) -> list[str]:
        names = {*object.__dir__(self), *self.definitions.verbs, *self.definitions.fields}
        return sorted(names | set(self.definitions.globals))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Request):
            return NotImplemented
        return self._state == other._state

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Request(verb={self.verb!r}, fields={list(self._state.fields)!r})"
