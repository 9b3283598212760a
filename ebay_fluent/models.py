"""Internal data models for ebay-fluent.

All models use Pydantic v2. Request state is frozen; the fluent ``Request`` and
``Ebay`` wrappers replace it wholesale instead of mutating it.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Request State
# =============================================================================


# Settings every Ebay client starts from; caller settings are merged over these.
DEFAULT_GLOBALS: dict[str, Any] = {
    "serviceName": "Trading",
    "sandbox": False,
    "site": 0,
    "raw": False,
    "perPage": 100,
}


class RequestState(BaseModel):
    """Verb, fields and global settings of one API call.

    Two states with equal verb/fields/globals serialize to identical XML.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    verb: str | None = Field(default=None, description="Remote call name, e.g. GetItem")
    fields: dict[str, Any] = Field(
        default_factory=dict, description="Call parameters, serialized in insertion order"
    )
    globals: dict[str, Any] = Field(
        default_factory=dict, description="Cross-call settings (credentials, sandbox, site...)"
    )

    def replace(self, **changes: Any) -> RequestState:
        """Return a deep copy with the given slots replaced."""
        return self.model_copy(update=changes, deep=True)


# =============================================================================
# Response Models
# =============================================================================


class PaginationInfo(BaseModel):
    """Pagination metadata folded out of a ``PaginationResult`` node."""

    model_config = ConfigDict(extra="forbid")

    pages: int = Field(default=0, ge=0, description="TotalNumberOfPages")
    length: int = Field(default=0, ge=0, description="TotalNumberOfEntries")


# =============================================================================
# Definition Tables
# =============================================================================


class DefinitionTables(BaseModel):
    """Vocabulary of the remote API, loaded once per process.

    Names in ``verbs``, ``fields`` and ``globals`` become attributes on ``Ebay``
    and ``Request``. ``endpoints`` maps service name -> environment -> URL.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    verbs: tuple[str, ...] = Field(default=(), description="Call names")
    fields: tuple[str, ...] = Field(default=(), description="Request parameter names")
    globals: tuple[str, ...] = Field(default=(), description="Client-wide setting names")
    endpoints: dict[str, dict[str, str]] = Field(
        default_factory=dict, description="Service name -> {production|sandbox: URL}"
    )
    extraneous: tuple[str, ...] = Field(
        default=(), description="Top-level response keys dropped during normalization"
    )
    date_nodes: frozenset[str] = Field(
        default=frozenset(), description="Lowercased keys whose values are dates"
    )
    numeric_nodes: frozenset[str] = Field(
        default=frozenset(), description="Lowercased keys whose values are numbers"
    )

    @field_validator("date_nodes", "numeric_nodes")
    @classmethod
    def lowercase_node_keys(cls, v: frozenset[str]) -> frozenset[str]:
        return frozenset(key.lower() for key in v)

    def kind_of(self, name: str) -> str | None:
        """Classify a dynamic attribute name: global, verb, field, service or None.

        Globals win over verbs, verbs over fields, fields over service names.
        """
        if name in self.globals:
            return "global"
        if name in self.verbs:
            return "verb"
        if name in self.fields:
            return "field"
        if name in self.endpoints:
            return "service"
        return None

    def names(self) -> set[str]:
        """Every name reachable through attribute dispatch."""
        return {*self.globals, *self.verbs, *self.fields, *self.endpoints}


# =============================================================================
# Runtime Configuration Models
# =============================================================================


class RateLimitConfig(BaseModel):
    """Rate limiting configuration: at most ``max_requests`` per ``period`` seconds."""

    model_config = ConfigDict(extra="forbid")

    max_requests: int = Field(default=5000, gt=0, description="Requests admitted per window")
    period: float = Field(default=86400.0, gt=0, description="Window length in seconds")


class SettingsFile(BaseModel):
    """Top-level settings file structure."""

    model_config = ConfigDict(extra="forbid")

    globals: dict[str, Any] = Field(
        default_factory=dict, description="Client settings (supports ${ENV_VAR} substitution)"
    )
    rate_limit: RateLimitConfig | None = Field(
        default=None, description="Process-wide rate limit, applied once at load"
    )
