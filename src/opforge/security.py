"""Security schemes and requirement vectors (OpenAPI 3.1).

A requirement maps scheme names to required scopes; all schemes inside one
requirement must be satisfied (AND) while any requirement in a sequence is
sufficient (OR).
"""

from typing import Any, ClassVar, Iterable, Iterator, Literal, Mapping
from urllib.parse import urlparse

from pydantic import BaseModel

from opforge.schema.base import COMPONENT_KEY_PATTERN

API_KEY_LOCATIONS = ("header", "query", "cookie")


def validate_component_key(key: str) -> bool:
    """True when ``key`` is usable as a components map key."""
    return isinstance(key, str) and bool(COMPONENT_KEY_PATTERN.match(key))


def _is_absolute_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class SecurityScheme(BaseModel):
    """Common base of every scheme variant."""

    scheme_type: ClassVar[str] = ""

    description: str = ""

    def validation_errors(self) -> list[str]:
        return []

    def is_valid(self) -> bool:
        return not self.validation_errors()

    def to_openapi(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.scheme_type}
        data.update(self._fields())
        if self.description:
            data["description"] = self.description
        return data

    def _fields(self) -> dict[str, Any]:
        return {}


class APIKeyScheme(SecurityScheme):
    scheme_type: ClassVar[str] = "apiKey"

    name: str
    location: str = "header"

    def validation_errors(self) -> list[str]:
        errors = []
        if not self.name:
            errors.append("apiKey security scheme requires 'name'")
        if self.location not in API_KEY_LOCATIONS:
            errors.append(f"apiKey 'in' must be 'header', 'query', or 'cookie', got {self.location!r}")
        return errors

    def _fields(self) -> dict[str, Any]:
        return {"name": self.name, "in": self.location}


class HTTPScheme(SecurityScheme):
    scheme_type: ClassVar[str] = "http"

    scheme: str
    bearer_format: str = ""

    def validation_errors(self) -> list[str]:
        errors = []
        if not self.scheme:
            errors.append("http security scheme requires 'scheme'")
        elif self.bearer_format and self.scheme.lower() != "bearer":
            errors.append("bearerFormat is only valid for the 'bearer' scheme")
        return errors

    def _fields(self) -> dict[str, Any]:
        data: dict[str, Any] = {"scheme": self.scheme}
        if self.bearer_format:
            data["bearerFormat"] = self.bearer_format
        return data


class OAuthFlow(BaseModel):
    authorization_url: str = ""
    token_url: str = ""
    refresh_url: str = ""
    scopes: dict[str, str] | None = None

    def to_openapi(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.authorization_url:
            data["authorizationUrl"] = self.authorization_url
        if self.token_url:
            data["tokenUrl"] = self.token_url
        if self.refresh_url:
            data["refreshUrl"] = self.refresh_url
        data["scopes"] = dict(self.scopes or {})
        return data


FLOW_REQUIREMENTS = {
    "implicit": ("authorization_url",),
    "password": ("token_url",),
    "clientCredentials": ("token_url",),
    "authorizationCode": ("authorization_url", "token_url"),
}

FlowName = Literal["implicit", "password", "clientCredentials", "authorizationCode"]


class OAuth2Scheme(SecurityScheme):
    scheme_type: ClassVar[str] = "oauth2"

    flows: dict[FlowName, OAuthFlow]

    def validation_errors(self) -> list[str]:
        if not self.flows:
            return ["oauth2 security scheme requires at least one flow"]
        errors = []
        for flow_name, flow in self.flows.items():
            if flow.scopes is None:
                errors.append(f"{flow_name} flow requires 'scopes'")
            for attr in FLOW_REQUIREMENTS[flow_name]:
                if not getattr(flow, attr):
                    errors.append(f"{flow_name} flow requires '{attr}'")
            for attr in ("authorization_url", "token_url", "refresh_url"):
                url = getattr(flow, attr)
                if url and not _is_absolute_url(url):
                    errors.append(f"{flow_name} flow has invalid {attr}: {url!r}")
        return errors

    def _fields(self) -> dict[str, Any]:
        return {"flows": {name: flow.to_openapi() for name, flow in self.flows.items()}}


class OpenIDConnectScheme(SecurityScheme):
    scheme_type: ClassVar[str] = "openIdConnect"

    url: str

    def validation_errors(self) -> list[str]:
        if not self.url:
            return ["openIdConnect security scheme requires 'openIdConnectUrl'"]
        if not _is_absolute_url(self.url):
            return [f"invalid openIdConnectUrl: {self.url!r}"]
        return []

    def _fields(self) -> dict[str, Any]:
        return {"openIdConnectUrl": self.url}


class MutualTLSScheme(SecurityScheme):
    scheme_type: ClassVar[str] = "mutualTLS"


# -- helpers -------------------------------------------------------------------


def api_key_header(name: str, description: str = "") -> APIKeyScheme:
    return APIKeyScheme(name=name, location="header", description=description)


def api_key_query(name: str, description: str = "") -> APIKeyScheme:
    return APIKeyScheme(name=name, location="query", description=description)


def api_key_cookie(name: str, description: str = "") -> APIKeyScheme:
    return APIKeyScheme(name=name, location="cookie", description=description)


def bearer_auth(bearer_format: str = "", description: str = "") -> HTTPScheme:
    return HTTPScheme(scheme="bearer", bearer_format=bearer_format, description=description)


def basic_auth(description: str = "") -> HTTPScheme:
    return HTTPScheme(scheme="basic", description=description)


def oauth2_authorization_code(
    authorization_url: str,
    token_url: str,
    scopes: Mapping[str, str],
    refresh_url: str = "",
    description: str = "",
) -> OAuth2Scheme:
    flow = OAuthFlow(
        authorization_url=authorization_url,
        token_url=token_url,
        refresh_url=refresh_url,
        scopes=dict(scopes),
    )
    return OAuth2Scheme(flows={"authorizationCode": flow}, description=description)


def oauth2_client_credentials(
    token_url: str,
    scopes: Mapping[str, str],
    refresh_url: str = "",
    description: str = "",
) -> OAuth2Scheme:
    flow = OAuthFlow(token_url=token_url, refresh_url=refresh_url, scopes=dict(scopes))
    return OAuth2Scheme(flows={"clientCredentials": flow}, description=description)


def openid_connect(url: str, description: str = "") -> OpenIDConnectScheme:
    return OpenIDConnectScheme(url=url, description=description)


def mutual_tls(description: str = "") -> MutualTLSScheme:
    return MutualTLSScheme(description=description)


# -- requirements --------------------------------------------------------------


class SecurityRequirements:
    """Immutable, ordered sequence of security requirements.

    Every combinator returns a new instance.
    """

    def __init__(self, requirements: Iterable[Mapping[str, Iterable[str]]] = ()):
        self._requirements: tuple[dict[str, list[str]], ...] = tuple(
            {name: list(scopes) for name, scopes in requirement.items()}
            for requirement in requirements
        )

    def __iter__(self) -> Iterator[dict[str, list[str]]]:
        return iter(self.to_openapi())

    def __len__(self) -> int:
        return len(self._requirements)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SecurityRequirements):
            return self._requirements == other._requirements
        if isinstance(other, (list, tuple)):
            return list(self._requirements) == list(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"SecurityRequirements({list(self._requirements)!r})"

    def _extend(self, *requirements: Mapping[str, Iterable[str]]) -> "SecurityRequirements":
        return SecurityRequirements([*self._requirements, *requirements])

    def require_scheme(self, name: str, *scopes: str) -> "SecurityRequirements":
        """Append one requirement naming a single scheme."""
        return self._extend({name: list(scopes)})

    def require_any(self, *names: str) -> "SecurityRequirements":
        """Append one requirement per scheme; any of them satisfies the operation."""
        return self._extend(*({name: []} for name in names))

    def require_all(self, *requirements: Mapping[str, Iterable[str]]) -> "SecurityRequirements":
        """Append a single requirement merging all given ones (AND)."""
        if not requirements:
            return self
        merged: dict[str, list[str]] = {}
        for requirement in requirements:
            for name, scopes in requirement.items():
                merged[name] = list(scopes)
        return self._extend(merged)

    def scheme_names(self) -> set[str]:
        return {name for requirement in self._requirements for name in requirement}

    @property
    def is_public(self) -> bool:
        return any(not requirement for requirement in self._requirements)

    def to_openapi(self) -> list[dict[str, list[str]]]:
        return [
            {name: list(scopes) for name, scopes in requirement.items()}
            for requirement in self._requirements
        ]


def no_auth() -> SecurityRequirements:
    """Explicitly public: a single empty requirement."""
    return SecurityRequirements([{}])
