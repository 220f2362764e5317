"""Document-level metadata objects (Info children, servers, tags)."""

from typing import Any

from pydantic import BaseModel


class Contact(BaseModel):
    name: str = ""
    url: str = ""
    email: str = ""

    def to_openapi(self) -> dict[str, Any]:
        return {key: value for key, value in self.model_dump().items() if value}


class License(BaseModel):
    """License object; ``identifier`` (SPDX) and ``url`` are mutually exclusive."""

    name: str = ""
    identifier: str = ""
    url: str = ""

    def validation_errors(self) -> list[str]:
        errors = []
        if not self.name:
            errors.append("license name is required")
        if self.identifier and self.url:
            errors.append("license identifier and url are mutually exclusive")
        return errors

    def to_openapi(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name}
        if self.identifier:
            data["identifier"] = self.identifier
        if self.url:
            data["url"] = self.url
        return data


class ServerVariable(BaseModel):
    default: str
    enum: list[str] | None = None
    description: str = ""

    def to_openapi(self) -> dict[str, Any]:
        data: dict[str, Any] = {"default": self.default}
        if self.enum:
            data["enum"] = list(self.enum)
        if self.description:
            data["description"] = self.description
        return data


class Server(BaseModel):
    url: str
    description: str = ""
    variables: dict[str, ServerVariable] = {}

    def to_openapi(self) -> dict[str, Any]:
        data: dict[str, Any] = {"url": self.url}
        if self.description:
            data["description"] = self.description
        if self.variables:
            data["variables"] = {name: var.to_openapi() for name, var in self.variables.items()}
        return data


class ExternalDocs(BaseModel):
    url: str
    description: str = ""

    def to_openapi(self) -> dict[str, Any]:
        data: dict[str, Any] = {"url": self.url}
        if self.description:
            data["description"] = self.description
        return data


class Tag(BaseModel):
    name: str
    description: str = ""
    external_docs: ExternalDocs | None = None

    def to_openapi(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name}
        if self.description:
            data["description"] = self.description
        if self.external_docs is not None:
            data["externalDocs"] = self.external_docs.to_openapi()
        return data
