import logging
from datetime import datetime, timedelta
from http import HTTPStatus
from pathlib import Path
from typing import Dict, Generic, List, Optional, TypeVar

import tomli
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .exceptions import ConfigError

T = TypeVar("T")


class PackageSource(BaseModel):
    """A remote package repository endpoint"""

    model_config = ConfigDict(frozen=True)

    source_uri: str
    name: Optional[str] = None

    @property
    def key(self) -> str:
        """Stable key used to deduplicate per-source work"""
        return self.source_uri.rstrip("/")


class PackageIdentity(BaseModel):
    """(id, version) pair addressing a package within a source"""

    model_config = ConfigDict(frozen=True)

    id: str
    version: str

    def __str__(self) -> str:
        return f"{self.id} {self.version}"


class Metadata(BaseModel):
    """Service metadata ($metadata document) of a source"""

    source_uri: str
    entity_sets: List[str] = Field(default_factory=list)
    package_properties: List[str] = Field(default_factory=list)


class PackageEntry(BaseModel):
    """A single package record as returned by the feed"""

    id: str
    version: str
    title: Optional[str] = None
    listed: Optional[bool] = None
    published: Optional[datetime] = None
    download_count: Optional[int] = None


class PackageFeed(BaseModel):
    entries: List[PackageEntry] = Field(default_factory=list)


class HttpResult(BaseModel, Generic[T]):
    """Status code of a protocol call, with the payload only on 200 OK"""

    model_config = ConfigDict(frozen=True)

    status_code: HTTPStatus
    data: Optional[T] = None

    @model_validator(mode="after")
    def _payload_matches_status(self) -> "HttpResult":
        if (self.data is not None) != (self.status_code == HTTPStatus.OK):
            raise ValueError(
                f"Payload must be present exactly when status is 200 OK, "
                f"got status {int(self.status_code)} with "
                f"{'a' if self.data is not None else 'no'} payload"
            )
        return self

    @property
    def is_ok(self) -> bool:
        return self.status_code == HTTPStatus.OK

    @classmethod
    def ok(cls, data: T) -> "HttpResult[T]":
        return cls(status_code=HTTPStatus.OK, data=data)

    @classmethod
    def of_status(cls, status_code: HTTPStatus) -> "HttpResult[T]":
        return cls(status_code=status_code)


class ConditionalPushResult(BaseModel):
    """Outcome of a push-if-not-exists orchestration"""

    model_config = ConfigDict(frozen=True)

    package_already_exists: bool
    package_result: Optional[HttpResult[PackageEntry]] = None
    package_pushed_successfully: bool = False
    push_status_code: Optional[HTTPStatus] = None
    time_to_push: Optional[timedelta] = None
    time_to_be_available: Optional[timedelta] = None
    unlist_status_code: Optional[HTTPStatus] = None

    @model_validator(mode="after")
    def _availability_requires_success(self) -> "ConditionalPushResult":
        if self.time_to_be_available is not None and not self.package_pushed_successfully:
            raise ValueError("time_to_be_available is only set when the push succeeded")
        return self


class ClientConfig(BaseModel):
    """Configuration model for the command line client"""

    sources: Dict[str, str] = Field(default_factory=dict)
    timeout: float = 100.0
    log_level: Optional[str] = None

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        if not isinstance(logging.getLevelName(value.upper()), int):
            raise ValueError(f"Unknown log level: {value}")
        return value.upper()

    @classmethod
    def from_toml(cls, path: Path) -> "ClientConfig":
        """Load configuration from TOML file"""
        try:
            with open(path, "rb") as f:
                data = tomli.load(f)
            return cls.model_validate(data.get("nuget-protocol", {}))
        except (OSError, tomli.TOMLDecodeError, ValidationError) as e:
            raise ConfigError(f"Failed to load config {path}: {str(e)}") from e

    def resolve_source(self, value: str) -> PackageSource:
        """Turn a configured source name or a literal URI into a PackageSource"""
        if value.startswith(("http://", "https://")):
            return PackageSource(source_uri=value)
        if value not in self.sources:
            raise ConfigError(f"Unknown package source: {value}")
        return PackageSource(source_uri=self.sources[value], name=value)
