"""
Interceptor data models - rules, configuration, journal entries and delivery targets
"""

import datetime
import uuid
from dataclasses import dataclass
from typing import Literal, Optional, Tuple, Union
from urllib.parse import urlsplit

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from interceptor.errors import MissingTarget


def new_id() -> str:
    return uuid.uuid4().hex


def is_absolute_url(value: str) -> bool:
    """True when ``value`` has both a scheme and a network location"""
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    return bool(parts.scheme and parts.netloc)


# =============================================================================
# RULES / CONFIG
# =============================================================================
class Rule(BaseModel):
    """One prefix -> target mapping. Stored with camelCase keys."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(default_factory=new_id)
    title: str = ""
    description: Optional[str] = None
    source_url_prefix: str = Field(alias="sourceUrlPrefix")
    # older documents call this field localFilePath
    target: str = Field(default="", validation_alias=AliasChoices("target", "localFilePath"))
    ignore_query_params: bool = Field(default=True, alias="ignoreQueryParams")


class Config(BaseModel):
    model_config = ConfigDict(frozen=True)

    rules: Tuple[Rule, ...] = ()

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# JOURNAL
# =============================================================================
class LogEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(default_factory=new_id)
    timestamp: datetime.datetime = Field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )
    request_url: str = Field(alias="requestUrl")
    served_file: str = Field(alias="servedFile")
    status: Literal["success", "error"]
    method: Optional[str] = None


# =============================================================================
# TARGETS
# =============================================================================
@dataclass(frozen=True)
class LocalTarget:
    path: str


@dataclass(frozen=True)
class RemoteTarget:
    url: str


Target = Union[LocalTarget, RemoteTarget]


def parse_target(target: str) -> Target:
    """Decide once whether a rule target is a remote URL or a local path"""
    if not target or not target.strip():
        raise MissingTarget("Rule has no target configured.")
    if target.startswith("http://") or target.startswith("https://"):
        return RemoteTarget(url=target)
    return LocalTarget(path=target)
