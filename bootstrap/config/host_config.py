from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from bootstrap.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class PathSettings(BaseModel):
    model_config = ConfigDict(extra='forbid')

    private_frameworks: str = 'frameworks/PrivateFrameworks'
    public_frameworks: str = 'frameworks/PublicFrameworks'
    modules: str = 'modules'


class LoaderSettings(BaseModel):
    model_config = ConfigDict(extra='forbid')

    manifest_names: List[str] = Field(default_factory=lambda: ['info.plist', 'info.yaml'])
    allow_dynamic_import: bool = True
    factories: Dict[str, str] = Field(default_factory=dict)
    ignore: Dict[str, List[str]] = Field(default_factory=dict)

    @field_validator('manifest_names')
    @classmethod
    def _at_least_one(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError('loader.manifest_names must list at least one file name')
        return v

    def ignored(self, root_key: str) -> List[str]:
        return list(self.ignore.get(root_key, []))


class PersistenceSettings(BaseModel):
    model_config = ConfigDict(extra='forbid')

    provider: Literal['none', 'memory', 'sqlite'] = 'none'
    db_path: str = 'runtime/host.db'
    reset_version_table: bool = True

    @property
    def enabled(self) -> bool:
        return self.provider != 'none'


class ChatClientSettings(BaseModel):
    model_config = ConfigDict(extra='forbid')

    enabled: bool = False
    guild_id: Optional[str] = None
    token: Optional[str] = None

    @field_validator('guild_id', 'token', mode='before')
    @classmethod
    def _blank_is_none(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return str(v)

    @model_validator(mode='after')
    def _credentials_when_enabled(self) -> 'ChatClientSettings':
        if self.enabled and (not self.guild_id or not self.token):
            raise ValueError('chat_client is enabled but guild_id or token is missing')
        return self


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra='allow')

    level: str = 'INFO'
    format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    @field_validator('level')
    @classmethod
    def _known_level(cls, v: str) -> str:
        v = str(v).upper()
        if not isinstance(logging.getLevelName(v), int):
            raise ValueError(f'unknown log level {v!r}')
        return v


class HostSettings(BaseModel):
    """Validated host configuration."""
    model_config = ConfigDict(extra='ignore')

    env: str = 'default'
    host_name: str = 'manifold'
    host_version: str = '1.0.0'
    debug_mode: bool = False
    dump_debug_block: bool = False
    paths: PathSettings = Field(default_factory=PathSettings)
    loader: LoaderSettings = Field(default_factory=LoaderSettings)
    persistence: PersistenceSettings = Field(default_factory=PersistenceSettings)
    chat_client: ChatClientSettings = Field(default_factory=ChatClientSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> 'HostSettings':
        try:
            return cls.model_validate(data or {})
        except ValidationError as exc:
            details = '; '.join(
                f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg')}" for e in exc.errors()
            )
            raise ConfigurationError(f'Invalid host configuration: {details}', phase='configuration') from exc


@dataclass
class HostConfig:
    """Parameters for one boot of the host."""
    root: Path
    env: Optional[str] = None
    global_app_config: Optional[Dict[str, Any]] = None
    debug: bool = False

    @classmethod
    def from_params(cls, root: str | Path, **kwargs) -> 'HostConfig':
        return cls(
            root=Path(root).resolve(),
            env=kwargs.get('env'),
            global_app_config=kwargs.get('global_app_config'),
            debug=kwargs.get('debug', False),
        )
