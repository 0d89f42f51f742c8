from __future__ import annotations
import asyncio
import copy
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Final, Optional, Sequence
import yaml

from configs.config_utils import ConfigMerger

__all__: Sequence[str] = ('ConfigLoader', 'DEFAULT_CONFIG', 'HOST_CONFIG_FILENAME')
logger = logging.getLogger(__name__)

_ENV_DEFAULT: Final[str] = 'default'
HOST_CONFIG_FILENAME: Final[str] = 'host_config.yaml'

DEFAULT_CONFIG: Dict[str, Any] = {
    'env': _ENV_DEFAULT,
    'host_name': 'manifold',
    'host_version': '1.0.0',
    'debug_mode': False,
    'dump_debug_block': False,
    'paths': {
        'private_frameworks': 'frameworks/PrivateFrameworks',
        'public_frameworks': 'frameworks/PublicFrameworks',
        'modules': 'modules',
    },
    'loader': {
        'manifest_names': ['info.plist', 'info.yaml'],
        'allow_dynamic_import': True,
        'factories': {},
        'ignore': {
            'private_frameworks': ['.DS_Store'],
            'public_frameworks': ['.DS_Store'],
            'modules': ['.DS_Store'],
        },
    },
    'persistence': {
        'provider': 'none',
        'db_path': 'runtime/host.db',
        'reset_version_table': True,
    },
    'chat_client': {
        'enabled': False,
        'guild_id': None,
        'token': None,
    },
    'logging': {
        'level': 'INFO',
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    },
}

_RE_ENV_DEFAULT: Final[re.Pattern[str]] = re.compile('\\$\\{([A-Za-z_][A-Za-z0-9_]*)(?::-|-)(.*?)\\}')


def _interpolate_env(value: str) -> str:
    if not isinstance(value, str):
        return value

    def _repl(match: re.Match[str]) -> str:
        var, default = (match.group(1), match.group(2))
        return os.getenv(var, default)

    before = value
    value = _RE_ENV_DEFAULT.sub(_repl, value)
    value = os.path.expandvars(value)

    if before != value:
        logger.debug("Env expand: '%s' → '%s'", before, value)
    elif '${' in before:
        logger.warning("Unresolved env var in '%s'", before)

    return value


def _expand_tree(node: Any) -> Any:
    if isinstance(node, dict):
        return {k: _expand_tree(v) for k, v in node.items()}
    if isinstance(node, list):
        return [_expand_tree(v) for v in node]
    if isinstance(node, str):
        return _interpolate_env(node)
    return node


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding='utf-8')) or {}
        if not isinstance(data, dict):
            logger.warning('%s does not contain a top‑level mapping – ignored', path)
            return {}
        return data
    except FileNotFoundError:
        logger.debug('Config file not found: %s', path)
        return {}
    except (OSError, yaml.YAMLError) as exc:
        logger.error('Failed to read %s: %s', path, exc, exc_info=True)
        return {}


class ConfigLoader:

    def __init__(self, package_root: Optional[Path] = None) -> None:
        self._package_root: Path = package_root if package_root is not None else Path(__file__).resolve().parents[1]

    @property
    def package_root(self) -> Path:
        return self._package_root

    async def load_global_config(self, env: Optional[str] = None,
                                 provided_config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        env = env or _ENV_DEFAULT
        cfg: Dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)
        cfg['env'] = env

        if provided_config is not None:
            logger.info('Using provided global configuration object.')
            cfg = ConfigMerger.merge(cfg, provided_config, 'PROVIDED_CONFIG')
        else:
            logger.info('Loading host configuration for env=%s', env)
            cfg = await self._load_host_configs(cfg, env)

        cfg = _expand_tree(cfg)
        logger.info("✓ Host configuration loaded for env='%s'", env)
        logger.debug('Resolved host config keys: %s', list(cfg))
        return cfg

    async def _load_host_configs(self, cfg: Dict[str, Any], env: str) -> Dict[str, Any]:
        layers = [('DEFAULT_HOST_CONFIG', self._package_root / 'configs' / _ENV_DEFAULT / HOST_CONFIG_FILENAME)]
        if env != _ENV_DEFAULT:
            layers.append((f'ENV_HOST_CONFIG ({env})', self._package_root / 'configs' / env / HOST_CONFIG_FILENAME))

        for label, path in layers:
            data = await asyncio.to_thread(_load_yaml, path)
            if data:
                cfg = ConfigMerger.merge(cfg, data, label)
                logger.info('Merged %s: %s', label, path)
            elif label.startswith('ENV_'):
                logger.warning('%s not found: %s', label, path)
        return cfg

    def get_config_path(self, env: str = _ENV_DEFAULT) -> Optional[Path]:
        if env != _ENV_DEFAULT:
            env_path = self._package_root / 'configs' / env / HOST_CONFIG_FILENAME
            if env_path.exists():
                return env_path

        default_path = self._package_root / 'configs' / _ENV_DEFAULT / HOST_CONFIG_FILENAME
        return default_path if default_path.exists() else None
