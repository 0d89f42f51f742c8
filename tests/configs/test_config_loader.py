import pytest

from bootstrap.config.host_config import HostConfig, HostSettings
from bootstrap.exceptions import ConfigurationError
from bootstrap.host import load_settings
from configs.config_loader import DEFAULT_CONFIG, ConfigLoader
from configs.config_utils import ConfigMerger, dotted_get, merge_configs


def _write(root, env, text):
    path = root / 'configs' / env / 'host_config.yaml'
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding='utf-8')
    return path


@pytest.mark.asyncio
async def test_defaults_without_any_files(tmp_path):
    cfg = await ConfigLoader(tmp_path).load_global_config()

    assert cfg['host_name'] == DEFAULT_CONFIG['host_name']
    assert cfg['loader']['manifest_names'] == ['info.plist', 'info.yaml']
    assert cfg['env'] == 'default'


@pytest.mark.asyncio
async def test_env_layer_overrides_default_layer(tmp_path):
    _write(tmp_path, 'default', 'host_name: base\npersistence:\n  provider: memory\n  db_path: a.db\n')
    _write(tmp_path, 'dev', 'persistence:\n  provider: sqlite\n')

    cfg = await ConfigLoader(tmp_path).load_global_config('dev')

    assert cfg['env'] == 'dev'
    assert cfg['host_name'] == 'base'
    assert cfg['persistence'] == {'provider': 'sqlite', 'db_path': 'a.db', 'reset_version_table': True}


@pytest.mark.asyncio
async def test_env_interpolation_with_defaults(tmp_path, monkeypatch):
    _write(tmp_path, 'default', 'persistence:\n  provider: ${TEST_PROVIDER:-none}\n'
                                'chat_client:\n  token: ${TEST_TOKEN:-}\n')
    monkeypatch.setenv('TEST_PROVIDER', 'memory')
    monkeypatch.delenv('TEST_TOKEN', raising=False)

    cfg = await ConfigLoader(tmp_path).load_global_config()

    assert cfg['persistence']['provider'] == 'memory'
    assert cfg['chat_client']['token'] == ''


@pytest.mark.asyncio
async def test_provided_config_skips_files(tmp_path):
    _write(tmp_path, 'default', 'host_name: from_file\n')

    cfg = await ConfigLoader(tmp_path).load_global_config(provided_config={'debug_mode': True})

    assert cfg['host_name'] == 'manifold'
    assert cfg['debug_mode'] is True


@pytest.mark.asyncio
async def test_malformed_yaml_is_ignored(tmp_path):
    _write(tmp_path, 'default', 'host_name: [unclosed\n')

    cfg = await ConfigLoader(tmp_path).load_global_config()

    assert cfg['host_name'] == 'manifold'


def test_get_config_path_prefers_env(tmp_path):
    loader = ConfigLoader(tmp_path)
    assert loader.get_config_path('prod') is None

    default = _write(tmp_path, 'default', 'host_name: x\n')
    assert loader.get_config_path('prod') == default
    prod = _write(tmp_path, 'prod', 'host_name: y\n')
    assert loader.get_config_path('prod') == prod


def test_merger_replaces_lists_and_merges_dicts():
    merged = merge_configs({'a': {'b': 1, 'c': [1, 2]}}, {'a': {'c': [3]}}, {'a': {'d': 4}})
    assert merged == {'a': {'b': 1, 'c': [3], 'd': 4}}

    with pytest.raises(ValueError):
        ConfigMerger.merge({'a': 1}, {'b': 2}, strict_keys=True)


def test_dotted_get():
    cfg = {'persistence': {'db_path': 'x.db'}}
    assert dotted_get(cfg, 'persistence.db_path') == 'x.db'
    assert dotted_get(cfg, 'persistence.missing', 'fallback') == 'fallback'


def test_settings_reject_enabled_chat_client_without_credentials():
    with pytest.raises(ConfigurationError) as exc_info:
        HostSettings.from_mapping({'chat_client': {'enabled': True, 'guild_id': '', 'token': 'abc'}})
    assert 'chat_client' in str(exc_info.value)


@pytest.mark.parametrize('overrides', [
    {'persistence': {'provider': 'postgres'}},
    {'logging': {'level': 'LOUD'}},
    {'loader': {'manifest_names': []}},
    {'paths': {'plugins': 'x'}},
])
def test_settings_validation_errors(overrides):
    with pytest.raises(ConfigurationError):
        HostSettings.from_mapping(overrides)


def test_settings_normalise_log_level_and_blank_credentials():
    settings = HostSettings.from_mapping({'logging': {'level': 'debug'}, 'chat_client': {'token': '  '}})
    assert settings.logging.level == 'DEBUG'
    assert settings.chat_client.token is None
    assert not settings.persistence.enabled


@pytest.mark.asyncio
async def test_load_settings_applies_debug_flag(tmp_path):
    settings = await load_settings(HostConfig.from_params(tmp_path, debug=True))
    assert settings.debug_mode is True
    assert settings.env == 'default'
