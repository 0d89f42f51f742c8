import logging
import plistlib
from unittest.mock import AsyncMock, MagicMock

import pytest

from bootstrap.exceptions import DependencyResolutionError
from bootstrap.loader.activation import ComponentFactoryTable, EntryPointActivator
from bootstrap.loader.engine import LOADER_NAME, LoaderEngine
from core.lifecycle import Capability, ComponentKind
from core.results import LoadFailureReason, LoadState
from signals.readiness import COMPONENT_ACTIVATED, COMPONENT_ROLLED_BACK, LOADER_READY


async def _ready_engine(context, **kwargs) -> LoaderEngine:
    await context.versions.init(context)
    await context.registry.initialize(context)
    engine = LoaderEngine(context, **kwargs)
    await engine.initialize()
    return engine


def _chat_ready(context):
    context.chat_client = AsyncMock()
    context.flags.chat_client_loaded = True
    return context.chat_client


@pytest.mark.asyncio
async def test_initialize_registers_loader_and_emits_ready(context):
    seen = MagicMock()
    context.bus.once(LOADER_READY, seen)

    await _ready_engine(context)

    seen.assert_called_once()
    assert context.flags.loader_loaded
    assert LOADER_NAME in context.registry
    assert LOADER_NAME in context.versions


@pytest.mark.asyncio
async def test_classify_by_location(context, host_tree, tmp_path):
    engine = await _ready_engine(context)

    assert engine.classify(host_tree.root / 'frameworks/PrivateFrameworks/A/info.plist') is ComponentKind.SERVICE_PROVIDER
    assert engine.classify(host_tree.root / 'frameworks/PublicFrameworks/B/info.plist') is ComponentKind.SERVICE_PROVIDER
    assert engine.classify(host_tree.root / 'modules/C/info.plist') is ComponentKind.FEATURE_UNIT
    assert engine.classify(host_tree.root / 'elsewhere/D/info.plist') is None


@pytest.mark.asyncio
async def test_unclassifiable_path_fails_without_side_effects(context, host_tree):
    engine = await _ready_engine(context)
    stray = host_tree.write_manifest(host_tree.root / 'elsewhere' / 'Stray', {'Module Name': 'Stray'})
    before = context.registry.names()

    result = await engine.load_request(stray)

    assert not result
    assert result.state is LoadState.CLASSIFICATION_FAILED
    assert result.reason is LoadFailureReason.CLASSIFICATION_FAILED
    assert result.message.startswith('Manifest is outside every resource root')
    assert 'phase=classification' in result.message
    assert context.registry.names() == before


@pytest.mark.asyncio
async def test_service_provider_is_registered_activated_and_attached(context, host_tree):
    engine = await _ready_engine(context)
    activated = MagicMock()
    context.bus.on(COMPONENT_ACTIVATED, activated)

    result = await engine.load_request(host_tree.service_provider('Storage', version='2.0.0'))

    assert result.success and result.state is LoadState.ACTIVATED
    assert context.registry.find('Storage').kind is ComponentKind.SERVICE_PROVIDER
    assert context.versions.snapshot()['Storage'].version == '2.0.0'
    handle = context.get_service_provider('Storage')
    assert handle.target.calls == 1
    assert handle.provides('storage')
    activated.assert_called_once()


@pytest.mark.asyncio
async def test_scenario_a_parent_then_sub_component(context, host_tree):
    engine = await _ready_engine(context)
    parent_dir = host_tree.root / 'modules' / 'Parent'
    host_tree.feature_unit('Child', directory=parent_dir / 'Child')
    manifest = host_tree.feature_unit('Parent', structure={'Child': 'Child/info.plist'})

    result = await engine.load_request(manifest)

    assert result.success
    assert [c.name for c in result.children] == ['Child']
    names = context.registry.names()
    assert names.index('Parent') < names.index('Child')
    assert {'Parent', 'Child'} <= set(context.versions.names())


@pytest.mark.asyncio
async def test_failed_child_does_not_fail_parent(context, host_tree):
    engine = await _ready_engine(context)
    parent_dir = host_tree.root / 'modules' / 'Parent'
    host_tree.feature_unit('Child', directory=parent_dir / 'Child', failing=True)
    manifest = host_tree.feature_unit('Parent', structure={'Child': 'Child/info.plist', 'Gone': 'Gone/info.plist'})

    result = await engine.load_request(manifest)

    assert result.success
    child, gone = result.children
    assert child.reason is LoadFailureReason.ACTIVATION_THREW
    assert gone.reason is LoadFailureReason.READ_FAILED
    assert 'Parent' in context.registry
    assert 'Child' not in context.registry


@pytest.mark.asyncio
async def test_scenario_b_hard_chat_dependency_unmet(context, host_tree):
    engine = await _ready_engine(context)
    manifest = host_tree.feature_unit('Needy', settings={'dependsChatClient': True})

    result = await engine.load_request(manifest)

    assert not result
    assert result.reason is LoadFailureReason.HARD_DEPENDENCY_UNMET
    assert result.state is LoadState.ROLLED_BACK
    assert 'requires the chat client' in result.message
    assert 'Needy' not in context.registry
    assert 'Needy' not in context.versions


@pytest.mark.asyncio
async def test_soft_chat_dependency_only_warns(context, host_tree):
    engine = await _ready_engine(context)
    manifest = host_tree.feature_unit('Curious', settings={'canUseChatClient': True})

    result = await engine.load_request(manifest)

    assert result.success
    assert any('wants the chat client' in w for w in result.warnings)
    assert 'Curious' in context.registry


@pytest.mark.asyncio
async def test_rollback_on_entry_point_error(context, host_tree):
    engine = await _ready_engine(context)
    rolled_back = MagicMock()
    context.bus.on(COMPONENT_ROLLED_BACK, rolled_back)
    parent_dir = host_tree.root / 'modules' / 'Broken'
    host_tree.feature_unit('Orphan', directory=parent_dir / 'Orphan')
    manifest = host_tree.feature_unit('Broken', failing=True, structure={'Orphan': 'Orphan/info.plist'})
    registry_before = context.registry.names()
    versions_before = context.versions.names()

    result = await engine.load_request(manifest)

    assert not result
    assert result.state is LoadState.ROLLED_BACK
    assert result.reason is LoadFailureReason.ACTIVATION_THREW
    assert 'refuses to start' in result.message
    assert context.registry.names() == registry_before
    assert context.versions.names() == versions_before
    assert 'Broken' not in context.feature_units
    assert result.children == []
    rolled_back.assert_called_once()


@pytest.mark.asyncio
async def test_rollback_of_service_provider_detaches_handle(context, host_tree):
    engine = await _ready_engine(context)

    result = await engine.load_request(host_tree.service_provider('Flaky', failing=True))

    assert result.reason is LoadFailureReason.ACTIVATION_THREW
    assert 'Flaky' not in context.registry
    assert 'Flaky' not in context.service_providers
    assert context.get_service_provider('Flaky') is None


@pytest.mark.asyncio
async def test_service_provider_missing_entry_point_keeps_registration(context, host_tree, caplog):
    engine = await _ready_engine(context)
    directory = host_tree.root / 'frameworks/PrivateFrameworks/Partial'
    host_tree.write_source(directory, 'Partial', entry='other')
    manifest = host_tree.service_provider('Partial', entry='start', directory=directory, with_source=False)

    with caplog.at_level(logging.ERROR):
        result = await engine.load_request(manifest)

    assert result.success
    assert result.reason is LoadFailureReason.ENTRY_POINT_MISSING
    assert 'Partial' in context.registry
    assert "Main function 'start' not found" in caplog.text


@pytest.mark.asyncio
async def test_feature_unit_missing_object_rolls_back(context, host_tree):
    engine = await _ready_engine(context)
    directory = host_tree.root / 'modules' / 'Hollow'
    directory.mkdir(parents=True)
    (directory / 'Hollow.py').write_text('something_else = 1\n', encoding='utf-8')
    manifest = host_tree.feature_unit('Hollow', directory=directory, with_source=False)

    result = await engine.load_request(manifest)

    assert result.reason is LoadFailureReason.ACTIVATION_THREW
    assert 'Hollow' not in context.registry


@pytest.mark.asyncio
async def test_feature_unit_without_entry_point_is_registered_only(context, host_tree):
    engine = await _ready_engine(context)
    manifest = host_tree.feature_unit('Passive', entry='', with_source=False)

    result = await engine.load_request(manifest)

    assert result.success
    assert 'Passive' in context.registry
    assert 'Passive' not in context.feature_units


@pytest.mark.asyncio
async def test_factory_table_is_consulted_before_import(context, host_tree):
    component = MagicMock()
    component.start = AsyncMock()
    activator = EntryPointActivator(ComponentFactoryTable({'Wired': lambda: component}), allow_dynamic_import=False)
    engine = await _ready_engine(context, activator=activator)

    result = await engine.load_request(host_tree.feature_unit('Wired', with_source=False))

    assert result.success
    component.start.assert_awaited_once_with(context)
    assert context.feature_units['Wired'] is component


@pytest.mark.asyncio
async def test_dynamic_import_disabled_without_factory(context, host_tree):
    activator = EntryPointActivator(allow_dynamic_import=False)
    engine = await _ready_engine(context, activator=activator)

    provider = await engine.load_request(host_tree.service_provider('Remote'))
    unit = await engine.load_request(host_tree.feature_unit('Local'))

    assert provider.success and provider.reason is LoadFailureReason.ENTRY_POINT_MISSING
    assert unit.reason is LoadFailureReason.ACTIVATION_THREW
    assert 'Remote' in context.registry
    assert 'Local' not in context.registry


@pytest.mark.asyncio
async def test_kind_location_mismatch_is_invalid(context, host_tree):
    engine = await _ready_engine(context)
    directory = host_tree.root / 'modules' / 'Misplaced'
    manifest = host_tree.service_provider('Misplaced', directory=directory)

    result = await engine.load_request(manifest)

    assert result.reason is LoadFailureReason.INVALID_MANIFEST
    assert 'Misplaced' not in context.registry


@pytest.mark.asyncio
async def test_registration_skipped_when_services_not_loaded(context, host_tree):
    engine = LoaderEngine(context)

    result = await engine.load_request(host_tree.feature_unit('Early'))

    assert result.success
    assert len(context.registry) == 0
    assert len(context.versions) == 0


@pytest.mark.asyncio
async def test_commands_registered_once_across_runs(context_factory, host_tree):
    manifest = host_tree.feature_unit(
        'Dice',
        settings={'canUseChatClient': True},
        abilities={'canInitSlashCommands': True},
        extra={
            'Module Commands': {'Roll': 'Roll dice', 'Ping': 'Pong'},
            'Module Command Arguments': {'Roll': 'Sides', 'Ping': 'none'},
            'Module Command Arg Type': {'Sides': 4},
        },
    )

    first = context_factory()
    client = _chat_ready(first)
    engine = await _ready_engine(first)
    assert (await engine.load_request(manifest)).success

    client.register_basic_command.assert_awaited_once_with('ping', 'Pong', False)
    name, description, arguments, debug = client.register_argument_command.await_args.args
    assert (name, description, debug) == ('roll', 'Roll dice', False)
    assert [a.name for a in arguments] == ['sides']
    assert plistlib.loads(manifest.read_bytes())['Module Settings']['hasPreviousInit'] is True

    second = context_factory()
    client2 = _chat_ready(second)
    engine2 = await _ready_engine(second)
    assert (await engine2.load_request(manifest)).success
    client2.register_basic_command.assert_not_awaited()
    client2.register_argument_command.assert_not_awaited()


@pytest.mark.asyncio
async def test_debug_mode_units_never_write_the_flag(context, host_tree):
    client = _chat_ready(context)
    engine = await _ready_engine(context)
    manifest = host_tree.feature_unit(
        'Dev',
        settings={'dependsChatClient': True, 'debugMode': True},
        abilities={'canInitSlashCommands': True},
        extra={'Module Commands': {'Test': 'Test command'}},
    )

    assert (await engine.load_request(manifest)).success

    client.register_basic_command.assert_awaited_once_with('test', 'Test command', True)
    assert 'hasPreviousInit' not in plistlib.loads(manifest.read_bytes())['Module Settings']


@pytest.mark.asyncio
async def test_registrar_failures_do_not_fail_the_request(context, host_tree, caplog):
    client = _chat_ready(context)
    client.register_basic_command.side_effect = RuntimeError('rate limited')
    engine = await _ready_engine(context)
    manifest = host_tree.feature_unit(
        'Chatty',
        settings={'canUseChatClient': True},
        abilities={'canInitSlashCommands': True},
        extra={'Module Commands': {'Hi': 'Say hi'}},
    )

    with caplog.at_level(logging.ERROR):
        result = await engine.load_request(manifest)

    assert result.success
    assert 'rate limited' in caplog.text
    assert 'hasPreviousInit' not in plistlib.loads(manifest.read_bytes())['Module Settings']


@pytest.mark.asyncio
async def test_commands_not_registered_without_chat_client(context, host_tree):
    engine = await _ready_engine(context)
    manifest = host_tree.feature_unit('Quiet', settings={'canUseChatClient': True},
                                      abilities={'canInitSlashCommands': True},
                                      extra={'Module Commands': {'Hi': 'Say hi'}})

    assert (await engine.load_request(manifest)).success
    assert 'hasPreviousInit' not in plistlib.loads(manifest.read_bytes())['Module Settings']


@pytest.mark.asyncio
async def test_lookups_and_unload_stub(context, host_tree, caplog):
    engine = await _ready_engine(context)
    await engine.load_request(host_tree.service_provider('Storage'))

    assert engine.request_service_provider('Storage').name == 'Storage'
    assert engine.request_feature_unit('Nope') is None
    with caplog.at_level(logging.INFO):
        engine.unload_request('Storage')
    assert 'unload request for: Storage' in caplog.text
    assert 'Storage' in context.registry


def test_unmet_hard_dependency_is_raised_with_capability(context):
    engine = LoaderEngine(context)
    descriptor = MagicMock(needs_chat_client=True, wants_chat_client=False)
    descriptor.name = 'Needy'

    with pytest.raises(DependencyResolutionError) as info:
        engine._check_dependencies(descriptor, MagicMock(warnings=[]))

    assert info.value.component_id == 'Needy'
    assert info.value.capability == Capability.NEEDS_CHAT_CLIENT.value
    assert info.value.phase == 'dependency_gate'


@pytest.mark.asyncio
async def test_unexpected_error_before_registration_is_reported(context, host_tree):
    engine = await _ready_engine(context)
    engine.processor = MagicMock()
    engine.processor.parse_file.side_effect = RuntimeError('parser bug')
    registry_before = context.registry.names()

    result = await engine.load_request(host_tree.feature_unit('Odd'))

    assert not result
    assert result.state is LoadState.PARSE_FAILED
    assert result.reason is LoadFailureReason.UNEXPECTED_ERROR
    assert result.message == 'Unexpected RuntimeError: parser bug'
    assert context.registry.names() == registry_before


@pytest.mark.asyncio
async def test_unexpected_error_after_registration_rolls_back(context, host_tree):
    engine = await _ready_engine(context)
    engine._activate = AsyncMock(side_effect=RecursionError('manifest cycle'))
    rolled_back = MagicMock()
    context.bus.on(COMPONENT_ROLLED_BACK, rolled_back)

    result = await engine.load_request(host_tree.feature_unit('Loop'))

    assert not result
    assert result.state is LoadState.ROLLED_BACK
    assert result.reason is LoadFailureReason.UNEXPECTED_ERROR
    assert result.message == 'Unexpected RecursionError: manifest cycle'
    assert 'Loop' not in context.registry
    assert 'Loop' not in context.versions
    rolled_back.assert_called_once()
