# signals/readiness.py
# One-shot readiness announcements. Each is emitted once per process, after the
# owning service finished its own bootstrap. There is no replay: subscribe with
# once() before the emitter runs, or check the service's ready flag directly.
REGISTRY_READY = 'registry.ready'
VERSION_TABLE_READY = 'version_table.ready'
LOADER_READY = 'loader.ready'
PERSISTENCE_READY = 'persistence.ready'
CHAT_CLIENT_READY = 'chat_client.ready'

# Steady-state signals, emitted any number of times. Subscribe with on().
COMPONENT_ACTIVATED = 'component.activated'
COMPONENT_ROLLED_BACK = 'component.rolled_back'
COMMAND_EXECUTED = 'command.executed'

READINESS_SIGNALS = {REGISTRY_READY, VERSION_TABLE_READY, LOADER_READY, PERSISTENCE_READY, CHAT_CLIENT_READY}
STEADY_STATE_SIGNALS = {COMPONENT_ACTIVATED, COMPONENT_ROLLED_BACK, COMMAND_EXECUTED}


def is_readiness_signal(signal_name: str) -> bool:
    return signal_name in READINESS_SIGNALS
