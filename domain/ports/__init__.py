from .chat_client_port import ChatClientPort
from .event_bus_port import EventBusPort
from .persistence_port import PersistencePort, TableDefinition

__all__ = ['ChatClientPort', 'EventBusPort', 'PersistencePort', 'TableDefinition']
