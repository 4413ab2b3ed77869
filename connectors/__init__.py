from .base import AsyncQueryConnector, QueryConnector
from .results import QueryResult

# Connector registry will be populated as we import concrete implementations
CONNECTOR_REGISTRY = {}


def register_connector(connector_type: str):
    """Decorator to register a connector type"""
    def decorator(cls):
        CONNECTOR_REGISTRY[connector_type] = cls
        return cls
    return decorator


def get_connector(conn_type: str, name: str, config: dict) -> QueryConnector:
    """Factory function to create connector instances"""
    if conn_type not in CONNECTOR_REGISTRY:
        raise ValueError(f"Unsupported connection type: {conn_type}")

    connector_class = CONNECTOR_REGISTRY[conn_type]
    connector = connector_class(name, config)
    # Store the connection type on the instance for later retrieval
    connector.conn_type = conn_type
    return connector


def get_async_connector(conn_type: str, name: str, config: dict) -> AsyncQueryConnector:
    """Same as get_connector, wrapped for use from async code"""
    return AsyncQueryConnector(get_connector(conn_type, name, config))


# Import connectors to trigger registration
from .dataframe_connector import DataFrameConnector, sqldf  # noqa: E402, F401
from .sqlalchemy_connector import SQLAlchemyConnector  # noqa: E402, F401
