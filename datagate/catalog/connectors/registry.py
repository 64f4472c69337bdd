# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Registry mapping a DataSource type tag to its connector factory."""

import logging
import threading

from datagate.catalog.connectors.base import ConnectorFactory
from datagate.errors import UnknownConnectorType

logger = logging.getLogger(__name__)

_connectors: dict[str, ConnectorFactory] = {}
_lock = threading.Lock()


def register_connector(factory: ConnectorFactory) -> None:
    """Register (or replace) the factory for ``factory.type``."""
    with _lock:
        if factory.type in _connectors:
            logger.debug(f"Replacing connector for type {factory.type}")
        _connectors[factory.type] = factory


def unregister_connector(connector_type: str) -> None:
    with _lock:
        _connectors.pop(connector_type, None)


def get_connector(connector_type: str) -> ConnectorFactory:
    """Look up the factory for a type tag.

    Raises:
        UnknownConnectorType: If no factory is registered for the tag.
    """
    with _lock:
        factory = _connectors.get(connector_type)
        if factory is None:
            raise UnknownConnectorType(connector_type, list(_connectors))
        return factory


def list_connector_types() -> list[dict]:
    """``[{type, display_name, dialect}]`` in registration order."""
    with _lock:
        return [factory.to_dict() for factory in _connectors.values()]
