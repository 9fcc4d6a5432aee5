from __future__ import annotations

import logging

from .config import AppConfig, build_endpoint
from .errors import ConfigError
from .logging_utils import log_extra
from .models import Failure, FailureKind, Outcome
from .session import QuerySession
from .transport import TransportFactory, warehouse_transport_factory


class TabularQueryService:
    """Runs the configured statement for one caller, one session per call."""

    def __init__(
        self,
        config: AppConfig,
        transport_factory: TransportFactory = warehouse_transport_factory,
    ) -> None:
        self._config = config
        self._transport_factory = transport_factory
        self._log = logging.getLogger(__name__)

    async def fetch(self, credential: str, request_id: str | None = None) -> Outcome:
        try:
            endpoint = build_endpoint(self._config.endpoint)
        except ConfigError as exc:
            self._log.error(
                "Endpoint configuration is invalid",
                extra=log_extra(request_id=request_id, error_message=str(exc)),
            )
            return Failure(FailureKind.CONFIGURATION, str(exc))

        session = QuerySession(
            self._transport_factory,
            request_id=request_id,
            close_grace_seconds=self._config.session.close_grace_seconds,
        )
        return await session.run(endpoint, credential, self._config.query.statement)
