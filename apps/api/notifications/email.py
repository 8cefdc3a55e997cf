from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol

logger = logging.getLogger(__name__)


class EmailSender(Protocol):
    """Outbound template email transport."""

    async def send(self, template_name: str, recipient: str, variables: Mapping[str, Any]) -> None:
        ...


class LoggingEmailSender:
    """Default sender that only records what would have been sent."""

    async def send(self, template_name: str, recipient: str, variables: Mapping[str, Any]) -> None:
        logger.info(
            "Email %s to %s",
            template_name,
            recipient,
            extra={"template": template_name, "variables": sorted(variables)},
        )
