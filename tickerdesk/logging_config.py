"""tickerdesk logging configuration.

tickerdesk uses the shared InstruktAI logging standard (`instrukt_ai_logging`).
The log level comes from `TICKERDESK_LOG_LEVEL`; the destination is owned by
the logging package, not by this library.
"""

from __future__ import annotations

import os
from typing import Optional

from instrukt_ai_logging import configure_logging

from tickerdesk.constants import ENV_LOG_LEVEL


def setup_logging(level: Optional[str] = None) -> None:
    """Configure tickerdesk logging.

    Args:
        level: Optional override for `TICKERDESK_LOG_LEVEL`.
    """
    if level:
        os.environ[ENV_LOG_LEVEL] = level

    configure_logging("tickerdesk")
