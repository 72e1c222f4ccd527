from typing import TYPE_CHECKING

from gatekeeper import log

if TYPE_CHECKING:
    from gatekeeper.bot import Bot

log.setup()

instance: "Bot" = None  # Global Bot instance.
