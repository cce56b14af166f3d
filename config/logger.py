import logging

from config.settings import LOG_LEVEL

# One logger for the planner; modules share it instead of creating their own
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s %(levelname)s [%(module)s] %(message)s',
)
# urllib3 logs every Retry it performs at WARNING
logging.getLogger("urllib3.connectionpool").setLevel(logging.ERROR)

logger = logging.getLogger("block_route_planner")

__all__ = ["logger"]
