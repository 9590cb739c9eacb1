from .category import Category
from .chain_stats import ChainStats
from .opportunity import Opportunity
from .project import Project
from .sync_log import SyncLog

__all__ = ["Category", "ChainStats", "Opportunity", "Project", "SyncLog"]
