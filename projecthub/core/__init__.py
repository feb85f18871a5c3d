from projecthub.core.utils.checks import ifnone
from projecthub.core.config import CoreSettings, get_settings
from projecthub.core.base import ProjectHub, ProjectHubMeta
from projecthub.core.logging.logger import get_logger, setup_logger

__all__ = [
    "CoreSettings",
    "get_logger",
    "get_settings",
    "ifnone",
    "ProjectHub",
    "ProjectHubMeta",
    "setup_logger",
]
