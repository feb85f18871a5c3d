from projecthub.services.api import create_app
from projecthub.services.auth import bearer_scheme, get_caller, get_service

__all__ = ["bearer_scheme", "create_app", "get_caller", "get_service"]
