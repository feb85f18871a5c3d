from projecthub.core.utils.checks import ifnone
from projecthub.core.utils.password import hash_password, verify_password

__all__ = [
    "hash_password",
    "ifnone",
    "verify_password",
]
