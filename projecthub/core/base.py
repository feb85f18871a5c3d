"""ProjectHub base class. Provides unified configuration and logging."""

from projecthub.core.config import CoreSettings, get_settings
from projecthub.core.logging.logger import get_logger


class ProjectHubMeta(type):
    """Metaclass for the ProjectHub class.

    The metaclass lets classes deriving from ProjectHub use the same logger within class methods and static helpers as
    within instance methods::

        from projecthub.core import ProjectHub

        class GraphWriter(ProjectHub):
            def create(self):
                self.logger.info("...")  # logger name: projecthub.tracker.graph.GraphWriter

            @classmethod
            def repair(cls):
                cls.logger.info("...")  # same logger
    """

    def __init__(cls, name, bases, attr_dict):
        super().__init__(name, bases, attr_dict)
        cls._logger = None
        cls._settings = None

    @property
    def logger(cls):
        if cls._logger is None:
            cls._logger = get_logger(cls.unique_name)
        return cls._logger

    @logger.setter
    def logger(cls, new_logger):
        cls._logger = new_logger

    @property
    def unique_name(cls) -> str:
        return cls.__module__ + "." + cls.__name__

    @property
    def settings(cls) -> CoreSettings:
        if cls._settings is None:
            cls._settings = get_settings()
        return cls._settings

    @settings.setter
    def settings(cls, new_settings):
        cls._settings = new_settings


class ProjectHub(metaclass=ProjectHubMeta):
    """Base class for projecthub components that need settings and a logger.

    Args:
        settings: Settings to use instead of the process-wide defaults.
        **logger_kwargs: Passed to ``get_logger`` (log_dir, logger_level, file_level, use_structlog, ...).
    """

    def __init__(self, *, settings: CoreSettings | None = None, **logger_kwargs):
        self.settings = settings if settings is not None else type(self).settings
        if logger_kwargs:
            self.logger = get_logger(self.unique_name, **logger_kwargs)
        else:
            self.logger = type(self).logger

    @property
    def unique_name(self) -> str:
        return self.__module__ + "." + type(self).__name__

    @property
    def name(self) -> str:
        return type(self).__name__
