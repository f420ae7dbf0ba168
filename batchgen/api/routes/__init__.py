from . import sections, tasks

__all__ = ["sections", "tasks"]
