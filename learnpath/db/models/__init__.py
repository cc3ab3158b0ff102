# SQLAlchemy models
from .base import Base
from .learning_path import LearningPathRecord
from .prerequisites import TopicPrerequisite

__all__ = [
    "Base",
    "LearningPathRecord",
    "TopicPrerequisite",
]
