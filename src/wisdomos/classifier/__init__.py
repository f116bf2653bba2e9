"""WisdomOS Classifier -- inference abstraction used by the agents

Public exports of the classifier package.
"""

# Components
from .client import LiteLLMClassifier

# Configuration
from .config import ClassifierConfig, load_classifier_config

# Errors
from .exceptions import ClassifierError, ClassifierUnreachableError
from .factory import build_classifier
from .fallback import FallbackClassifier
from .keyword import KeywordClassifier, log_confidence

# Data models
from .models import AreaSignal, Classifier, CommitmentDetection, clamp

__all__ = [
    "AreaSignal",
    "Classifier",
    "CommitmentDetection",
    "clamp",
    "KeywordClassifier",
    "LiteLLMClassifier",
    "FallbackClassifier",
    "build_classifier",
    "log_confidence",
    "ClassifierConfig",
    "load_classifier_config",
    "ClassifierError",
    "ClassifierUnreachableError",
]
