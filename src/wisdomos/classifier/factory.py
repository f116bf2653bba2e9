"""Classifier construction from ClassifierConfig"""

import structlog

from .client import LiteLLMClassifier
from .config import ClassifierConfig
from .fallback import FallbackClassifier
from .keyword import KeywordClassifier
from .models import Classifier

log = structlog.get_logger()


def build_classifier(config: ClassifierConfig) -> Classifier:
    """keyword mode returns KeywordClassifier; litellm mode chains it as fallback"""
    if config.mode == "litellm":
        primary = LiteLLMClassifier(
            proxy_base_url=config.proxy_base_url,
            proxy_api_key=config.proxy_api_key.get_secret_value(),
            model_alias=config.model_alias,
            timeout_s=config.timeout_s,
        )
        log.info(
            "classifier_configured",
            mode=config.mode,
            proxy_base_url=config.proxy_base_url,
            model_alias=config.model_alias,
        )
        return FallbackClassifier(primary=primary, fallback=KeywordClassifier())
    log.info("classifier_configured", mode=config.mode)
    return KeywordClassifier()
