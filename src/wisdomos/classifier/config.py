"""ClassifierConfig -- classifier settings loaded from the environment"""

import os
from typing import Literal

import structlog
from pydantic import BaseModel, Field, SecretStr

log = structlog.get_logger()


class ClassifierConfig(BaseModel):
    """Classifier configuration

    Environment variables:
        WISDOMOS_CLASSIFIER_MODE: keyword / litellm
        LITELLM_PROXY_URL: proxy address (default http://localhost:4000)
        LITELLM_PROXY_KEY: proxy access key
        WISDOMOS_CLASSIFIER_MODEL: model alias routed by the proxy
        WISDOMOS_CLASSIFIER_TIMEOUT_S: call timeout in seconds
    """

    mode: Literal["keyword", "litellm"] = Field(
        default="keyword",
        description="keyword: offline heuristics; litellm: model with keyword fallback",
    )
    proxy_base_url: str = Field(default="http://localhost:4000")
    proxy_api_key: SecretStr = Field(default=SecretStr(""))
    model_alias: str = Field(default="classifier")
    timeout_s: int = Field(default=30, ge=1)


def load_classifier_config() -> ClassifierConfig:
    """Load ClassifierConfig from the environment; bad values keep defaults"""
    kwargs: dict = {}

    if val := os.environ.get("WISDOMOS_CLASSIFIER_MODE"):
        if val in ("keyword", "litellm"):
            kwargs["mode"] = val
        else:
            log.warning(
                "invalid_classifier_mode",
                env_var="WISDOMOS_CLASSIFIER_MODE",
                value=val,
                fallback="keyword",
            )

    if val := os.environ.get("LITELLM_PROXY_URL"):
        kwargs["proxy_base_url"] = val

    if val := os.environ.get("LITELLM_PROXY_KEY"):
        kwargs["proxy_api_key"] = SecretStr(val)

    if val := os.environ.get("WISDOMOS_CLASSIFIER_MODEL"):
        kwargs["model_alias"] = val

    if val := os.environ.get("WISDOMOS_CLASSIFIER_TIMEOUT_S"):
        try:
            kwargs["timeout_s"] = int(val)
        except ValueError:
            log.warning(
                "invalid_timeout_config",
                env_var="WISDOMOS_CLASSIFIER_TIMEOUT_S",
                value=val,
                fallback=30,
            )

    return ClassifierConfig(**kwargs)
