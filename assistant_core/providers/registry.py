"""Provider 与模型配置。

本模块将“逻辑模型名”与“具体厂商模型名”解耦：

- 逻辑名（logical_name）：代码里使用的统一名称，例如 "assistant-chat"。
- provider_model：厂商实际提供的模型 ID，例如 "gpt-4o"。

上层只关心逻辑名，具体用哪个底层模型由这里集中配置。"""

from dataclasses import dataclass
from typing import Dict


@dataclass
class ModelConfig:
    """单个逻辑模型的配置。"""

    logical_name: str
    provider_model: str
    max_tokens: int
    default_temperature: float


@dataclass
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    base_url: str
    models: Dict[str, ModelConfig]


OPENAI_CONFIG = ProviderConfig(
    name="openai",
    base_url="https://api.openai.com/v1",
    models={
        "assistant-chat": ModelConfig(
            logical_name="assistant-chat",
            provider_model="gpt-4o",
            max_tokens=1000,
            default_temperature=0.1,
        )
    },
)

ANTHROPIC_CONFIG = ProviderConfig(
    name="anthropic",
    base_url="https://api.anthropic.com/v1",
    models={
        "assistant-chat": ModelConfig(
            logical_name="assistant-chat",
            provider_model="claude-3-haiku-20240307",
            max_tokens=1024,
            default_temperature=0.1,
        )
    },
)

