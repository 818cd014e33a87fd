"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置。
优先级：初始化参数 > 环境变量 > .env > config.yaml。
"""

import os
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)


def _config_yaml_path() -> Optional[Path]:
    """查找 config.yaml（若存在）。"""
    candidates = []
    explicit = os.getenv("ASSISTANT_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])
    for path in candidates:
        if path.exists():
            return path
    return None


class Settings(BaseSettings):
    """助手配置（使用 Pydantic）。"""

    # ---- Provider 相关配置 ----
    default_provider: str = Field(
        default="auto",
        description="默认 Provider：auto / openai / anthropic。auto 时优先 anthropic",
    )
    default_model: str = Field(
        default="assistant-chat",
        description="逻辑模型名，由 registry 映射为具体厂商模型",
    )

    # OpenAI
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API 密钥")
    openai_base_url: str = Field(default="https://api.openai.com/v1", description="OpenAI API 基础URL")
    # Anthropic
    anthropic_api_key: Optional[str] = Field(default=None, description="Anthropic API 密钥")
    anthropic_base_url: str = Field(default="https://api.anthropic.com/v1", description="Anthropic API 基础URL")
    # Unsplash（文章头图搜索）
    unsplash_access_key: Optional[str] = Field(default=None, description="Unsplash Access Key")
    unsplash_base_url: str = Field(default="https://api.unsplash.com", description="Unsplash API 基础URL")

    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")
    temperature: float = Field(default=0.1, ge=0.0, le=2.0, description="生成温度")
    max_tokens: Optional[int] = Field(default=None, ge=1, description="单次回复最大 token 数；为空时使用模型默认值")

    # ---- 存储 ----
    storage_root: str = Field(default=".storage", description="会话历史存储根目录")
    database_url: str = Field(
        default="sqlite:///.storage/workspace.db",
        description="工作区数据库连接串（SQLAlchemy URL）",
    )

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    # ---- 助手行为 ----
    max_context_messages: int = Field(default=20, ge=1, le=100, description="发送给模型的最大历史消息数")
    context_project_limit: int = Field(default=1000, ge=1, description="上下文快照中项目数量上限")
    proposal_ttl_seconds: int = Field(default=600, ge=1, description="待确认提议的有效期（秒）")
    assistant_id: str = Field(default="ai-assistant", description="助手身份 ID")
    assistant_name: str = Field(default="AI Assistant", description="助手显示名称")
    assistant_greeting: str = Field(
        default=(
            "You can ask me to create projects, add tasks, write articles, or find information. "
            "How can I help you today?"
        ),
        description="空会话时展示的欢迎语（不落库）",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("openai_api_key", "anthropic_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        sources = [init_settings, env_settings, dotenv_settings]
        yaml_path = _config_yaml_path()
        if yaml_path is not None:
            sources.append(YamlConfigSettingsSource(settings_cls, yaml_file=yaml_path))
        sources.append(file_secret_settings)
        return tuple(sources)


settings = Settings()
