"""Configuration loading and models."""

from coderecall.config.loader import load_config, resolve_data_dir
from coderecall.config.models import CodeRecallConfig

__all__ = ["CodeRecallConfig", "load_config", "resolve_data_dir"]
