# config/__init__.py
"""
Configuration package: Flask config classes, logging settings and the dedupe profile.
"""

from .base import Config, DevelopmentConfig, ProductionConfig, TestingConfig, config_by_name
from .monitoring import (
    DevelopmentMonitoringConfig,
    MonitoringConfig,
    ProductionMonitoringConfig,
    TestingMonitoringConfig,
    monitoring_config_by_name,
)

__all__ = [
    "Config",
    "DevelopmentConfig",
    "TestingConfig",
    "ProductionConfig",
    "config_by_name",
    "MonitoringConfig",
    "DevelopmentMonitoringConfig",
    "ProductionMonitoringConfig",
    "TestingMonitoringConfig",
    "monitoring_config_by_name",
]
