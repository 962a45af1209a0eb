from shipwright.config.deploy_config import DeployConfig, StagePolicy
from shipwright.config.settings import ShipwrightSettings, get_settings

__all__ = [
    "DeployConfig",
    "ShipwrightSettings",
    "StagePolicy",
    "get_settings",
]
