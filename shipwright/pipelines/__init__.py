"""Built-in deployment pipelines."""

from shipwright.pipelines.web_app import STAGE_NAMES, build_web_app_pipeline

__all__ = [
    "STAGE_NAMES",
    "build_web_app_pipeline",
]
