"""chartsync.template — Template compiler and loaders."""

from chartsync.template.compiler import TemplateCompiler, TemplateSource, default_environment
from chartsync.template.loaders import (
    FileTemplateLoader,
    MappingTemplateLoader,
    HttpTemplateLoader,
)

__all__ = [
    "TemplateCompiler",
    "TemplateSource",
    "default_environment",
    "FileTemplateLoader",
    "MappingTemplateLoader",
    "HttpTemplateLoader",
]
