"""
Docker Engine API - Pure Python implementation without external dependencies
Works with the Docker daemon via Unix socket or TCP
"""

from .client import DockerClient
from .exceptions import (
    DockerException,
    APIError,
    ImageNotFound,
    BuildError,
    StreamError,
    InvalidReference
)
from .images import ImageSummary

__all__ = [
    'DockerClient',
    'ImageSummary',
    'DockerException',
    'APIError',
    'ImageNotFound',
    'BuildError',
    'StreamError',
    'InvalidReference'
]
