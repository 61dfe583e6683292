"""
Docker Image Builder
Build images from source, push and pull them, list, tag and remove them
"""

from .builder import Configs, DockerImageBuilder, new_client
from .docker_api import (
    ImageSummary,
    DockerException,
    APIError,
    ImageNotFound,
    BuildError,
    StreamError,
    InvalidReference
)

__all__ = [
    'Configs',
    'DockerImageBuilder',
    'new_client',
    'ImageSummary',
    'DockerException',
    'APIError',
    'ImageNotFound',
    'BuildError',
    'StreamError',
    'InvalidReference'
]

__version__ = '1.0.0'
