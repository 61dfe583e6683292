"""
Docker Images API
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import quote

from .exceptions import APIError, ImageNotFound, InvalidReference
from .json_stream import detect_error_message

logger = logging.getLogger(__name__)

MessageCallback = Callable[[Dict[str, Any]], None]


def _image_path(name: str) -> str:
    return quote(name, safe='/:@')


def _split_tag(reference: str) -> Tuple[str, Optional[str]]:
    colon = reference.rfind(':')
    # A colon before the last '/' belongs to a registry port
    if colon > reference.rfind('/'):
        return reference[:colon], reference[colon + 1:]
    return reference, None


def parse_repository_tag(reference: str) -> Tuple[str, Optional[str]]:
    """
    Split an image reference into repository and tag

    Args:
        reference: e.g. 'ubuntu:16.04', 'localhost:5000/app', 'app@sha256:...'

    Returns:
        Tuple of (repository, tag or digest or None)
    """
    if '@' in reference:
        repository, digest = reference.split('@', 1)
        repository, _ = _split_tag(repository)
        return repository, digest
    return _split_tag(reference)


class ImageSummary:
    """Summary of a local image as returned by the image list endpoint"""

    def __init__(self, attrs: Dict[str, Any]):
        self.attrs = attrs
        self.containers = attrs.get('Containers', 0)
        self.created = attrs.get('Created', 0)
        self.id = attrs.get('Id') or ''
        self.labels = attrs.get('Labels') or {}
        self.parent_id = attrs.get('ParentId') or ''
        self.repo_digests = attrs.get('RepoDigests') or []
        self.repo_tags = attrs.get('RepoTags') or []
        self.shared_size = attrs.get('SharedSize', 0)
        self.size = attrs.get('Size', 0)
        self.virtual_size = attrs.get('VirtualSize', 0)
        self.short_id = self.id.split(':', 1)[-1][:12]

    def __repr__(self):
        return f"<ImageSummary: {self.repo_tags[0] if self.repo_tags else self.short_id}>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'Containers': self.containers,
            'Created': self.created,
            'Id': self.id,
            'Labels': self.labels,
            'ParentId': self.parent_id,
            'RepoDigests': self.repo_digests,
            'RepoTags': self.repo_tags,
            'SharedSize': self.shared_size,
            'Size': self.size,
            'VirtualSize': self.virtual_size,
        }


class ImageCollection:
    """Docker Images collection"""

    def __init__(self, client):
        self.client = client

    def list(self, filters: Optional[Dict[str, Any]] = None, all: bool = False) -> List[ImageSummary]:
        """
        List images

        Args:
            filters: Filters to apply, e.g. {'label': 'app=web'}
            all: Show all images (including intermediates)

        Returns:
            List of ImageSummary objects
        """
        params = {}
        if all:
            params['all'] = True
        if filters:
            encoded = {}
            for key, value in filters.items():
                values = value if isinstance(value, (list, tuple, set)) else [value]
                encoded[key] = {str(v): True for v in values}
            params['filters'] = encoded

        images_data = self.client.http.get('/images/json', params=params) or []
        return [ImageSummary(img_data) for img_data in images_data]

    def get(self, name: str) -> Dict[str, Any]:
        """
        Inspect image by name or ID

        Raises:
            ImageNotFound: If image not found
        """
        try:
            return self.client.http.get(f'/images/{_image_path(name)}/json')
        except APIError as e:
            if e.status_code == 404:
                raise ImageNotFound(f"Image not found: {name}", response=e.response, status_code=404) from e
            raise

    def pull(self, image: str, registry_auth: Optional[str] = None,
             on_message: Optional[MessageCallback] = None):
        """
        Pull image from registry

        Args:
            image: Image reference; tag defaults to 'latest'
            registry_auth: Encoded X-Registry-Auth value
            on_message: Callback for progress messages

        Raises:
            StreamError: If the daemon reports an error while pulling
        """
        repository, tag = parse_repository_tag(image)
        params = {'fromImage': repository, 'tag': tag or 'latest'}
        headers = {'X-Registry-Auth': registry_auth} if registry_auth else None

        with self.client.http.post('/images/create', params=params, headers=headers, stream=True) as response:
            detect_error_message(response, on_message=on_message)

    def push(self, image: str, registry_auth: Optional[str] = None,
             on_message: Optional[MessageCallback] = None):
        """
        Push image to registry

        Args:
            image: Image reference; without a tag every tag is pushed
            registry_auth: Encoded X-Registry-Auth value
            on_message: Callback for progress messages

        Raises:
            InvalidReference: For digest references
            StreamError: If the daemon reports an error while pushing
        """
        if '@' in image:
            raise InvalidReference(f"cannot push a digest reference: {image}")

        repository, tag = parse_repository_tag(image)
        headers = {'X-Registry-Auth': registry_auth or ''}

        with self.client.http.post(
            f'/images/{_image_path(repository)}/push',
            params={'tag': tag},
            headers=headers,
            stream=True
        ) as response:
            detect_error_message(response, on_message=on_message)

    def build(self, context_data: bytes, tag: Optional[str] = None,
              dockerfile: str = 'Dockerfile', buildargs: Optional[Dict[str, Optional[str]]] = None,
              nocache: bool = False, rm: bool = True, forcerm: bool = False,
              pull: bool = False, registry_config: Optional[str] = None,
              on_message: Optional[MessageCallback] = None) -> Optional[str]:
        """
        Build image from a tar build context

        Args:
            context_data: Tar archive of the build context
            tag: Tag for the image
            dockerfile: Dockerfile path inside the archive
            buildargs: Build arguments; None values are taken from the daemon environment
            nocache: Don't use cache
            rm: Remove intermediate containers after a successful build
            forcerm: Always remove intermediate containers
            pull: Always pull newer version of base image
            registry_config: Encoded X-Registry-Config value
            on_message: Callback for build output messages

        Returns:
            Built image ID, or None if the daemon did not report it

        Raises:
            StreamError: If the build fails
        """
        params = {
            't': tag,
            'dockerfile': dockerfile,
            'nocache': nocache,
            'rm': rm,
            'forcerm': forcerm,
            'pull': pull,
        }
        if buildargs:
            params['buildargs'] = buildargs

        headers = {'Content-Type': 'application/x-tar'}
        if registry_config:
            headers['X-Registry-Config'] = registry_config

        image_id = None

        def handle_message(message: Dict[str, Any]):
            nonlocal image_id
            aux = message.get('aux')
            if isinstance(aux, dict) and aux.get('ID'):
                image_id = aux['ID']
            stream = message.get('stream')
            if isinstance(stream, str) and stream.startswith('Successfully built '):
                image_id = image_id or stream.split()[-1]
            if on_message:
                on_message(message)

        with self.client.http.request(
            'POST', '/build',
            params=params,
            headers=headers,
            data=context_data,
            stream=True
        ) as response:
            detect_error_message(response, on_message=handle_message)

        return image_id

    def tag(self, image: str, new_image: str):
        """
        Tag an image into a repository

        Args:
            image: Source image name or ID
            new_image: Target reference; tag defaults to 'latest'
        """
        if '@' in new_image:
            raise InvalidReference(f"refusing to create a tag with a digest reference: {new_image}")

        repository, tag = parse_repository_tag(new_image)
        params = {'repo': repository, 'tag': tag or 'latest'}
        try:
            return self.client.http.post(f'/images/{_image_path(image)}/tag', params=params)
        except APIError as e:
            if e.status_code == 404:
                raise ImageNotFound(f"Image not found: {image}", response=e.response, status_code=404) from e
            raise

    def remove(self, image: str, force: bool = False, noprune: bool = False) -> List[Dict[str, str]]:
        """
        Remove image

        Args:
            image: Image name or ID
            force: Force removal
            noprune: Don't delete untagged parents

        Returns:
            List of Untagged/Deleted records
        """
        params = {'force': force, 'noprune': noprune}
        try:
            return self.client.http.delete(f'/images/{_image_path(image)}', params=params) or []
        except APIError as e:
            if e.status_code == 404:
                raise ImageNotFound(f"Image not found: {image}", response=e.response, status_code=404) from e
            raise
