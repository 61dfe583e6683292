"""
Docker Image Builder
Builds images from source directories and moves them between the local
daemon and a registry: build, pull, push, list, tag, remove
"""

import base64
import json
import logging
from typing import Any, Callable, Dict, List, Optional

from .docker_api import DockerClient
from .docker_api.images import ImageSummary
from .docker_api.tar_utils import DEFAULT_DOCKERFILE, create_build_context

logger = logging.getLogger(__name__)

DEFAULT_DOCKER_API_VERSION = '1.23'

MessageCallback = Callable[[Dict[str, Any]], None]


def _auth_payload(auth: Dict[str, Any]) -> Dict[str, Any]:
    """Drop empty fields, the daemon treats them as absent"""
    return {key: value for key, value in auth.items() if value}


def _encode_header(payload: Any) -> str:
    data = json.dumps(payload, separators=(',', ':')).encode('utf-8')
    return base64.urlsafe_b64encode(data).decode('ascii')


def encode_auth(auth: Dict[str, Any]) -> str:
    """Encode credentials for the X-Registry-Auth header"""
    return _encode_header(_auth_payload(auth))


def encode_auth_config(auth_configs: Dict[str, Dict[str, Any]]) -> str:
    """Encode a registry -> credentials map for the X-Registry-Config header"""
    return _encode_header({
        registry: _auth_payload(auth) for registry, auth in auth_configs.items()
    })


class Configs:
    """Settings used to create an image builder"""

    def __init__(
        self,
        host: str = '',
        registry: str = '',
        user: str = '',
        passwd: str = '',
        api_version: Optional[str] = DEFAULT_DOCKER_API_VERSION,
        timeout: int = 60,
        no_cache: bool = True,
        force_rm: bool = True,
        pull: bool = True,
        tls: bool = False,
        cert_path: Optional[str] = None
    ):
        """
        Args:
            host: Daemon address, e.g. tcp://127.0.0.1:2376 (empty: DOCKER_HOST or local socket)
            registry: Registry the credentials belong to
            user: Registry user name
            passwd: Registry password
            api_version: Engine API version
            timeout: Request timeout in seconds
            no_cache: Build without cache
            force_rm: Always remove intermediate containers
            pull: Always pull newer base images
            tls: Use TLS for tcp:// hosts
            cert_path: Directory with ca.pem, cert.pem and key.pem
        """
        self.host = host
        self.registry = registry
        self.user = user
        self.passwd = passwd
        self.api_version = api_version
        self.timeout = timeout
        self.no_cache = no_cache
        self.force_rm = force_rm
        self.pull = pull
        self.tls = tls
        self.cert_path = cert_path

    @classmethod
    def from_settings(cls, settings) -> 'Configs':
        """Create configs from a SettingsManager"""
        return cls(
            host=settings.get('docker_host', ''),
            registry=settings.get('registry', ''),
            user=settings.get('registry_user', ''),
            passwd=settings.get('registry_password', ''),
            api_version=settings.get('api_version', DEFAULT_DOCKER_API_VERSION) or None,
            timeout=int(settings.get('timeout', 60)),
            no_cache=bool(settings.get('no_cache', True)),
            force_rm=bool(settings.get('force_rm', True)),
            pull=bool(settings.get('pull', True)),
            tls=bool(settings.get('tls', False)),
            cert_path=settings.get('cert_path') or None
        )

    def __repr__(self):
        return f"<Configs: host={self.host or 'default'} registry={self.registry or '-'} user={self.user or '-'}>"


class DockerImageBuilder:
    """Builds, transfers and manages images through the Docker daemon"""

    def __init__(self, client: DockerClient, cfg: Configs):
        """
        Args:
            client: Connected DockerClient
            cfg: Registry credentials and build options
        """
        self.client = client
        self.docker_host = cfg.host
        self.registry = cfg.registry

        auth = {'username': cfg.user, 'password': cfg.passwd}
        self.registry_auth_string = encode_auth(auth)
        self.registry_auth_map = {cfg.registry: auth} if cfg.registry else {}

        self.no_cache = cfg.no_cache
        self.force_rm = cfg.force_rm
        self.pull_parent = cfg.pull

    def build(self, context_directory: str, image_path: str,
              args: Optional[Dict[str, Optional[str]]] = None,
              on_message: Optional[MessageCallback] = None) -> Optional[str]:
        """
        Build an image from a directory containing a Dockerfile

        Args:
            context_directory: Build context path
            image_path: Tag for the built image
            args: Build arguments
            on_message: Callback for build output messages

        Returns:
            Built image ID if the daemon reported one

        Raises:
            BuildError: If the build context cannot be archived
            APIError: If the daemon rejects the request
            StreamError: If the build fails
        """
        logger.info(f"Building image {image_path} from {context_directory}")
        context_data = create_build_context(context_directory, DEFAULT_DOCKERFILE)

        registry_config = None
        if self.registry_auth_map:
            registry_config = encode_auth_config(self.registry_auth_map)

        image_id = self.client.images.build(
            context_data,
            tag=image_path,
            dockerfile=DEFAULT_DOCKERFILE,
            buildargs=args,
            nocache=self.no_cache,
            rm=True,
            forcerm=self.force_rm,
            pull=self.pull_parent,
            registry_config=registry_config,
            on_message=on_message
        )
        logger.info(f"Image built successfully: {image_path}")
        return image_id

    def pull(self, image_path: str, on_message: Optional[MessageCallback] = None):
        """Pull an image; no credentials are sent"""
        logger.info(f"Pulling image {image_path}")
        self.client.images.pull(image_path, on_message=on_message)
        logger.info(f"Image pulled successfully: {image_path}")

    def push(self, image_path: str, on_message: Optional[MessageCallback] = None):
        """Push an image using the configured registry credentials"""
        logger.info(f"Pushing image {image_path}")
        self.client.images.push(image_path, registry_auth=self.registry_auth_string, on_message=on_message)
        logger.info(f"Image pushed successfully: {image_path}")

    def list(self, filters: Optional[Dict[str, str]] = None) -> List[ImageSummary]:
        """
        List local images

        Args:
            filters: Daemon filters, e.g. {'reference': 'ubuntu'}

        Returns:
            List of ImageSummary objects
        """
        logger.info(f"Listing images (filters: {filters or 'none'})")
        images = self.client.images.list(filters=filters)
        logger.info(f"Found {len(images)} images")
        return images

    def tag(self, image_path: str, new_image_path: str):
        """Tag an image with a new reference"""
        logger.info(f"Tagging image {image_path} as {new_image_path}")
        self.client.images.tag(image_path, new_image_path)
        logger.info(f"Image tagged: {image_path} -> {new_image_path}")

    def rmi(self, image_path: str):
        """Remove an image"""
        logger.info(f"Removing image {image_path}")
        self.client.images.remove(image_path)
        logger.info(f"Image removed: {image_path}")

    def close(self):
        self.client.close()


def new_client(cfg: Configs) -> DockerImageBuilder:
    """
    Create an image builder connected to the daemon described by cfg

    Raises:
        FileNotFoundError: If a unix socket host does not exist
        ValueError: If the host address is not supported
    """
    client = DockerClient(
        base_url=cfg.host or None,
        timeout=cfg.timeout,
        api_version=cfg.api_version,
        tls=cfg.tls,
        cert_path=cfg.cert_path
    )
    return DockerImageBuilder(client, cfg)
