"""
Proto descriptor sets for PROTO columns.

Fetches serialized FileDescriptorSets from Cloud Storage or HTTP, checks
that the declared proto type is defined in them, and registers proto
bundles with the database.
"""

import asyncio
import logging
from typing import Any, Optional
from urllib.parse import urlparse

import aiohttp
from google.api_core import exceptions as api_exceptions
from google.cloud import storage
from google.protobuf import descriptor_pb2, descriptor_pool
from google.protobuf.message import DecodeError

from ..config import DescriptorConfig
from ..database.connection import SpannerDatabase
from ..exceptions import DescriptorError, SchemaChangeError
from .ddl import proto_bundle_statement
from .model import DescriptorSource, ProtoDescriptor


logger = logging.getLogger(__name__)

# Status codes that mean "bundle or type already registered"
_BUNDLE_CONFLICTS = ("ALREADY_EXISTS", "INVALID_ARGUMENT")


def parse_descriptor_set(data: bytes, package: str) -> descriptor_pb2.FileDescriptorSet:
    """Parse a FileDescriptorSet and check that it defines ``package``.

    Raises:
        DescriptorError: if the bytes are not a descriptor set or the type
            is neither a message nor an enum in it.
    """
    descriptor_set = descriptor_pb2.FileDescriptorSet()
    try:
        descriptor_set.ParseFromString(data)
    except DecodeError as e:
        raise DescriptorError(f"Invalid FileDescriptorSet: {e}", cause=e) from e

    pool = descriptor_pool.DescriptorPool()
    try:
        for file_proto in descriptor_set.file:
            pool.AddSerializedFile(file_proto.SerializeToString())
    except (TypeError, ValueError) as e:
        raise DescriptorError(f"Inconsistent FileDescriptorSet: {e}", cause=e) from e

    try:
        pool.FindMessageTypeByName(package)
    except KeyError:
        try:
            pool.FindEnumTypeByName(package)
        except KeyError:
            raise DescriptorError(
                f"Proto type '{package}' not found in descriptor set",
                details={"files": len(descriptor_set.file)},
            )
    return descriptor_set


class DescriptorFetcher:
    """Downloads descriptor sets from Cloud Storage or HTTP(S)."""

    def __init__(
        self,
        config: Optional[DescriptorConfig] = None,
        storage_client: Optional[Any] = None,
    ):
        self.config = config or DescriptorConfig()
        self._storage_client = storage_client
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.http_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def fetch(self, descriptor: ProtoDescriptor) -> bytes:
        """Fetch the raw descriptor set bytes for a proto descriptor."""
        location = descriptor.location
        if not location:
            raise DescriptorError("Descriptor set path is empty")

        source = descriptor.source
        if source == DescriptorSource.GCS:
            return await self.read_gcs(location)
        if source == DescriptorSource.URL:
            return await self.read_url(location)
        raise DescriptorError(
            f"Unknown descriptor set source for '{descriptor.descriptor_set_path}'"
        )

    async def read_url(self, url: str) -> bytes:
        session = await self._get_session()
        try:
            async with session.get(url) as response:
                if response.status != 200:
                    raise DescriptorError(
                        f"Failed to fetch descriptor set from {url}",
                        details={"status_code": response.status},
                    )
                return await response.read()
        except asyncio.TimeoutError as e:
            raise DescriptorError(f"Timed out fetching {url}", cause=e) from e
        except aiohttp.ClientError as e:
            raise DescriptorError(f"HTTP error fetching {url}: {e}", cause=e) from e

    async def read_gcs(self, uri: str) -> bytes:
        if "://" not in uri:
            uri = f"gs://{uri}"
        parsed = urlparse(uri)
        if parsed.scheme != "gs" or not parsed.netloc:
            raise DescriptorError(f"Invalid GCS URI: {uri}")
        bucket_name = parsed.netloc
        object_name = parsed.path.lstrip("/")

        try:
            return await asyncio.to_thread(self._read_gcs_sync, bucket_name, object_name)
        except api_exceptions.NotFound as e:
            raise DescriptorError(f"Descriptor set not found: {uri}", cause=e) from e
        except api_exceptions.GoogleAPICallError as e:
            raise DescriptorError(f"Failed to read {uri}: {e}", cause=e) from e

    def _read_gcs_sync(self, bucket_name: str, object_name: str) -> bytes:
        if self._storage_client is None:
            self._storage_client = storage.Client()
        blob = self._storage_client.bucket(bucket_name).blob(object_name)
        return blob.download_as_bytes()

    async def resolve(self, descriptor: ProtoDescriptor) -> ProtoDescriptor:
        """Return a copy of ``descriptor`` carrying fetched, checked bytes."""
        if not descriptor.needs_fetch:
            return descriptor
        data = await self.fetch(descriptor)
        parse_descriptor_set(data, descriptor.proto_package or "")
        logger.info(
            f"Fetched descriptor set for {descriptor.proto_package} "
            f"from {descriptor.location} ({len(data)} bytes)"
        )
        return descriptor.model_copy(update={"descriptor_set": data})

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "DescriptorFetcher":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


async def register_proto_bundle(
    database: SpannerDatabase, package: str, descriptor_set: bytes
) -> str:
    """Register a proto type with the database.

    Tries CREATE PROTO BUNDLE, then ALTER PROTO BUNDLE INSERT, then
    ALTER PROTO BUNDLE UPDATE, moving on when the bundle or type is
    already present. Returns the statement that succeeded.
    """
    attempts = [
        proto_bundle_statement(package),
        proto_bundle_statement(package, "INSERT"),
        proto_bundle_statement(package, "UPDATE"),
    ]
    last_error = None
    for statement in attempts:
        try:
            await database.update_ddl([statement], proto_descriptors=descriptor_set)
            logger.info(f"Registered proto bundle: {statement}")
            return statement
        except SchemaChangeError as e:
            if e.status_code not in _BUNDLE_CONFLICTS:
                raise
            logger.debug(f"{statement} rejected ({e.status_code}), trying next form")
            last_error = e
    raise last_error
