from __future__ import annotations

import logging
import os
import threading
from typing import Callable, Iterable, Optional

from pydantic import SecretStr

from common.config import LoaderSettings
from common.errors import (
    AuthenticationDeclinedError,
    CacheReadError,
    LoadError,
    NoFallbackAvailableError,
    StoreConfigurationError,
    StoreUnreachableError,
)
from common.result import Err, Ok, Result, attempt
from security.authenticator import AuthenticationRequestor, PasswordAuthenticator, no_credentials
from security.cipher import PasswordCipher
from store.connector import SqlStoreConnector
from store.metadata import MetadataRetriever, StoreMetadata
from store.version import VersionVerifier

from .cache import XmlCacheReader, XmlCacheWriter, default_cache_path
from .deserializer import DataTableDeserializer
from .model import ConnectionTree, RootNodeInfo, RootNodeType
from .overlay import (
    DataProvider,
    Deserializer,
    FileDataProvider,
    LocalConnectionProperties,
    LocalConnectionPropertiesXmlSerializer,
    LocalOverlayMerger,
)


logger = logging.getLogger(__name__)

ConnectorFactory = Callable[[], SqlStoreConnector]


def _required(value, name: str):
    if value is None:
        raise ValueError(f"{name} is required")
    return value


class SqlConnectionsLoader:
    """
    Loads the connection tree from the SQL store, falling back to the local cache.

    Load sequence (each stage yields Ok/Err; the first Err triggers fallback):
    1. read store metadata, writing defaults first on a fresh store
    2. confirm a decryption key against the metadata's protection marker
       (default root password silently, then `authentication_requestor`)
    3. verify the schema version
    4. read and deserialize `tblCons`
    5. apply local connection properties (favorite / auto-connect / expanded)
    6. write the cache file when the store enables local caching

    On fallback the cached tree is returned if the cache file exists; with no
    cache the original store error is raised. `is_database_reachable()` reports
    whether the last `load()` came from the store.

    Loads on one instance are serialized; the cache file is not locked against
    other processes.
    """

    def __init__(
        self,
        local_connection_properties_deserializer: Deserializer[str, Iterable[LocalConnectionProperties]],
        data_provider: DataProvider[str],
        *,
        connector_factory: ConnectorFactory,
        cipher: Optional[PasswordCipher] = None,
        metadata_retriever: Optional[MetadataRetriever] = None,
        version_verifier: Optional[VersionVerifier] = None,
        cache_path: Optional[os.PathLike[str] | str] = None,
        cache_writer: Optional[XmlCacheWriter] = None,
        cache_reader: Optional[XmlCacheReader] = None,
        authentication_requestor: AuthenticationRequestor = no_credentials,
        max_auth_attempts: int = 3,
        cache_write_failure_fatal: bool = True,
    ) -> None:
        self._overlay = LocalOverlayMerger(
            _required(data_provider, "data_provider"),
            _required(local_connection_properties_deserializer, "local_connection_properties_deserializer"),
        )
        self._connector_factory = _required(connector_factory, "connector_factory")
        self._cipher = cipher or PasswordCipher()
        self._metadata_retriever = metadata_retriever or MetadataRetriever(self._cipher)
        self._version_verifier = version_verifier or VersionVerifier()
        path = cache_path or default_cache_path()
        self._cache_writer = cache_writer or XmlCacheWriter(path, self._cipher)
        self._cache_reader = cache_reader or XmlCacheReader(path, self._cipher)
        self.authentication_requestor = authentication_requestor
        self._max_auth_attempts = max_auth_attempts
        self._cache_write_failure_fatal = cache_write_failure_fatal
        self._is_database_reachable = False
        self._lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: LoaderSettings,
        *,
        authentication_requestor: AuthenticationRequestor = no_credentials,
    ) -> "SqlConnectionsLoader":
        return cls(
            LocalConnectionPropertiesXmlSerializer(),
            FileDataProvider(settings.local_properties_path()),
            connector_factory=lambda: SqlStoreConnector.from_settings(settings),
            cipher=PasswordCipher(iterations=settings.kdf_iterations),
            cache_path=settings.cache_path(),
            authentication_requestor=authentication_requestor,
            max_auth_attempts=settings.max_auth_attempts,
            cache_write_failure_fatal=settings.cache_write_failure_fatal,
        )

    def is_database_reachable(self) -> bool:
        return self._is_database_reachable

    def load(self) -> ConnectionTree:
        with self._lock:
            try:
                result = self._load_from_store()
            except BaseException:
                self._is_database_reachable = False
                raise
            if isinstance(result, Ok):
                self._is_database_reachable = True
                logger.info("Loaded connections from SQL store")
                return result.value
            self._is_database_reachable = False
            return self._load_from_cache(result.error)

    # --------------- Remote path ---------------
    def _load_from_store(self) -> Result[ConnectionTree]:
        connected = attempt(self._connector_factory)
        if isinstance(connected, Err):
            return connected
        connector = connected.value
        try:
            return self._run_stages(connector)
        finally:
            connector.dispose()

    def _run_stages(self, connector: SqlStoreConnector) -> Result[ConnectionTree]:
        metadata = attempt(self._get_metadata, connector)
        if isinstance(metadata, Err):
            return metadata

        key = self._get_decryption_key(metadata.value)
        if isinstance(key, Err):
            return key

        verified = attempt(self._version_verifier.verify_database_version, metadata.value.conf_version)
        if isinstance(verified, Err):
            return verified

        tree = attempt(self._deserialize, connector, key.value, metadata.value.name)
        if isinstance(tree, Err):
            return tree
        logger.debug("Deserialized tree from store")

        overlaid = attempt(self._overlay.apply, tree.value.root)
        if isinstance(overlaid, Err):
            return overlaid

        if metadata.value.local_cache_enabled:
            written = attempt(self._cache_writer.write, tree.value)
            if isinstance(written, Err):
                if self._cache_write_failure_fatal:
                    return written
                logger.warning("Keeping store result despite cache write failure: %s", written.error)

        return tree

    def _get_metadata(self, connector: SqlStoreConnector) -> StoreMetadata:
        metadata = self._metadata_retriever.get_database_metadata(connector)
        if metadata is None:
            metadata = self._handle_first_run(connector)
        return metadata

    def _handle_first_run(self, connector: SqlStoreConnector) -> StoreMetadata:
        logger.info("SQL store has no metadata; writing defaults")
        try:
            self._metadata_retriever.write_database_metadata(RootNodeInfo(root_type=RootNodeType.CONNECTION), connector)
        except StoreUnreachableError as ex:
            raise StoreConfigurationError(f"Could not write initial store metadata: {ex}") from ex
        metadata = self._metadata_retriever.get_database_metadata(connector)
        if metadata is None:
            raise StoreConfigurationError("Store metadata still missing after first-run setup")
        return metadata

    def _get_decryption_key(self, metadata: StoreMetadata) -> Result[SecretStr]:
        authenticator = PasswordAuthenticator(
            self._cipher,
            metadata.protected,
            self.authentication_requestor,
            max_attempts=self._max_auth_attempts,
        )
        default_password = RootNodeInfo(root_type=RootNodeType.CONNECTION).default_password
        if authenticator.authenticate(default_password, first_attempt=SecretStr(default_password)):
            return Ok(authenticator.last_authenticated_password)
        return Err(AuthenticationDeclinedError("Could not load SQL connections"))

    def _deserialize(self, connector: SqlStoreConnector, key: SecretStr, root_name: str) -> ConnectionTree:
        rows = connector.read_connection_rows()
        return DataTableDeserializer(self._cipher, key).deserialize(rows, root_name=root_name)

    # --------------- Fallback path ---------------
    def _load_from_cache(self, remote_error: LoadError) -> ConnectionTree:
        logger.warning("Loading from SQL store failed (%s); trying local cache %s", remote_error, self._cache_reader.path)
        try:
            tree = self._cache_reader.read()
        except NoFallbackAvailableError:
            logger.error("No local cache to fall back to")
            raise remote_error
        except CacheReadError as ex:
            ex.remote_error = remote_error
            logger.error("Local cache unusable: %s", ex)
            raise
        logger.info("Loaded connections from local cache %s", self._cache_reader.path)
        return tree
