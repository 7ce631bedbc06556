from __future__ import annotations

import logging
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from common.errors import StoreConfigurationError
from connections.model import RootNodeInfo
from security.cipher import PasswordCipher

from .connector import SqlStoreConnector
from .version import CURRENT_SCHEMA_VERSION


logger = logging.getLogger(__name__)


class StoreMetadata(BaseModel):
    """
    Store-level record kept in `tblRoot`.

    - protected: the root default password encrypted with the store's
      effective password; decrypting it confirms a candidate password.
    - conf_version: schema version string, e.g. "2.9".
    """

    name: str = Field(..., description="Display name of the root node")
    protected: str = Field(..., description="Encrypted protection marker")
    export: bool = False
    conf_version: str
    local_cache_enabled: bool = True

    @classmethod
    def from_row(cls, row: dict) -> "StoreMetadata":
        return cls(
            name=row["Name"],
            protected=row["Protected"],
            export=bool(row.get("Export") or False),
            conf_version=str(row["ConfVersion"]),
            local_cache_enabled=bool(row.get("EnableLocalCache", True)),
        )

    def to_row(self) -> dict:
        return {
            "Name": self.name,
            "Protected": self.protected,
            "Export": self.export,
            "ConfVersion": self.conf_version,
            "EnableLocalCache": self.local_cache_enabled,
        }


class MetadataRetriever:
    def __init__(
        self,
        cipher: PasswordCipher,
        *,
        schema_version: str = CURRENT_SCHEMA_VERSION,
        local_cache_default: bool = True,
    ) -> None:
        self._cipher = cipher
        self._schema_version = schema_version
        self._local_cache_default = local_cache_default

    def get_database_metadata(self, connector: SqlStoreConnector) -> Optional[StoreMetadata]:
        row = connector.read_root_row()
        if row is None:
            return None
        try:
            return StoreMetadata.from_row(row)
        except (KeyError, ValidationError) as ex:
            raise StoreConfigurationError(f"Malformed tblRoot record: {ex}") from ex

    def write_database_metadata(self, root: RootNodeInfo, connector: SqlStoreConnector) -> None:
        metadata = StoreMetadata(
            name=root.name,
            protected=self._cipher.encrypt(root.default_password, root.effective_password),
            export=False,
            conf_version=self._schema_version,
            local_cache_enabled=self._local_cache_default,
        )
        connector.ensure_schema()
        connector.write_root_row(metadata.to_row())
        logger.info("Wrote store metadata (schema %s)", self._schema_version)

    def is_local_cache_enabled(self, connector: SqlStoreConnector) -> bool:
        metadata = self.get_database_metadata(connector)
        return bool(metadata and metadata.local_cache_enabled)
