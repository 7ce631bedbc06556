from __future__ import annotations

import getpass
import json
import logging
import sys
from typing import Any, Dict, Optional

from pydantic import SecretStr

from common.config import LoaderSettings
from connections.loader import SqlConnectionsLoader
from connections.model import ConnectionTree, ContainerInfo
from security.authenticator import AuthenticationRequestor, no_credentials


logger = logging.getLogger(__name__)


def prompt_password() -> Optional[SecretStr]:
    """Ask for the connection file password on the terminal; None if cancelled."""
    try:
        value = getpass.getpass("Connection file password: ")
    except (EOFError, KeyboardInterrupt):
        return None
    return SecretStr(value) if value else None


def _default_requestor() -> AuthenticationRequestor:
    return prompt_password if sys.stdin is not None and sys.stdin.isatty() else no_credentials


def _summarize(tree: ConnectionTree) -> Dict[str, Any]:
    nodes = tree.root.get_recursive_child_list()
    containers = sum(1 for n in nodes if isinstance(n, ContainerInfo))
    return {
        "root": tree.root.name,
        "containers": containers,
        "connections": len(nodes) - containers,
    }


def run_once(requestor: Optional[AuthenticationRequestor] = None) -> Dict[str, Any]:
    settings = LoaderSettings.from_env()
    loader = SqlConnectionsLoader.from_settings(
        settings,
        authentication_requestor=requestor or _default_requestor(),
    )
    tree = loader.load()
    reachable = loader.is_database_reachable()
    return {
        "ok": True,
        "reachable": reachable,
        "source": "sql" if reachable else "cache",
        **_summarize(tree),
    }


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        out = run_once()
    except RuntimeError as ex:
        logger.error("Connections could not be loaded: %s", ex)
        print(json.dumps({"ok": False, "error": str(ex)}))
        return 1
    print(json.dumps(out))
    return 0


if __name__ == "__main__":
    sys.exit(main())
