from __future__ import annotations

from collections.abc import Mapping
import logging
import os
from pathlib import Path

from appclient.adapters.errors import ClientArtifactMissing, LauncherConfigError
from appclient.domain.command import CommandSpec

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_JAR = Path("target") / "app-client.ear" / "client-main.jar"


def runner_path(server_home: Path) -> Path:
    name = "appclient.bat" if os.name == "nt" else "appclient"
    return server_home / "glassfish" / "bin" / name


class AppClientLauncher:
    """Builds the server's ``appclient -jar <client jar>`` command line.

    The client jar is expected to be unpacked already (by the archive build)
    next to the other modules of the deployed ear.
    """

    def __init__(
        self,
        server_home: str | Path | None,
        client_jar: str | Path = DEFAULT_CLIENT_JAR,
        working_dir: str | Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.server_home = Path(server_home) if server_home else None
        self.client_jar = Path(client_jar)
        self.working_dir = Path(working_dir) if working_dir is not None else None
        self.env = dict(env) if env else None

    def _resolve_jar(self) -> Path:
        if self.client_jar.is_absolute():
            return self.client_jar
        base = self.working_dir if self.working_dir is not None else Path.cwd()
        return base / self.client_jar

    def prepare(self) -> CommandSpec:
        if self.server_home is None:
            raise LauncherConfigError(
                "Application server home is not configured",
                hint="Set server_home in appclient.yaml or export GLASSFISH_HOME",
            )
        if not self.server_home.is_dir():
            raise LauncherConfigError(
                f"Application server home not found: {self.server_home}",
                details={"server_home": str(self.server_home)},
            )
        jar = self._resolve_jar()
        if not jar.is_file():
            raise ClientArtifactMissing(
                f"Client jar not found: {jar}",
                details={"client_jar": str(jar)},
                hint="Build and unpack the client ear before running the client",
            )
        for path in sorted(jar.parent.iterdir()):
            logger.info("Unpacked file: %s", path)

        spec = CommandSpec(
            [str(runner_path(self.server_home)), "-jar", str(self.client_jar)],
            cwd=self.working_dir,
        )
        if self.env:
            spec = spec.with_env_overlay(self.env)
        return spec
